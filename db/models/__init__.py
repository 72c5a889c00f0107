"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.brand_snapshot import BrandSnapshot
from db.models.content_draft import ContentDraft, ContentDraftStatus
from db.models.crawl_job import CrawlJob, CrawlJobState
from db.models.extraction_result import ExtractionResultRecord
from db.models.onboarding_run import OnboardingRun, OnboardingStage

__all__ = [
    "BrandSnapshot",
    "ContentDraft",
    "ContentDraftStatus",
    "CrawlJob",
    "CrawlJobState",
    "ExtractionResultRecord",
    "OnboardingRun",
    "OnboardingStage",
]
