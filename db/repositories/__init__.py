"""
Repository layer exports.
"""

from db.repositories.content_draft_repository import ContentDraftRepository
from db.repositories.crawl_job_repository import CrawlJobRepository
from db.repositories.extraction_result_repository import ExtractionResultRepository
from db.repositories.onboarding_repository import OnboardingRepository

__all__ = [
    "ContentDraftRepository",
    "CrawlJobRepository",
    "ExtractionResultRepository",
    "OnboardingRepository",
]
