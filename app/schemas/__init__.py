"""
app/schemas package marker.
"""

from app.schemas.crawl_jobs import (
    CrawlJobAcceptedResponse,
    CrawlJobCreateRequest,
    CrawlJobListResponse,
    CrawlJobStatusResponse,
)
from app.schemas.onboarding import (
    ContentDraftListResponse,
    ContentDraftResponse,
    OnboardingRunResponse,
)

__all__ = [
    "ContentDraftListResponse",
    "ContentDraftResponse",
    "CrawlJobAcceptedResponse",
    "CrawlJobCreateRequest",
    "CrawlJobListResponse",
    "CrawlJobStatusResponse",
    "OnboardingRunResponse",
]
