"""
app/api/routers package marker.
"""

from app.api.routers.crawl_jobs import router as crawl_jobs_router
from app.api.routers.onboarding_runs import router as onboarding_runs_router

__all__ = [
    "crawl_jobs_router",
    "onboarding_runs_router",
]
