"""Reason codes recorded on terminal crawl jobs, runs and drafts."""

LEASE_EXPIRED = "lease_expired"
FETCH_FAILED = "fetch_failed"
WORKER_ERROR = "worker_error"

GUIDE_GENERATION_EXHAUSTED = "guide_generation_exhausted"
PLAN_GENERATION_EXHAUSTED = "plan_generation_exhausted"
DRAFT_GENERATION_EXHAUSTED = "draft_generation_exhausted"
EXTRACTION_MISSING = "extraction_missing"
SUPERSEDED = "superseded"

BFS_RETRIES_EXHAUSTED = "bfs_retries_exhausted"
SCORING_FAILED = "scoring_failed"


def reason(code: str, detail: str) -> str:
    """Format a persisted reason string as `code: detail`."""
    return f"{code}: {detail}"[:2000]
