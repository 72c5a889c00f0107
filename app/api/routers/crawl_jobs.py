"""
Brand website crawl trigger and status endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.api.dependencies import get_ingestion_service, get_job_store
from app.errors import IngestionTimeout, InvalidInput
from app.schemas.crawl_jobs import (
    CrawlJobAcceptedResponse,
    CrawlJobCreateRequest,
    CrawlJobListResponse,
    CrawlJobStatusResponse,
)
from app.services.ingestion_service import IngestionService
from app.services.job_store import JobStore
from db.models.crawl_job import CrawlJob

router = APIRouter(tags=["crawl-jobs"])


@router.post(
    "/crawl-jobs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CrawlJobAcceptedResponse | CrawlJobStatusResponse,
)
def create_crawl_job(
    payload: CrawlJobCreateRequest,
    response: Response,
    wait: bool = Query(default=False, description="Block until the job reaches a terminal state"),
    timeout: float | None = Query(default=None, gt=0, le=600, description="Wait timeout in seconds"),
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> CrawlJobAcceptedResponse | CrawlJobStatusResponse:
    """
    Enqueue a crawl of the brand website.

    Returns 202 with the job id, or with `wait=true` the terminal job (200).
    """

    try:
        if not wait:
            return CrawlJobAcceptedResponse(job_id=ingestion.trigger(payload.brand_id, payload.url))
        job = ingestion.trigger_and_wait(payload.brand_id, payload.url, timeout=timeout)
    except InvalidInput as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except IngestionTimeout as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={"message": str(exc), "job_id": str(exc.job_id), "state": exc.state},
        ) from exc

    response.status_code = status.HTTP_200_OK
    return _to_status_response(job)


@router.get("/crawl-jobs", response_model=CrawlJobListResponse)
def list_crawl_jobs(
    brand_id: str | None = Query(default=None, description="Optional brand filter"),
    state: str | None = Query(default=None, description="Optional state filter"),
    limit: int = Query(default=100, ge=1, le=500),
    job_store: JobStore = Depends(get_job_store),
) -> CrawlJobListResponse:
    jobs = job_store.list_jobs(brand_id=brand_id, state=state, limit=limit)
    return CrawlJobListResponse(jobs=[_to_status_response(job) for job in jobs])


@router.get("/crawl-jobs/{job_id}", response_model=CrawlJobStatusResponse)
def get_crawl_job(
    job_id: UUID,
    brand_id: str | None = Query(default=None, description="Optional brand scope"),
    job_store: JobStore = Depends(get_job_store),
) -> CrawlJobStatusResponse:
    job = job_store.get(job_id, brand_id=brand_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Crawl job not found: {job_id}",
        )
    return _to_status_response(job)


def _to_status_response(job: CrawlJob) -> CrawlJobStatusResponse:
    return CrawlJobStatusResponse(
        job_id=job.id,
        brand_id=job.brand_id,
        target_url=job.target_url,
        state=job.state,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        result_ref=job.result_ref,
        error=job.error,
    )
