"""
Onboarding run and content draft read endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_pipeline_db
from app.schemas.onboarding import (
    ContentDraftListResponse,
    ContentDraftResponse,
    OnboardingRunResponse,
)
from db.models.content_draft import ContentDraft
from db.models.onboarding_run import OnboardingRun
from db.repositories.content_draft_repository import ContentDraftRepository
from db.repositories.onboarding_repository import OnboardingRepository

router = APIRouter(tags=["onboarding"])


@router.get("/onboarding-runs/{run_id}", response_model=OnboardingRunResponse)
def get_onboarding_run(
    run_id: UUID,
    brand_id: str | None = Query(default=None, description="Optional brand scope"),
    db: Session = Depends(get_pipeline_db),
) -> OnboardingRunResponse:
    return _to_run_response(_require_run(db, run_id, brand_id))


@router.get("/onboarding-runs/{run_id}/drafts", response_model=ContentDraftListResponse)
def list_onboarding_drafts(
    run_id: UUID,
    brand_id: str | None = Query(default=None, description="Optional brand scope"),
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    db: Session = Depends(get_pipeline_db),
) -> ContentDraftListResponse:
    run = _require_run(db, run_id, brand_id)
    drafts = ContentDraftRepository(db).list_drafts(
        run_id=run.id,
        brand_id=run.brand_id,
        statuses=[status_filter] if status_filter else None,
    )
    return ContentDraftListResponse(
        run_id=run.id,
        drafts=[_to_draft_response(draft) for draft in drafts],
    )


def _require_run(db: Session, run_id: UUID, brand_id: str | None) -> OnboardingRun:
    run = OnboardingRepository(db).get_run(run_id, brand_id=brand_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Onboarding run not found: {run_id}",
        )
    return run


def _to_run_response(run: OnboardingRun) -> OnboardingRunResponse:
    return OnboardingRunResponse(
        run_id=run.id,
        brand_id=run.brand_id,
        snapshot_id=run.snapshot_id,
        stage=run.stage,
        items_queued=run.items_queued,
        items_completed=run.items_completed,
        brand_guide=run.brand_guide,
        content_plan=run.content_plan,
        superseded_by=run.superseded_by,
        started_at=run.started_at,
        updated_at=run.updated_at,
        completed_at=run.completed_at,
        error=run.error,
    )


def _to_draft_response(draft: ContentDraft) -> ContentDraftResponse:
    return ContentDraftResponse(
        draft_id=draft.id,
        run_id=draft.run_id,
        brand_id=draft.brand_id,
        position=draft.position,
        platform=draft.platform,
        status=draft.status,
        retry_count=draft.retry_count,
        headline=draft.headline,
        body=draft.body,
        cta=draft.cta,
        hashtags=list(draft.hashtags or []),
        bfs_score=draft.bfs_score,
        bfs_breakdown=draft.bfs_breakdown,
        error=draft.error,
    )
