"""
Schemas for onboarding run and content draft read endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class OnboardingRunResponse(BaseModel):
    run_id: UUID
    brand_id: str
    snapshot_id: UUID
    stage: str
    items_queued: int = Field(..., ge=0)
    items_completed: int = Field(..., ge=0)
    brand_guide: dict[str, Any] | None = None
    content_plan: dict[str, Any] | None = None
    superseded_by: UUID | None = None
    started_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    error: str | None = None


class ContentDraftResponse(BaseModel):
    draft_id: UUID
    run_id: UUID
    brand_id: str
    position: int
    platform: str
    status: str
    retry_count: int = Field(..., ge=0)
    headline: str | None = None
    body: str | None = None
    cta: str | None = None
    hashtags: list[str] = Field(default_factory=list)
    bfs_score: float | None = None
    bfs_breakdown: dict[str, Any] | None = None
    error: str | None = None


class ContentDraftListResponse(BaseModel):
    run_id: UUID
    drafts: list[ContentDraftResponse] = Field(default_factory=list)
