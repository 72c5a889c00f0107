"""
Schemas for crawl job trigger and status endpoints.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class CrawlJobCreateRequest(BaseModel):
    brand_id: str = Field(..., min_length=1, max_length=64)
    url: str = Field(..., min_length=1, description="Absolute http(s) URL of the brand website")


class CrawlJobAcceptedResponse(BaseModel):
    job_id: UUID


class CrawlJobStatusResponse(BaseModel):
    job_id: UUID
    brand_id: str
    target_url: str
    state: str
    attempts: int = Field(..., ge=0)
    max_attempts: int = Field(..., ge=1)
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result_ref: UUID | None = None
    error: str | None = None


class CrawlJobListResponse(BaseModel):
    jobs: list[CrawlJobStatusResponse] = Field(default_factory=list)
