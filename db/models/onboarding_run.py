"""
db/models/onboarding_run.py

Persisted onboarding state machine: one run per crawl-completed event.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload, TimestampMixin


class OnboardingStage:
    SNAPSHOT_CREATED = "snapshot_created"
    GUIDE_GENERATING = "guide_generating"
    GUIDE_READY = "guide_ready"
    PLAN_GENERATING = "plan_generating"
    PLAN_READY = "plan_ready"
    CONTENT_GENERATING = "content_generating"
    DONE = "done"
    FAILED = "failed"

    TERMINAL = frozenset({DONE, FAILED})


class OnboardingRun(Base, TimestampMixin):
    __tablename__ = "onboarding_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    brand_id: Mapped[str] = mapped_column(String(64), nullable=False)
    snapshot_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("brand_snapshots.id"),
        nullable=False,
    )
    stage: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=OnboardingStage.SNAPSHOT_CREATED,
    )
    items_queued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    brand_guide: Mapped[dict[str, Any] | None] = mapped_column(JSONPayload, nullable=True)
    content_plan: Mapped[dict[str, Any] | None] = mapped_column(JSONPayload, nullable=True)
    superseded_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="Run that replaced this one; set together with stage=failed",
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_onboarding_runs_brand_id_stage", "brand_id", "stage"),
        Index("ix_onboarding_runs_snapshot_id", "snapshot_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.stage in OnboardingStage.TERMINAL
