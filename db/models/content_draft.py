"""
db/models/content_draft.py

Generated content draft and its Brand Fidelity Score.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload, TimestampMixin


class ContentDraftStatus:
    GENERATING = "generating"
    SCORED = "scored"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ESCALATED = "escalated"

    TERMINAL = frozenset({ACCEPTED, REJECTED, ESCALATED})


class ContentDraft(Base, TimestampMixin):
    __tablename__ = "content_drafts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    brand_id: Mapped[str] = mapped_column(String(64), nullable=False)
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("onboarding_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    plan_item: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    headline: Mapped[str | None] = mapped_column(Text, nullable=True)
    cta: Mapped[str | None] = mapped_column(Text, nullable=True)
    hashtags: Mapped[list[str]] = mapped_column(JSONPayload, nullable=False, default=list)
    bfs_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    bfs_breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSONPayload, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ContentDraftStatus.GENERATING,
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_content_drafts_run_id", "run_id"),
        Index("ix_content_drafts_brand_id_status", "brand_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in ContentDraftStatus.TERMINAL
