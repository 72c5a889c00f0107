"""
db/models/extraction_result.py

Persisted output of one crawl: copy, images and the detected host profile.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload, TimestampMixin


class ExtractionResultRecord(Base, TimestampMixin):
    __tablename__ = "extraction_results"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    brand_id: Mapped[str] = mapped_column(String(64), nullable=False)
    crawl_job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crawl_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    text_blocks: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONPayload,
        nullable=False,
        default=list,
    )
    images: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONPayload,
        nullable=False,
        default=list,
        comment="Deduplicated by resolved absolute URL",
    )
    detected_host: Mapped[str] = mapped_column(String(32), nullable=False)
    host_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    host_signals: Mapped[list[str]] = mapped_column(JSONPayload, nullable=False, default=list)
    extraction_errors: Mapped[list[str]] = mapped_column(
        JSONPayload,
        nullable=False,
        default=list,
        comment="Partial failures recorded per facet",
    )
    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_extraction_results_brand_id", "brand_id"),
        Index("ix_extraction_results_crawl_job_id", "crawl_job_id"),
    )
