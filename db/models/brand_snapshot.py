"""
db/models/brand_snapshot.py

Immutable point-in-time capture of extracted brand signals.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONPayload, TimestampMixin


class BrandSnapshot(Base, TimestampMixin):
    __tablename__ = "brand_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    brand_id: Mapped[str] = mapped_column(String(64), nullable=False)
    extraction_result_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("extraction_results.id"),
        nullable=False,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload,
        nullable=False,
        comment="Copy, images and host profile frozen for guide generation",
    )

    __table_args__ = (
        Index("ix_brand_snapshots_brand_id", "brand_id"),
        Index("ix_brand_snapshots_extraction_result_id", "extraction_result_id"),
    )
