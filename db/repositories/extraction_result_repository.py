"""
Repository for persisted crawl extraction results.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from db.models.extraction_result import ExtractionResultRecord


class ExtractionResultRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_result(
        self,
        *,
        brand_id: str,
        crawl_job_id: uuid.UUID,
        source_url: str,
        text_blocks: list[dict[str, Any]],
        images: list[dict[str, Any]],
        detected_host: str,
        host_confidence: float,
        host_signals: list[str],
        extraction_errors: list[str],
        extracted_at: datetime,
    ) -> ExtractionResultRecord:
        record = ExtractionResultRecord(
            brand_id=brand_id,
            crawl_job_id=crawl_job_id,
            source_url=source_url,
            text_blocks=text_blocks,
            images=images,
            detected_host=detected_host,
            host_confidence=host_confidence,
            host_signals=host_signals,
            extraction_errors=extraction_errors,
            extracted_at=extracted_at,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get_result(
        self,
        result_id: uuid.UUID,
        *,
        brand_id: str | None = None,
    ) -> ExtractionResultRecord | None:
        record = self._session.get(ExtractionResultRecord, result_id)
        if record is None:
            return None
        if brand_id is not None and record.brand_id != brand_id:
            return None
        return record
