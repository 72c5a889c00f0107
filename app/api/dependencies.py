"""
app/api/dependencies.py

Shared FastAPI dependencies resolving pipeline services.
"""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.services.ingestion_service import IngestionService
from app.services.job_store import JobStore
from app.services.pipeline import CrawlPipeline, get_pipeline


def get_crawl_pipeline() -> CrawlPipeline:
    return get_pipeline()


def get_job_store(pipeline: CrawlPipeline = Depends(get_crawl_pipeline)) -> JobStore:
    return pipeline.job_store


def get_ingestion_service(
    pipeline: CrawlPipeline = Depends(get_crawl_pipeline),
) -> IngestionService:
    return pipeline.ingestion


def get_pipeline_db(
    pipeline: CrawlPipeline = Depends(get_crawl_pipeline),
) -> Generator[Session, None, None]:
    """
    Yield a read session bound to the pipeline's session factory.
    """

    db = pipeline.session_factory()
    try:
        yield db
    finally:
        db.close()
