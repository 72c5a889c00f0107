"""
Ingestion trigger: validate a brand website request and enqueue a crawl.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable

from app.config import CrawlSettings, get_crawl_settings
from app.errors import IngestionTimeout
from app.logging_utils import log_event
from app.services.job_store import JobStore
from db.models.crawl_job import CrawlJob

logger = logging.getLogger(__name__)


class IngestionService:
    """
    Entry point used by the HTTP layer and scripts.
    """

    def __init__(
        self,
        *,
        job_store: JobStore,
        settings: CrawlSettings | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._job_store = job_store
        self._settings = settings or get_crawl_settings()
        self._monotonic = monotonic
        self._sleep = sleep

    def trigger(self, brand_id: str, url: str) -> uuid.UUID:
        """
        Enqueue a crawl; raises InvalidInput before anything is persisted.
        """

        return self._job_store.enqueue(brand_id, url)

    def trigger_and_wait(
        self,
        brand_id: str,
        url: str,
        timeout: float | None = None,
    ) -> CrawlJob:
        """
        Enqueue a crawl and poll until the job reaches a terminal state.

        Raises IngestionTimeout when the job is still queued or running after
        `timeout` seconds. The job itself keeps going.
        """

        timeout_seconds = timeout if timeout is not None else (
            self._settings.ingestion_wait_timeout_seconds
        )
        job_id = self.trigger(brand_id, url)
        deadline = self._monotonic() + timeout_seconds

        while True:
            job = self._job_store.get(job_id)
            if job is not None and job.is_terminal:
                return job
            if self._monotonic() >= deadline:
                state = job.state if job is not None else "unknown"
                log_event(
                    logger,
                    logging.WARNING,
                    "ingestion_wait_timed_out",
                    job_id=job_id,
                    brand_id=brand_id,
                    state=state,
                    timeout_seconds=timeout_seconds,
                )
                raise IngestionTimeout(job_id, state, timeout_seconds)
            self._sleep(self._settings.ingestion_poll_interval_seconds)
