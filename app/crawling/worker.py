"""
Crawl worker: lease, fetch, classify, extract, persist, complete.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from bs4 import BeautifulSoup
from sqlalchemy.orm import Session, sessionmaker

from app import failure_codes
from app.crawling.fetcher import FetchedPage, PageFetcher
from app.crawling.host_classifier import classify_host
from app.crawling.registry import StrategyRegistry
from app.domain.extraction import ImageAsset, TextBlock
from app.errors import ExtractionPartialFailure, FetchError
from app.logging_utils import log_event
from app.services.job_store import JobStore
from db.base import utcnow
from db.models.crawl_job import CrawlJob
from db.repositories.extraction_result_repository import ExtractionResultRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerOutcome:
    """
    Result of one `run_once` call that leased a job.

    status is one of: succeeded, requeued, failed, abandoned.
    """

    job_id: uuid.UUID
    status: str
    result_ref: uuid.UUID | None = None
    error: str | None = None


class CrawlWorker:
    """
    Processes at most one leased job per `run_once` call.
    """

    def __init__(
        self,
        *,
        worker_id: str,
        job_store: JobStore,
        fetcher: PageFetcher,
        session_factory: sessionmaker[Session],
        registry: StrategyRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.worker_id = worker_id
        self._job_store = job_store
        self._fetcher = fetcher
        self._session_factory = session_factory
        self._registry = registry or StrategyRegistry()
        self._clock = clock

    def run_once(self) -> WorkerOutcome | None:
        job = self._job_store.lease(self.worker_id)
        if job is None:
            return None

        try:
            page = self._fetcher.fetch(job.target_url)
        except FetchError as exc:
            return self._fail(job, failure_codes.reason(failure_codes.FETCH_FAILED, exc.reason))

        if not self._job_store.extend_lease(job.id, self.worker_id):
            log_event(
                logger,
                logging.WARNING,
                "crawl_job_abandoned",
                job_id=job.id,
                worker_id=self.worker_id,
                reason="lease_lost_after_fetch",
            )
            return WorkerOutcome(job_id=job.id, status="abandoned")

        try:
            result_ref = self._extract_and_persist(job, page)
        except Exception as exc:
            logger.exception("Crawl worker %s failed on job %s", self.worker_id, job.id)
            return self._fail(
                job,
                failure_codes.reason(
                    failure_codes.WORKER_ERROR,
                    f"{type(exc).__name__}: {exc}",
                ),
            )

        completed = self._job_store.complete(job.id, result_ref, worker_id=self.worker_id)
        return WorkerOutcome(
            job_id=job.id,
            status="succeeded" if completed else "abandoned",
            result_ref=result_ref,
        )

    def _extract_and_persist(self, job: CrawlJob, page: FetchedPage) -> uuid.UUID:
        page_url = page.final_url or job.target_url
        soup = BeautifulSoup(page.html, "html.parser")
        profile = classify_host(page_url, page.headers, soup)
        strategy = self._registry.for_profile(profile)

        errors: list[str] = []
        text_blocks: list[TextBlock] = []
        images: list[ImageAsset] = []
        try:
            text_blocks = strategy.extract_text(soup, page_url)
        except Exception as exc:
            errors.append(str(ExtractionPartialFailure("text", exc)))
        try:
            images = strategy.extract_images(soup, page_url)
        except Exception as exc:
            errors.append(str(ExtractionPartialFailure("images", exc)))

        with self._session_factory() as db, db.begin():
            record = ExtractionResultRepository(db).create_result(
                brand_id=job.brand_id,
                crawl_job_id=job.id,
                source_url=job.target_url,
                text_blocks=[block.to_dict() for block in text_blocks],
                images=[image.to_dict() for image in images],
                detected_host=profile.host_kind.value,
                host_confidence=profile.confidence,
                host_signals=list(profile.signals),
                extraction_errors=errors,
                extracted_at=self._clock(),
            )
            result_ref = record.id

        log_event(
            logger,
            logging.WARNING if errors else logging.INFO,
            "crawl_extraction_persisted",
            job_id=job.id,
            brand_id=job.brand_id,
            result_ref=result_ref,
            host_kind=profile.host_kind.value,
            host_confidence=profile.confidence,
            text_blocks=len(text_blocks),
            images=len(images),
            extraction_errors=errors,
        )
        return result_ref

    def _fail(self, job: CrawlJob, reason: str) -> WorkerOutcome:
        new_state = self._job_store.fail(job.id, reason, worker_id=self.worker_id)
        status = {"queued": "requeued", "failed": "failed"}.get(new_state or "", "abandoned")
        return WorkerOutcome(job_id=job.id, status=status, error=reason)


class CrawlWorkerPool:
    """
    Runs a fixed set of crawl workers on daemon threads until stopped.
    """

    def __init__(self, workers: Sequence[CrawlWorker], *, poll_interval_seconds: float) -> None:
        if not workers:
            raise ValueError("CrawlWorkerPool requires at least one worker.")
        self._workers = list(workers)
        self._poll_interval_seconds = poll_interval_seconds
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(
                target=self._loop,
                args=(worker,),
                name=f"crawl-worker-{worker.worker_id}",
                daemon=True,
            )
            for worker in self._workers
        ]
        for thread in self._threads:
            thread.start()
        log_event(logger, logging.INFO, "crawl_worker_pool_started", workers=len(self._threads))

    def stop(self, timeout: float | None = 30.0) -> None:
        """
        Signal workers to stop after their current job and wait for them.
        """

        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        log_event(logger, logging.INFO, "crawl_worker_pool_stopped", workers=len(self._threads))
        self._threads = []

    def _loop(self, worker: CrawlWorker) -> None:
        while not self._stop_event.is_set():
            try:
                outcome = worker.run_once()
            except Exception:
                logger.exception("Crawl worker %s loop iteration failed", worker.worker_id)
                outcome = None
            if outcome is None:
                self._stop_event.wait(self._poll_interval_seconds)
