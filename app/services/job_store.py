"""
Durable crawl job queue with visibility-timeout leases.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from sqlalchemy.orm import Session, sessionmaker

from app import failure_codes
from app.config import CrawlSettings, get_crawl_settings
from app.errors import InvalidInput
from app.events import CrawlCompletedEvent, EventPublisher
from app.logging_utils import log_event
from db.base import utcnow
from db.models.crawl_job import CrawlJob, CrawlJobState
from db.repositories.crawl_job_repository import CrawlJobRepository

logger = logging.getLogger(__name__)

MAX_BRAND_ID_LENGTH = 64
# Upper bound on timed-out rows reaped by one lease() call.
MAX_LEASE_SCANS = 32


def validate_target(brand_id: str, url: str) -> tuple[str, str]:
    """
    Normalise and validate an ingestion request; raises InvalidInput.
    """

    normalized_brand = (brand_id or "").strip()
    if not normalized_brand:
        raise InvalidInput("brand_id must not be blank.")
    if len(normalized_brand) > MAX_BRAND_ID_LENGTH:
        raise InvalidInput(f"brand_id must be at most {MAX_BRAND_ID_LENGTH} characters.")

    normalized_url = (url or "").strip()
    try:
        parts = urlsplit(normalized_url)
        hostname = parts.hostname
    except ValueError as exc:
        raise InvalidInput(f"url is malformed: {exc}") from exc
    if parts.scheme.lower() not in {"http", "https"} or not hostname:
        raise InvalidInput(f"url must be an absolute http(s) URL, got '{url}'.")
    if any(char.isspace() or not char.isprintable() for char in parts.netloc):
        raise InvalidInput(f"url host must not contain whitespace, got '{url}'.")
    return normalized_brand, normalized_url


class JobStore:
    """
    Owns every crawl job state transition.

    Workers never write job rows directly; each method runs in its own short
    transaction and relies on conditional updates for mutual exclusion.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        settings: CrawlSettings | None = None,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if session_factory is None:
            from db.session import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory
        self._settings = settings or get_crawl_settings()
        self._publisher = publisher
        self._clock = clock

    @property
    def visibility_timeout(self) -> timedelta:
        return timedelta(seconds=self._settings.visibility_timeout_seconds)

    def set_publisher(self, publisher: EventPublisher | None) -> None:
        self._publisher = publisher

    def enqueue(self, brand_id: str, url: str) -> uuid.UUID:
        brand_id, url = validate_target(brand_id, url)
        with self._session_factory() as db, db.begin():
            job = CrawlJobRepository(db).create_job(
                brand_id=brand_id,
                target_url=url,
                max_attempts=self._settings.max_attempts,
                created_at=self._clock(),
            )
            job_id = job.id

        log_event(
            logger,
            logging.INFO,
            "crawl_job_enqueued",
            job_id=job_id,
            brand_id=brand_id,
            target_url=url,
        )
        return job_id

    def lease(self, worker_id: str) -> CrawlJob | None:
        """
        Lease the oldest eligible job for `worker_id`, or return None.

        A job abandoned after its last allowed attempt is moved to timed_out
        and the scan continues with the next candidate. Losing the claim race
        to another worker yields no lease for this call.
        """

        for _ in range(MAX_LEASE_SCANS):
            with self._session_factory() as db, db.begin():
                repository = CrawlJobRepository(db)
                now = self._clock()
                candidate = repository.find_lease_candidate(
                    now=now,
                    visibility_timeout=self.visibility_timeout,
                )
                if candidate is None:
                    return None

                observed_state = candidate.state
                observed_heartbeat = candidate.heartbeat_at

                if (
                    observed_state == CrawlJobState.RUNNING
                    and candidate.attempts >= candidate.max_attempts
                ):
                    reaped = repository.mark_timed_out(
                        job_id=candidate.id,
                        expected_heartbeat_at=observed_heartbeat,
                        error=failure_codes.reason(
                            failure_codes.LEASE_EXPIRED,
                            f"lease by {candidate.leased_by} expired after "
                            f"{candidate.attempts}/{candidate.max_attempts} attempts",
                        ),
                        now=now,
                    )
                    if reaped:
                        log_event(
                            logger,
                            logging.WARNING,
                            "crawl_job_timed_out",
                            job_id=candidate.id,
                            brand_id=candidate.brand_id,
                            attempts=candidate.attempts,
                        )
                    continue

                claimed = repository.claim(
                    job_id=candidate.id,
                    worker_id=worker_id,
                    expected_state=observed_state,
                    expected_heartbeat_at=observed_heartbeat,
                    now=now,
                )
                if not claimed:
                    log_event(
                        logger,
                        logging.DEBUG,
                        "crawl_job_lease_race_lost",
                        job_id=candidate.id,
                        worker_id=worker_id,
                    )
                    return None

                db.refresh(candidate)
                log_event(
                    logger,
                    logging.INFO,
                    "crawl_job_leased",
                    job_id=candidate.id,
                    brand_id=candidate.brand_id,
                    worker_id=worker_id,
                    attempts=candidate.attempts,
                    reclaimed=observed_state == CrawlJobState.RUNNING,
                )
                return candidate
        return None

    def extend_lease(self, job_id: uuid.UUID, worker_id: str) -> bool:
        with self._session_factory() as db, db.begin():
            return CrawlJobRepository(db).extend_lease(
                job_id=job_id,
                worker_id=worker_id,
                now=self._clock(),
            )

    def complete(
        self,
        job_id: uuid.UUID,
        result_ref: uuid.UUID,
        worker_id: str | None = None,
    ) -> bool:
        """
        Mark the job succeeded and publish a crawl-completed event.

        Returns False without side effects when the job is already terminal
        or now leased by another worker.
        """

        with self._session_factory() as db, db.begin():
            repository = CrawlJobRepository(db)
            job = self._require(repository, job_id)
            if job.is_terminal:
                log_event(
                    logger,
                    logging.INFO,
                    "crawl_job_complete_ignored",
                    job_id=job_id,
                    state=job.state,
                    reason="already_terminal",
                )
                return False

            completed = repository.mark_succeeded(
                job_id=job_id,
                result_ref=result_ref,
                now=self._clock(),
                worker_id=worker_id,
            )
            brand_id = job.brand_id

        if not completed:
            log_event(
                logger,
                logging.WARNING,
                "crawl_job_complete_ignored",
                job_id=job_id,
                worker_id=worker_id,
                reason="lease_lost",
            )
            return False

        log_event(
            logger,
            logging.INFO,
            "crawl_job_succeeded",
            job_id=job_id,
            brand_id=brand_id,
            result_ref=result_ref,
        )
        if self._publisher is not None:
            self._publisher.publish(
                CrawlCompletedEvent(job_id=job_id, brand_id=brand_id, result_ref=result_ref)
            )
        return True

    def fail(
        self,
        job_id: uuid.UUID,
        error: str,
        worker_id: str | None = None,
    ) -> str | None:
        """
        Requeue the job while attempts remain, otherwise mark it failed.

        Returns the resulting state, or None when the call was ignored.
        """

        with self._session_factory() as db, db.begin():
            repository = CrawlJobRepository(db)
            job = self._require(repository, job_id)
            if job.is_terminal:
                return None

            now = self._clock()
            if repository.requeue(job_id=job_id, error=error, now=now, worker_id=worker_id):
                new_state = CrawlJobState.QUEUED
            elif repository.mark_failed(job_id=job_id, error=error, now=now, worker_id=worker_id):
                new_state = CrawlJobState.FAILED
            else:
                new_state = None
            brand_id = job.brand_id
            attempts = job.attempts

        log_event(
            logger,
            logging.WARNING if new_state else logging.INFO,
            "crawl_job_failed" if new_state else "crawl_job_fail_ignored",
            job_id=job_id,
            brand_id=brand_id,
            worker_id=worker_id,
            attempts=attempts,
            new_state=new_state,
            error=error,
        )
        return new_state

    def get(self, job_id: uuid.UUID, brand_id: str | None = None) -> CrawlJob | None:
        with self._session_factory() as db:
            job = CrawlJobRepository(db).get_job(job_id)
            if job is None or (brand_id is not None and job.brand_id != brand_id):
                return None
            return job

    def list_jobs(
        self,
        *,
        brand_id: str | None = None,
        state: str | None = None,
        limit: int = 100,
    ) -> list[CrawlJob]:
        with self._session_factory() as db:
            return CrawlJobRepository(db).list_jobs(limit=limit, brand_id=brand_id, state=state)

    @staticmethod
    def _require(repository: CrawlJobRepository, job_id: uuid.UUID) -> CrawlJob:
        job = repository.get_job(job_id)
        if job is None:
            raise InvalidInput(f"Unknown crawl job {job_id}.")
        return job
