"""
Repository for crawl job lifecycle persistence and lease transitions.

Every state change is a conditional UPDATE guarded by the state (and lease
stamp) the caller last observed, so two sessions racing on one row can
never both win.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import Select, and_, or_, select, update
from sqlalchemy.orm import Session

from db.models.crawl_job import CrawlJob, CrawlJobState


class CrawlJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_job(
        self,
        *,
        brand_id: str,
        target_url: str,
        max_attempts: int,
        created_at: datetime,
    ) -> CrawlJob:
        job = CrawlJob(
            brand_id=brand_id,
            target_url=target_url,
            state=CrawlJobState.QUEUED,
            attempts=0,
            max_attempts=max_attempts,
            created_at=created_at,
            updated_at=created_at,
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID) -> CrawlJob | None:
        return self._session.get(CrawlJob, job_id)

    def list_jobs(
        self,
        *,
        limit: int = 100,
        brand_id: str | None = None,
        state: str | None = None,
    ) -> list[CrawlJob]:
        stmt: Select[tuple[CrawlJob]] = select(CrawlJob)

        if brand_id:
            stmt = stmt.where(CrawlJob.brand_id == brand_id)
        if state:
            stmt = stmt.where(CrawlJob.state == state)

        stmt = stmt.order_by(CrawlJob.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def find_lease_candidate(
        self,
        *,
        now: datetime,
        visibility_timeout: timedelta,
    ) -> CrawlJob | None:
        """
        Oldest job that is queued, or running with a lease older than the timeout.
        """

        cutoff = now - visibility_timeout
        stmt = (
            select(CrawlJob)
            .where(
                or_(
                    CrawlJob.state == CrawlJobState.QUEUED,
                    and_(
                        CrawlJob.state == CrawlJobState.RUNNING,
                        CrawlJob.heartbeat_at < cutoff,
                    ),
                )
            )
            .order_by(CrawlJob.created_at.asc(), CrawlJob.id.asc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def claim(
        self,
        *,
        job_id: uuid.UUID,
        worker_id: str,
        expected_state: str,
        expected_heartbeat_at: datetime | None,
        now: datetime,
    ) -> bool:
        """
        Atomically move the job to running for `worker_id`.

        Returns False when another session changed the row after it was read.
        """

        stmt = (
            update(CrawlJob)
            .where(
                CrawlJob.id == job_id,
                CrawlJob.state == expected_state,
                self._heartbeat_matches(expected_heartbeat_at),
            )
            .values(
                state=CrawlJobState.RUNNING,
                attempts=CrawlJob.attempts + 1,
                leased_by=worker_id,
                started_at=now,
                heartbeat_at=now,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def mark_timed_out(
        self,
        *,
        job_id: uuid.UUID,
        expected_heartbeat_at: datetime | None,
        error: str,
        now: datetime,
    ) -> bool:
        stmt = (
            update(CrawlJob)
            .where(
                CrawlJob.id == job_id,
                CrawlJob.state == CrawlJobState.RUNNING,
                self._heartbeat_matches(expected_heartbeat_at),
            )
            .values(
                state=CrawlJobState.TIMED_OUT,
                leased_by=None,
                completed_at=now,
                error=error,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def extend_lease(self, *, job_id: uuid.UUID, worker_id: str, now: datetime) -> bool:
        stmt = (
            update(CrawlJob)
            .where(
                CrawlJob.id == job_id,
                CrawlJob.state == CrawlJobState.RUNNING,
                CrawlJob.leased_by == worker_id,
            )
            .values(heartbeat_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def mark_succeeded(
        self,
        *,
        job_id: uuid.UUID,
        result_ref: uuid.UUID,
        now: datetime,
        worker_id: str | None = None,
    ) -> bool:
        stmt = (
            update(CrawlJob)
            .where(*self._owned_by(job_id, worker_id))
            .values(
                state=CrawlJobState.SUCCEEDED,
                result_ref=result_ref,
                leased_by=None,
                completed_at=now,
                error=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def requeue(
        self,
        *,
        job_id: uuid.UUID,
        error: str,
        now: datetime,
        worker_id: str | None = None,
    ) -> bool:
        stmt = (
            update(CrawlJob)
            .where(*self._owned_by(job_id, worker_id))
            .where(CrawlJob.attempts < CrawlJob.max_attempts)
            .values(
                state=CrawlJobState.QUEUED,
                leased_by=None,
                started_at=None,
                heartbeat_at=None,
                error=error,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def mark_failed(
        self,
        *,
        job_id: uuid.UUID,
        error: str,
        now: datetime,
        worker_id: str | None = None,
    ) -> bool:
        stmt = (
            update(CrawlJob)
            .where(*self._owned_by(job_id, worker_id))
            .values(
                state=CrawlJobState.FAILED,
                leased_by=None,
                completed_at=now,
                error=error,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    @staticmethod
    def _owned_by(job_id: uuid.UUID, worker_id: str | None) -> list:
        clauses = [
            CrawlJob.id == job_id,
            CrawlJob.state == CrawlJobState.RUNNING,
        ]
        if worker_id is not None:
            clauses.append(CrawlJob.leased_by == worker_id)
        return clauses

    @staticmethod
    def _heartbeat_matches(expected: datetime | None):
        if expected is None:
            return CrawlJob.heartbeat_at.is_(None)
        return CrawlJob.heartbeat_at == expected
