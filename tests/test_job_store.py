"""
tests/test_job_store.py

Job Store lease, visibility timeout and terminal-state tests on SQLite.

Coverage
--------
- enqueue input validation
- one lease per job (no double lease)
- visibility-timeout re-lease increments attempts exactly once
- lease extension and lost leases
- fail -> requeue until max_attempts, then failed
- abandoned final attempt -> timed_out
- complete publishes exactly one crawl-completed event
"""

from __future__ import annotations

import uuid

import pytest

from app.errors import InvalidInput
from app.services.job_store import JobStore, validate_target
from db.models.crawl_job import CrawlJobState


class TestValidateTarget:
    @pytest.mark.parametrize(
        ("brand_id", "url"),
        [
            ("", "https://brand.example"),
            ("   ", "https://brand.example"),
            ("brand-1", ""),
            ("brand-1", "brand.example"),
            ("brand-1", "ftp://brand.example/file"),
            ("brand-1", "https://"),
            ("brand-1", "https://exa mple.com"),
            ("brand-1", "https://brand\x00.example"),
            ("brand-1", "https://[::1/"),
            ("b" * 65, "https://brand.example"),
        ],
    )
    def test_rejects_malformed_input(self, brand_id: str, url: str) -> None:
        with pytest.raises(InvalidInput):
            validate_target(brand_id, url)

    def test_strips_whitespace(self) -> None:
        assert validate_target("  brand-1 ", " https://brand.example/ ") == (
            "brand-1",
            "https://brand.example/",
        )

    def test_invalid_input_creates_no_job(self, job_store: JobStore) -> None:
        with pytest.raises(InvalidInput):
            job_store.enqueue("brand-1", "not a url")
        assert job_store.list_jobs() == []


class TestEnqueueAndLease:
    def test_enqueue_creates_queued_job(self, job_store: JobStore) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        job = job_store.get(job_id)
        assert job is not None
        assert job.state == CrawlJobState.QUEUED
        assert job.attempts == 0
        assert job.max_attempts == 3

    def test_get_is_scoped_by_brand(self, job_store: JobStore) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        assert job_store.get(job_id, brand_id="brand-2") is None
        assert job_store.get(job_id, brand_id="brand-1") is not None

    def test_lease_marks_running_and_counts_attempt(self, job_store: JobStore) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        job = job_store.lease("worker-a")
        assert job is not None
        assert job.id == job_id
        assert job.state == CrawlJobState.RUNNING
        assert job.attempts == 1
        assert job.leased_by == "worker-a"

    def test_no_double_lease(self, job_store: JobStore) -> None:
        job_store.enqueue("brand-1", "https://brand.example")
        assert job_store.lease("worker-a") is not None
        assert job_store.lease("worker-b") is None

    def test_oldest_job_first(self, job_store: JobStore, clock) -> None:
        first = job_store.enqueue("brand-1", "https://one.example")
        clock.advance(1)
        second = job_store.enqueue("brand-2", "https://two.example")
        assert job_store.lease("worker-a").id == first
        assert job_store.lease("worker-b").id == second

    def test_empty_queue(self, job_store: JobStore) -> None:
        assert job_store.lease("worker-a") is None

    def test_claim_race_loses_cleanly(self, job_store: JobStore, session_factory, clock) -> None:
        from db.repositories.crawl_job_repository import CrawlJobRepository

        job_id = job_store.enqueue("brand-1", "https://brand.example")
        with session_factory() as db, db.begin():
            candidate = CrawlJobRepository(db).find_lease_candidate(
                now=clock(),
                visibility_timeout=job_store.visibility_timeout,
            )
            stale_heartbeat = candidate.heartbeat_at

        assert job_store.lease("worker-a") is not None
        with session_factory() as db, db.begin():
            won = CrawlJobRepository(db).claim(
                job_id=job_id,
                worker_id="worker-b",
                expected_state=CrawlJobState.QUEUED,
                expected_heartbeat_at=stale_heartbeat,
                now=clock(),
            )
        assert won is False
        assert job_store.get(job_id).leased_by == "worker-a"


class TestVisibilityTimeout:
    def test_expired_lease_is_released_once(self, job_store: JobStore, clock) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        assert job_store.lease("worker-a").attempts == 1

        clock.advance(30)
        assert job_store.lease("worker-b") is None

        clock.advance(31)
        released = job_store.lease("worker-b")
        assert released is not None
        assert released.id == job_id
        assert released.attempts == 2
        assert released.leased_by == "worker-b"
        assert job_store.lease("worker-c") is None

    def test_extend_lease_keeps_job_invisible(self, job_store: JobStore, clock) -> None:
        job_store.enqueue("brand-1", "https://brand.example")
        job = job_store.lease("worker-a")
        clock.advance(50)
        assert job_store.extend_lease(job.id, "worker-a") is True
        clock.advance(50)
        assert job_store.lease("worker-b") is None

    def test_lost_lease_cannot_extend_or_complete(self, job_store: JobStore, clock, publisher) -> None:
        job_store.enqueue("brand-1", "https://brand.example")
        job = job_store.lease("worker-a")
        clock.advance(61)
        assert job_store.lease("worker-b") is not None

        assert job_store.extend_lease(job.id, "worker-a") is False
        assert job_store.complete(job.id, uuid.uuid4(), worker_id="worker-a") is False
        assert publisher.events == []
        assert job_store.get(job.id).state == CrawlJobState.RUNNING

    def test_abandoned_final_attempt_times_out(self, job_store: JobStore, clock) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        for worker in ("worker-a", "worker-b", "worker-c"):
            assert job_store.lease(worker) is not None
            clock.advance(61)

        assert job_store.lease("worker-d") is None
        job = job_store.get(job_id)
        assert job.state == CrawlJobState.TIMED_OUT
        assert job.attempts == 3
        assert job.error.startswith("lease_expired")
        assert job.completed_at is not None


class TestFail:
    def test_requeues_until_attempts_exhausted(self, job_store: JobStore) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")

        assert job_store.lease("worker-a") is not None
        assert job_store.fail(job_id, "fetch_failed: HTTP 503", worker_id="worker-a") == "queued"
        assert job_store.lease("worker-a") is not None
        assert job_store.fail(job_id, "fetch_failed: HTTP 503", worker_id="worker-a") == "queued"
        assert job_store.lease("worker-a") is not None
        assert job_store.fail(job_id, "fetch_failed: HTTP 503", worker_id="worker-a") == "failed"

        job = job_store.get(job_id)
        assert job.state == CrawlJobState.FAILED
        assert job.attempts == 3
        assert job.error == "fetch_failed: HTTP 503"
        assert job_store.lease("worker-a") is None

    def test_fail_on_terminal_job_is_ignored(self, job_store: JobStore) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        job_store.lease("worker-a")
        job_store.complete(job_id, uuid.uuid4(), worker_id="worker-a")
        assert job_store.fail(job_id, "late failure", worker_id="worker-a") is None
        assert job_store.get(job_id).state == CrawlJobState.SUCCEEDED

    def test_unknown_job(self, job_store: JobStore) -> None:
        with pytest.raises(InvalidInput):
            job_store.fail(uuid.uuid4(), "boom")


class TestComplete:
    def test_complete_publishes_one_event(self, job_store: JobStore, publisher) -> None:
        job_id = job_store.enqueue("brand-1", "https://brand.example")
        job_store.lease("worker-a")
        result_ref = uuid.uuid4()

        assert job_store.complete(job_id, result_ref, worker_id="worker-a") is True
        assert job_store.complete(job_id, result_ref, worker_id="worker-a") is False

        assert len(publisher.events) == 1
        event = publisher.events[0]
        assert (event.job_id, event.brand_id, event.result_ref) == (job_id, "brand-1", result_ref)

        job = job_store.get(job_id)
        assert job.state == CrawlJobState.SUCCEEDED
        assert job.result_ref == result_ref
        assert job.leased_by is None

    def test_list_jobs_filters(self, job_store: JobStore, clock) -> None:
        job_store.enqueue("brand-1", "https://one.example")
        clock.advance(1)
        job_store.enqueue("brand-2", "https://two.example")
        job_store.lease("worker-a")

        assert [job.brand_id for job in job_store.list_jobs(brand_id="brand-2")] == ["brand-2"]
        running = job_store.list_jobs(state=CrawlJobState.RUNNING)
        assert [job.brand_id for job in running] == ["brand-1"]
