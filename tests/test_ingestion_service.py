"""
tests/test_ingestion_service.py

Ingestion trigger, synchronous wait, recovery scheduler and structured
logging tests.

Coverage
--------
- trigger validates before enqueueing
- trigger_and_wait returns the terminal job or raises IngestionTimeout
- Scheduler registers the resume job and never raises from a tick
- log_event emits one JSON object per line
"""

from __future__ import annotations

import json
import logging

import pytest

from app.errors import IngestionTimeout, InvalidInput
from app.logging_utils import log_event
from app.scheduler.jobs import build_scheduler, run_resume_stalled_onboarding
from app.services.ingestion_service import IngestionService
from db.models.crawl_job import CrawlJobState


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


# ---------------------------------------------------------------------------
# IngestionService
# ---------------------------------------------------------------------------


class TestIngestionService:
    def test_trigger_enqueues(self, job_store, crawl_settings) -> None:
        service = IngestionService(job_store=job_store, settings=crawl_settings)
        job_id = service.trigger("brand-1", "https://brand.example")
        assert job_store.get(job_id).state == CrawlJobState.QUEUED

    def test_trigger_rejects_invalid_url(self, job_store, crawl_settings) -> None:
        service = IngestionService(job_store=job_store, settings=crawl_settings)
        with pytest.raises(InvalidInput):
            service.trigger("brand-1", "mailto:owner@brand.example")
        assert job_store.list_jobs() == []

    def test_wait_returns_terminal_job(self, job_store, crawl_settings, monotonic) -> None:
        def worker_exhausts_attempts(seconds: float) -> None:
            monotonic.now += seconds
            for _ in range(crawl_settings.max_attempts):
                job = job_store.lease("worker-a")
                if job is None:
                    return
                job_store.fail(job.id, "fetch_failed: HTTP 500", worker_id="worker-a")

        service = IngestionService(
            job_store=job_store,
            settings=crawl_settings,
            monotonic=monotonic,
            sleep=worker_exhausts_attempts,
        )

        job = service.trigger_and_wait("brand-1", "https://brand.example")

        assert job.state == CrawlJobState.FAILED
        assert job.attempts == 3

    def test_wait_times_out(self, job_store, crawl_settings, monotonic) -> None:
        slept: list[float] = []

        def sleep(seconds: float) -> None:
            slept.append(seconds)
            monotonic.now += seconds

        service = IngestionService(
            job_store=job_store,
            settings=crawl_settings,
            monotonic=monotonic,
            sleep=sleep,
        )

        with pytest.raises(IngestionTimeout) as excinfo:
            service.trigger_and_wait("brand-1", "https://brand.example", timeout=2.0)

        assert excinfo.value.state == CrawlJobState.QUEUED
        assert excinfo.value.timeout_seconds == 2.0
        assert slept == [0.5, 0.5, 0.5, 0.5]
        assert job_store.get(excinfo.value.job_id).state == CrawlJobState.QUEUED


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class _StubOrchestrator:
    def __init__(self, result=0, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.limits: list[int] = []

    def resume_stalled_runs(self, limit: int = 20) -> int:
        self.limits.append(limit)
        if self.error is not None:
            raise self.error
        return self.result


class TestScheduler:
    def test_registers_resume_job(self, monkeypatch) -> None:
        monkeypatch.setenv("ONBOARDING_RESUME_INTERVAL_SECONDS", "5")
        scheduler = build_scheduler(_StubOrchestrator())
        (job,) = scheduler.get_jobs()
        assert job.id == "resume_stalled_onboarding"
        assert job.trigger.interval.total_seconds() == 10

    def test_tick_returns_resumed_count(self) -> None:
        orchestrator = _StubOrchestrator(result=2)
        assert run_resume_stalled_onboarding(orchestrator, limit=7) == 2
        assert orchestrator.limits == [7]

    def test_tick_swallows_errors(self) -> None:
        orchestrator = _StubOrchestrator(error=RuntimeError("db down"))
        assert run_resume_stalled_onboarding(orchestrator) == 0


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLogEvent:
    def test_json_line(self, caplog) -> None:
        logger = logging.getLogger("tests.log_event")
        with caplog.at_level(logging.INFO, logger="tests.log_event"):
            log_event(logger, logging.INFO, "crawl_job_leased", job_id="j1", attempts=2)

        (record,) = caplog.records
        assert json.loads(record.getMessage()) == {
            "attempts": 2,
            "event": "crawl_job_leased",
            "job_id": "j1",
        }

    def test_disabled_level_is_skipped(self, caplog) -> None:
        logger = logging.getLogger("tests.log_event.quiet")
        with caplog.at_level(logging.WARNING, logger="tests.log_event.quiet"):
            log_event(logger, logging.DEBUG, "noisy")
        assert caplog.records == []
