"""
app/scheduler/jobs.py

APScheduler-based recovery scheduler for the onboarding pipeline.

Schedule
--------
  resume_stalled_onboarding — every ONBOARDING_RESUME_INTERVAL_SECONDS
                              (default 300)

A run whose stage has not moved for ``stale_run_timeout_seconds`` (process
restart, lost event thread) is advanced again from its persisted stage.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
import os

from apscheduler.schedulers.background import BackgroundScheduler

from app.services.onboarding_orchestrator import OnboardingOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_RESUME_INTERVAL_SECONDS = 300
DEFAULT_RESUME_BATCH_SIZE = 20


def _resume_interval_seconds() -> int:
    raw = os.getenv("ONBOARDING_RESUME_INTERVAL_SECONDS", "").strip()
    if not raw:
        return DEFAULT_RESUME_INTERVAL_SECONDS
    try:
        return max(10, int(raw))
    except ValueError:
        logger.warning(
            "ONBOARDING_RESUME_INTERVAL_SECONDS=%r is not an integer; using %d",
            raw,
            DEFAULT_RESUME_INTERVAL_SECONDS,
        )
        return DEFAULT_RESUME_INTERVAL_SECONDS


def run_resume_stalled_onboarding(
    orchestrator: OnboardingOrchestrator,
    limit: int = DEFAULT_RESUME_BATCH_SIZE,
) -> int:
    """
    Advance stalled onboarding runs. Failures are logged, never raised,
    so the next tick still runs.
    """
    logger.info("Scheduler: resume_stalled_onboarding starting")
    try:
        resumed = orchestrator.resume_stalled_runs(limit=limit)
    except Exception:  # noqa: BLE001
        logger.exception("Scheduler: resume_stalled_onboarding failed")
        return 0
    logger.info("Scheduler: resume_stalled_onboarding complete resumed=%d", resumed)
    return resumed


def build_scheduler(orchestrator: OnboardingOrchestrator) -> BackgroundScheduler:
    """
    Build and register the periodic recovery job.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_resume_stalled_onboarding,
        trigger="interval",
        seconds=_resume_interval_seconds(),
        args=[orchestrator],
        id="resume_stalled_onboarding",
        name="Resume stalled onboarding runs",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )

    return scheduler
