"""
tests/conftest.py

Shared fixtures: a file-backed SQLite database per test, a controllable
clock, and fakes for the page fetcher and the completion client.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from app.config import BFSSettings, CrawlSettings, OnboardingSettings
from app.crawling.fetcher import FetchedPage
from app.errors import FetchError
from app.services.job_store import JobStore
from content_generation.adapter import (
    KIND_BRAND_GUIDE,
    KIND_CONTENT_DRAFT,
    KIND_CONTENT_PLAN,
    CompletionClient,
    MockCompletionClient,
)
from db.base import Base
from db.session import build_session_factory

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic UTC clock; advance it explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 16, 9, 0, 0, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def session_factory(tmp_path: Path) -> sessionmaker[Session]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pipeline.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def crawl_settings() -> CrawlSettings:
    return CrawlSettings(
        visibility_timeout_seconds=60.0,
        max_attempts=3,
        fetch_timeout_seconds=5.0,
        worker_count=1,
        poll_interval_seconds=0.1,
        ingestion_wait_timeout_seconds=5.0,
        ingestion_poll_interval_seconds=0.5,
    )


@pytest.fixture()
def onboarding_settings() -> OnboardingSettings:
    return OnboardingSettings(
        generation_max_attempts=3,
        backoff_initial_seconds=1.0,
        backoff_multiplier=2.0,
        completion_timeout_seconds=5.0,
        content_items_per_run=3,
        plan_days=7,
        max_in_flight=1,
        draft_max_retries=2,
        stale_run_timeout_seconds=900.0,
    )


@pytest.fixture()
def bfs_settings() -> BFSSettings:
    return BFSSettings()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list = []

    def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def job_store(session_factory, crawl_settings, publisher, clock) -> JobStore:
    return JobStore(
        session_factory=session_factory,
        settings=crawl_settings,
        publisher=publisher,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class FakeFetcher:
    """Serves canned pages by URL; an Exception value is raised instead."""

    def __init__(self, pages: dict[str, FetchedPage | Exception] | None = None) -> None:
        self.pages: dict[str, FetchedPage | Exception] = dict(pages or {})
        self.calls: list[str] = []

    def add_html(self, url: str, html: str, headers: dict[str, str] | None = None) -> None:
        self.pages[url] = FetchedPage(
            url=url,
            final_url=url,
            status_code=200,
            html=html,
            headers=dict(headers or {}),
        )

    def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError(url, "HTTP 404", status_code=404)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def load_fixture() -> Callable[[str], str]:
    def _load(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")

    return _load


# ---------------------------------------------------------------------------
# Completion client
# ---------------------------------------------------------------------------


class ScriptedCompletionClient(CompletionClient):
    """
    Records every call and answers from per-kind scripts.

    A script entry is a raw string, an Exception to raise, or a callable
    taking the prompt. When a kind's script runs out, the deterministic
    mock answers.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.scripts: dict[str, list] = {
            KIND_BRAND_GUIDE: [],
            KIND_CONTENT_PLAN: [],
            KIND_CONTENT_DRAFT: [],
        }
        self._fallback = MockCompletionClient()

    def script(self, kind: str, *responses) -> None:
        self.scripts[kind].extend(responses)

    def calls_for(self, kind: str) -> list[str]:
        return [prompt for call_kind, prompt in self.calls if call_kind == kind]

    def generate(self, prompt: str, *, kind: str, timeout: float) -> str:
        self.calls.append((kind, prompt))
        queue = self.scripts.get(kind) or []
        if queue:
            response = queue.pop(0)
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(prompt)
            return response
        return self._fallback.generate(prompt, kind=kind, timeout=timeout)


@pytest.fixture()
def completion_client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture()
def no_sleep() -> Callable[[float], None]:
    slept: list[float] = []

    def _sleep(seconds: float) -> None:
        slept.append(seconds)

    _sleep.calls = slept  # type: ignore[attr-defined]
    return _sleep


def draft_json(
    *,
    body: str,
    headline: str | None = "Made for you",
    cta: str | None = "Visit us today for a warm welcome",
    hashtags: list[str] | None = None,
) -> str:
    return json.dumps(
        {"body": body, "headline": headline, "cta": cta, "hashtags": hashtags or []}
    )


@pytest.fixture()
def make_draft_json() -> Callable[..., str]:
    return draft_json
