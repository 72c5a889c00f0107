"""
app/config.py

Application-level configuration for the crawl, onboarding and scoring pipeline.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from db.config import load_env_files

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_floors_env(name: str, default: Mapping[str, float]) -> Mapping[str, float]:
    """
    Parse `dimension:floor` pairs, e.g. ``compliance:60,tone_alignment:40``.
    Malformed tokens are skipped with a WARNING log.
    """

    _load_env_once()
    raw = os.getenv(name, "").strip()
    if not raw:
        return MappingProxyType(dict(default))

    floors: dict[str, float] = {}
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        parts = token.split(":", 1)
        if len(parts) != 2 or not parts[0].strip():
            logger.warning("%s: skipping malformed token %r", name, token)
            continue
        try:
            floors[parts[0].strip().lower()] = float(parts[1])
        except ValueError:
            logger.warning("%s: skipping non-numeric floor %r", name, token)
    return MappingProxyType(floors)


@dataclass(frozen=True)
class CrawlSettings:
    """
    Job Store and crawl worker settings.
    """

    visibility_timeout_seconds: float = 300.0
    max_attempts: int = 3
    fetch_timeout_seconds: float = 15.0
    user_agent: str = "BrandOnboardingBot/1.0 (+https://example.com/bot)"
    worker_count: int = 4
    poll_interval_seconds: float = 2.0
    ingestion_wait_timeout_seconds: float = 120.0
    ingestion_poll_interval_seconds: float = 1.0


@dataclass(frozen=True)
class OnboardingSettings:
    """
    Onboarding orchestrator settings.
    """

    generation_max_attempts: int = 3
    backoff_initial_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    completion_timeout_seconds: float = 60.0
    content_items_per_run: int = 7
    plan_days: int = 7
    max_in_flight: int = 4
    draft_max_retries: int = 2
    stale_run_timeout_seconds: float = 900.0


_DEFAULT_FLOORS: Mapping[str, float] = MappingProxyType(
    {"compliance": 60.0, "tone_alignment": 40.0}
)


@dataclass(frozen=True)
class BFSSettings:
    """
    Brand Fidelity Score acceptance policy.
    """

    acceptance_threshold: float = 80.0
    dimension_floors: Mapping[str, float] = field(default_factory=lambda: _DEFAULT_FLOORS)


@dataclass(frozen=True)
class CompletionSettings:
    """
    AI completion adapter selection.
    """

    adapter: str = "openai"
    model: str = "gpt-4o"
    max_tokens: int = 2048
    api_key: str | None = None
    base_url: str | None = None


@lru_cache(maxsize=1)
def get_crawl_settings() -> CrawlSettings:
    """
    Return cached crawl settings from environment variables.
    """

    return CrawlSettings(
        visibility_timeout_seconds=max(
            1.0, _get_float_env("CRAWL_VISIBILITY_TIMEOUT_SECONDS", 300.0)
        ),
        max_attempts=max(1, _get_int_env("CRAWL_MAX_ATTEMPTS", 3)),
        fetch_timeout_seconds=max(1.0, _get_float_env("CRAWL_FETCH_TIMEOUT_SECONDS", 15.0)),
        user_agent=_get_str_env(
            "CRAWL_USER_AGENT",
            "BrandOnboardingBot/1.0 (+https://example.com/bot)",
        ),
        worker_count=max(1, _get_int_env("CRAWL_WORKER_COUNT", 4)),
        poll_interval_seconds=max(0.1, _get_float_env("CRAWL_POLL_INTERVAL_SECONDS", 2.0)),
        ingestion_wait_timeout_seconds=max(
            1.0, _get_float_env("CRAWL_INGESTION_WAIT_TIMEOUT_SECONDS", 120.0)
        ),
        ingestion_poll_interval_seconds=max(
            0.05, _get_float_env("CRAWL_INGESTION_POLL_INTERVAL_SECONDS", 1.0)
        ),
    )


@lru_cache(maxsize=1)
def get_onboarding_settings() -> OnboardingSettings:
    """
    Return cached onboarding orchestrator settings.
    """

    return OnboardingSettings(
        generation_max_attempts=max(1, _get_int_env("ONBOARDING_GENERATION_MAX_ATTEMPTS", 3)),
        backoff_initial_seconds=max(
            0.0, _get_float_env("ONBOARDING_BACKOFF_INITIAL_SECONDS", 1.0)
        ),
        backoff_multiplier=max(1.0, _get_float_env("ONBOARDING_BACKOFF_MULTIPLIER", 2.0)),
        completion_timeout_seconds=max(
            1.0, _get_float_env("ONBOARDING_COMPLETION_TIMEOUT_SECONDS", 60.0)
        ),
        content_items_per_run=max(1, _get_int_env("ONBOARDING_CONTENT_ITEMS_PER_RUN", 7)),
        plan_days=max(1, _get_int_env("ONBOARDING_PLAN_DAYS", 7)),
        max_in_flight=max(1, _get_int_env("ONBOARDING_MAX_IN_FLIGHT", 4)),
        draft_max_retries=max(0, _get_int_env("ONBOARDING_DRAFT_MAX_RETRIES", 2)),
        stale_run_timeout_seconds=max(
            60.0, _get_float_env("ONBOARDING_STALE_RUN_TIMEOUT_SECONDS", 900.0)
        ),
    )


@lru_cache(maxsize=1)
def get_bfs_settings() -> BFSSettings:
    """
    Return cached BFS acceptance settings.
    """

    return BFSSettings(
        acceptance_threshold=min(
            100.0, max(0.0, _get_float_env("BFS_ACCEPTANCE_THRESHOLD", 80.0))
        ),
        dimension_floors=_get_floors_env("BFS_DIMENSION_FLOORS", _DEFAULT_FLOORS),
    )


@lru_cache(maxsize=1)
def get_completion_settings() -> CompletionSettings:
    """
    Return cached AI completion adapter settings.
    """

    return CompletionSettings(
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        model=_get_str_env("LLM_MODEL", "gpt-4o"),
        max_tokens=max(64, _get_int_env("LLM_MAX_TOKENS", 2048)),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
    )


def get_bool_flag(name: str, default: bool) -> bool:
    """
    Public accessor for feature toggles such as CRAWL_WORKERS_ENABLED.
    """

    return _get_bool_env(name, default)
