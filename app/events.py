"""
In-process crawl-completed event bus.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Protocol

from app.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlCompletedEvent:
    job_id: uuid.UUID
    brand_id: str
    result_ref: uuid.UUID


CrawlCompletedHandler = Callable[[CrawlCompletedEvent], None]


class EventTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        ...


class InlineExecutor:
    """Runs tasks on the calling thread."""

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        task(*args, **kwargs)


class EventPublisher(Protocol):
    def publish(self, event: CrawlCompletedEvent) -> None:
        ...


class InProcessEventBus:
    """
    Fan-out of crawl-completed events to subscribers.

    Handlers are dispatched through `executor` (a small thread pool by
    default) so the publishing Job Store call returns immediately. A failing
    handler is logged and does not affect the others.
    """

    def __init__(self, executor: EventTaskExecutor | None = None) -> None:
        self._owns_executor = executor is None
        self._executor: EventTaskExecutor = executor or ThreadPoolExecutor(
            max_workers=2,
            thread_name_prefix="crawl-events",
        )
        self._handlers: list[CrawlCompletedHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: CrawlCompletedHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def publish(self, event: CrawlCompletedEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        log_event(
            logger,
            logging.INFO,
            "crawl_completed_published",
            job_id=event.job_id,
            brand_id=event.brand_id,
            result_ref=event.result_ref,
            subscribers=len(handlers),
        )
        for handler in handlers:
            self._executor.submit(self._dispatch, handler, event)

    def shutdown(self) -> None:
        if self._owns_executor and isinstance(self._executor, ThreadPoolExecutor):
            self._executor.shutdown(wait=True)

    @staticmethod
    def _dispatch(handler: CrawlCompletedHandler, event: CrawlCompletedEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "Crawl-completed handler %s failed for job %s",
                getattr(handler, "__qualname__", repr(handler)),
                event.job_id,
            )
