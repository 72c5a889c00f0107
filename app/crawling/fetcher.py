"""
Page fetching boundary for crawl workers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

from app.errors import FetchError
from app.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    html: str
    headers: dict[str, str] = field(default_factory=dict)


class PageFetcher(Protocol):
    def fetch(self, url: str) -> FetchedPage:
        """Fetch one page or raise FetchError."""


class RequestsPageFetcher:
    """
    Single-request HTTP fetcher.

    No in-process retry: a failed fetch consumes one job attempt and the
    job is re-leased later.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float,
        user_agent: str,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }

    def fetch(self, url: str) -> FetchedPage:
        try:
            response = self._session.get(
                url,
                headers=self._headers,
                timeout=self._timeout_seconds,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise FetchError(url, f"timeout after {self._timeout_seconds:.0f}s") from exc
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        if response.status_code >= 400:
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)

        log_event(
            logger,
            logging.DEBUG,
            "page_fetched",
            url=url,
            final_url=response.url,
            status_code=response.status_code,
            bytes=len(response.content or b""),
        )
        return FetchedPage(
            url=url,
            final_url=response.url or url,
            status_code=response.status_code,
            html=response.text,
            headers=dict(response.headers),
        )
