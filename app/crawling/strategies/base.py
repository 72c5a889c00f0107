"""
Base extraction strategy and shared URL / text helpers.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from app.domain.extraction import ImageAsset, TextBlock
from app.domain.host import HostKind

WHITESPACE_REGEX = re.compile(r"\s+")

TRACKING_HOST_FRAGMENTS = (
    "facebook.com/tr",
    "google-analytics.com",
    "googletagmanager.com",
    "doubleclick.net",
    "bat.bing.com",
    "px.ads.linkedin.com",
    "analytics.twitter.com",
    "pixel.wp.com",
    "stats.wp.com",
)
PLACEHOLDER_FRAGMENTS = ("spacer.gif", "blank.gif", "pixel.gif", "spinner", "loading.gif")

TEXT_ELEMENTS = ("h1", "h2", "h3", "p")


class ExtractionStrategy(ABC):
    """
    Extracts copy and images from one parsed page.
    """

    host_kind: HostKind = HostKind.GENERIC

    @abstractmethod
    def extract_text(self, soup: BeautifulSoup, page_url: str) -> list[TextBlock]:
        """
        Return headings and paragraphs in document order.
        """

    @abstractmethod
    def extract_images(self, soup: BeautifulSoup, page_url: str) -> list[ImageAsset]:
        """
        Return images resolved to absolute URLs, deduplicated by URL.
        """


def clean_text(value: str) -> str:
    return WHITESPACE_REGEX.sub(" ", value).strip()


def resolve_url(raw: str | None, page_url: str) -> str | None:
    """
    Resolve relative and protocol-relative references against `page_url`.

    Returns None for data URIs, empty values and non-http(s) schemes.
    """

    if not raw:
        return None
    candidate = raw.strip()
    if not candidate or candidate.lower().startswith(("data:", "javascript:", "about:", "blob:")):
        return None
    resolved, _fragment = urldefrag(urljoin(page_url, candidate))
    parts = urlsplit(resolved)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return resolved


def parse_srcset(value: str | None) -> str | None:
    """
    Pick the largest candidate from a srcset value (`w` or `x` descriptors).
    Candidates without a descriptor rank lowest; the first one wins ties.
    """

    if not value:
        return None

    best_url: str | None = None
    best_size = -1.0
    for candidate in value.split(","):
        parts = candidate.strip().split()
        if not parts:
            continue
        url = parts[0]
        size = 0.0
        if len(parts) > 1:
            descriptor = parts[1].lower()
            try:
                size = float(descriptor[:-1]) if descriptor[-1] in {"w", "x"} else 0.0
            except (ValueError, IndexError):
                size = 0.0
            if descriptor.endswith("x"):
                # Density descriptors rank below any width descriptor.
                size = size / 1000.0
        if size > best_size:
            best_url = url
            best_size = size
    return best_url


def is_tracking_image(url: str, node: Tag | None = None) -> bool:
    lowered = url.lower()
    if any(fragment in lowered for fragment in TRACKING_HOST_FRAGMENTS):
        return True
    if any(fragment in lowered for fragment in PLACEHOLDER_FRAGMENTS):
        return True
    if node is not None:
        width = str(node.get("width") or "").strip()
        height = str(node.get("height") or "").strip()
        if width in {"0", "1"} and height in {"0", "1"}:
            return True
    return False


def alt_text_for(node: Tag) -> str | None:
    alt = node.get("alt")
    if alt is None:
        return None
    cleaned = clean_text(str(alt))
    return cleaned or None
