"""
Hosting platform classifier.

Pure and network-free: the decision depends only on the page URL, the
response headers and the parsed document.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Iterable
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from app.domain.host import HostKind, HostProfile

SIGNAL_CATEGORIES: tuple[str, ...] = ("cdn", "header", "meta", "dom")

# Dict order is the tie-break order between platforms within one category.
# Entries starting with "/" are path fragments; the rest match a hostname or
# any of its subdomains.
URL_SIGNATURES: dict[HostKind, tuple[str, ...]] = {
    HostKind.SQUARESPACE: (
        "images.squarespace-cdn.com",
        "static1.squarespace.com",
        "squarespace.com",
        "sqsp.com",
    ),
    HostKind.WIX: (
        "static.wixstatic.com",
        "static.parastorage.com",
        "wixsite.com",
        "wix.com",
    ),
    HostKind.SHOPIFY: (
        "cdn.shopify.com",
        "shopifycdn.com",
        "myshopify.com",
    ),
    HostKind.WORDPRESS: (
        "/wp-content/",
        "/wp-includes/",
        "wordpress.com",
        "wp.com",
    ),
}

# (header name, substring required in the value or None for presence only)
HEADER_SIGNATURES: dict[HostKind, tuple[tuple[str, str | None], ...]] = {
    HostKind.SQUARESPACE: (("server", "squarespace"),),
    HostKind.WIX: (
        ("x-wix-request-id", None),
        ("x-wix-renderer-server", None),
    ),
    HostKind.SHOPIFY: (
        ("x-shopify-stage", None),
        ("x-shopid", None),
        ("x-sorting-hat-shopid", None),
    ),
    HostKind.WORDPRESS: (
        ("x-pingback", "xmlrpc.php"),
        ("link", "api.w.org"),
    ),
}

GENERATOR_PATTERNS: dict[HostKind, re.Pattern[str]] = {
    HostKind.SQUARESPACE: re.compile(r"squarespace", re.IGNORECASE),
    HostKind.WIX: re.compile(r"\bwix\b", re.IGNORECASE),
    HostKind.SHOPIFY: re.compile(r"shopify", re.IGNORECASE),
    HostKind.WORDPRESS: re.compile(r"wordpress", re.IGNORECASE),
}

CLASS_PREFIXES: dict[HostKind, tuple[str, ...]] = {
    HostKind.SQUARESPACE: ("sqs-",),
    HostKind.WIX: ("wixui", "comp-"),
    HostKind.SHOPIFY: ("shopify-",),
    HostKind.WORDPRESS: ("wp-",),
}

DOM_ATTRIBUTES: dict[HostKind, tuple[str, ...]] = {
    HostKind.SQUARESPACE: ("data-block-type", "data-sqsp-block"),
    HostKind.WIX: ("data-mesh-id", "data-testid-wix"),
    HostKind.SHOPIFY: ("data-shopify", "data-section-type"),
    HostKind.WORDPRESS: ("data-wp-interactive",),
}

ASSET_ATTRIBUTES = ("src", "href", "data-src", "data-image", "srcset", "data-srcset")
MAX_SCANNED_ELEMENTS = 2000

Evidence = dict[HostKind, str]


def classify_host(
    url: str,
    headers: Mapping[str, str] | None = None,
    page: BeautifulSoup | str | None = None,
) -> HostProfile:
    """
    Classify the hosting platform of a fetched page.

    Categories are checked in the order cdn, header, meta, dom. The first
    category with a match decides the host kind (ties inside a category go
    to the first platform in signature order). Confidence is the share of
    the four categories that corroborate the decided kind.
    """

    soup = _as_soup(page)
    normalized_headers = {
        str(name).strip().lower(): str(value) for name, value in (headers or {}).items()
    }

    detectors: tuple[tuple[str, Callable[[], Evidence]], ...] = (
        ("cdn", lambda: _detect_urls(url, soup)),
        ("header", lambda: _detect_headers(normalized_headers)),
        ("meta", lambda: _detect_generator(soup)),
        ("dom", lambda: _detect_dom(soup)),
    )

    decided: HostKind | None = None
    evidence_by_category: dict[str, Evidence] = {}
    for category, detector in detectors:
        evidence = detector()
        evidence_by_category[category] = evidence
        if decided is None and evidence:
            decided = next(iter(evidence))

    if decided is None:
        return HostProfile.generic()

    signals = tuple(
        f"{category}:{evidence_by_category[category][decided]}"
        for category in SIGNAL_CATEGORIES
        if decided in evidence_by_category[category]
    )
    return HostProfile(
        host_kind=decided,
        confidence=len(signals) / len(SIGNAL_CATEGORIES),
        signals=signals,
    )


def _as_soup(page: BeautifulSoup | str | None) -> BeautifulSoup | None:
    if page is None:
        return None
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page, "html.parser")


def _collect(matches: Iterable[tuple[HostKind, str]]) -> Evidence:
    """Keep the first evidence per kind, ordered by platform signature order."""
    found: dict[HostKind, str] = {}
    for kind, evidence in matches:
        found.setdefault(kind, evidence)
    return {kind: found[kind] for kind in URL_SIGNATURES if kind in found}


def _url_matches(candidate: str, hostname: str | None, pattern: str) -> bool:
    """Path signatures match anywhere; host signatures match the hostname or a subdomain."""
    if pattern.startswith("/"):
        return pattern in candidate
    if not hostname:
        return False
    return hostname == pattern or hostname.endswith("." + pattern)


def _hostname(candidate: str) -> str | None:
    try:
        return urlsplit(candidate).hostname
    except ValueError:
        return None


def _detect_urls(url: str, soup: BeautifulSoup | None) -> Evidence:
    candidates = [url.strip().lower()]
    if soup is not None:
        for tag in soup.find_all(["img", "script", "link", "source"], limit=MAX_SCANNED_ELEMENTS):
            for attribute in ASSET_ATTRIBUTES:
                value = tag.get(attribute)
                if not isinstance(value, str) or not value.strip():
                    continue
                if attribute.endswith("srcset"):
                    candidates.extend(
                        entry.split()[0].lower() for entry in value.split(",") if entry.strip()
                    )
                else:
                    candidates.append(value.strip().lower())

    hosts = [(candidate, _hostname(candidate)) for candidate in candidates]

    def matches() -> Iterable[tuple[HostKind, str]]:
        for kind, patterns in URL_SIGNATURES.items():
            for candidate, hostname in hosts:
                for pattern in patterns:
                    if _url_matches(candidate, hostname, pattern):
                        yield kind, pattern.strip("/")
                        break

    return _collect(matches())


def _detect_headers(headers: Mapping[str, str]) -> Evidence:
    def matches() -> Iterable[tuple[HostKind, str]]:
        for kind, signatures in HEADER_SIGNATURES.items():
            for name, needle in signatures:
                value = headers.get(name)
                if value is None:
                    continue
                if needle is None or needle in value.lower():
                    yield kind, name

    return _collect(matches())


def _detect_generator(soup: BeautifulSoup | None) -> Evidence:
    if soup is None:
        return {}

    def matches() -> Iterable[tuple[HostKind, str]]:
        for meta in soup.find_all("meta", attrs={"name": re.compile(r"^generator$", re.I)}):
            content = str(meta.get("content") or "").strip()
            if not content:
                continue
            for kind, pattern in GENERATOR_PATTERNS.items():
                if pattern.search(content):
                    yield kind, content

    return _collect(matches())


def _detect_dom(soup: BeautifulSoup | None) -> Evidence:
    if soup is None:
        return {}

    def matches() -> Iterable[tuple[HostKind, str]]:
        for tag in soup.find_all(True, limit=MAX_SCANNED_ELEMENTS):
            classes = tag.get("class") or []
            for css_class in classes:
                lowered = css_class.lower()
                for kind, prefixes in CLASS_PREFIXES.items():
                    if lowered.startswith(prefixes):
                        yield kind, f".{css_class}"
            element_id = str(tag.get("id") or "").lower()
            if element_id.startswith("comp-"):
                yield HostKind.WIX, f"#{element_id}"
            for kind, attributes in DOM_ATTRIBUTES.items():
                for attribute in attributes:
                    if tag.has_attr(attribute):
                        yield kind, f"[{attribute}]"

    return _collect(matches())
