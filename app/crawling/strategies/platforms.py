"""
Platform-aware extraction strategies.

Each platform subclass only declares its lazy-load attributes, boilerplate
exclusions and CDN URL canonicalisation; traversal lives in
PlatformExtractionStrategy.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag

from app.crawling.strategies.base import (
    TEXT_ELEMENTS,
    alt_text_for,
    clean_text,
    is_tracking_image,
    parse_srcset,
    resolve_url,
)
from app.crawling.strategies.generic import GenericExtractionStrategy
from app.domain.extraction import ImageAsset, TextBlock
from app.domain.host import HostKind

SRCSET_ATTRIBUTES = frozenset({"srcset", "data-srcset", "data-lazy-srcset"})


class PlatformExtractionStrategy(GenericExtractionStrategy):
    """
    Lazy-load aware extraction with per-platform boilerplate removal.
    """

    # Source attributes in preference order; `src` is always tried last.
    # Only the `data-*` ones mark an image as lazy-loaded.
    LAZY_ATTRIBUTES: tuple[str, ...] = (
        "data-src",
        "data-image",
        "data-lazy-src",
        "data-original",
        "data-srcset",
        "srcset",
    )
    COPY_EXCLUSIONS: tuple[str, ...] = ()
    DROPPED_QUERY_PARAMS: frozenset[str] = frozenset()

    def extract_text(self, soup: BeautifulSoup, page_url: str) -> list[TextBlock]:
        excluded = self._excluded_nodes(soup)
        blocks: list[TextBlock] = []
        seen: set[tuple[str, str]] = set()
        for node in soup.find_all(TEXT_ELEMENTS):
            if self._is_excluded(node, excluded):
                continue
            text = clean_text(node.get_text(" ", strip=True))
            if not text:
                continue
            key = (node.name, text)
            if key in seen:
                continue
            seen.add(key)
            blocks.append(TextBlock(kind=node.name, text=text))
        return blocks

    def extract_images(self, soup: BeautifulSoup, page_url: str) -> list[ImageAsset]:
        excluded = self._excluded_nodes(soup)
        images: list[ImageAsset] = []
        seen: set[str] = set()

        for node in soup.find_all(["img", "source"]):
            if node.name == "source" and (node.parent is None or node.parent.name != "picture"):
                continue
            if self._is_excluded(node, excluded):
                continue

            picked = self._pick_source(node, page_url)
            if picked is None:
                continue
            url, attribute = picked
            url = self.canonicalize(url)
            if url in seen or is_tracking_image(url, node):
                continue
            seen.add(url)
            images.append(
                ImageAsset(
                    url=url,
                    alt_text=self._alt_text(node),
                    is_lazy_loaded=attribute.startswith("data-"),
                    source_attribute=attribute,
                )
            )
        return images

    def canonicalize(self, url: str) -> str:
        """
        Map a CDN variant (resized, reformatted) to its canonical asset URL.
        """

        parts = urlsplit(url)
        path = self.canonical_path(parts.path)
        query = parts.query
        if self.DROPPED_QUERY_PARAMS and query:
            kept = [
                (key, value)
                for key, value in parse_qsl(query, keep_blank_values=True)
                if key.lower() not in self.DROPPED_QUERY_PARAMS
            ]
            query = urlencode(kept)
        return urlunsplit((parts.scheme, parts.netloc, path, query, ""))

    def canonical_path(self, path: str) -> str:
        return path

    def _pick_source(self, node: Tag, page_url: str) -> tuple[str, str] | None:
        attributes = self.LAZY_ATTRIBUTES if node.name == "img" else ("data-srcset", "srcset")
        for attribute in (*attributes, "src"):
            raw = node.get(attribute)
            if not isinstance(raw, str) or not raw.strip():
                continue
            if attribute in SRCSET_ATTRIBUTES:
                raw = parse_srcset(raw)
            url = resolve_url(raw, page_url)
            if url is not None:
                return url, attribute
        return None

    @staticmethod
    def _alt_text(node: Tag) -> str | None:
        if node.name == "img":
            return alt_text_for(node)
        fallback = node.parent.find("img") if node.parent is not None else None
        return alt_text_for(fallback) if fallback is not None else None

    def _excluded_nodes(self, soup: BeautifulSoup) -> set[int]:
        excluded: set[int] = set()
        for selector in self.COPY_EXCLUSIONS:
            excluded.update(id(node) for node in soup.select(selector))
        return excluded

    @staticmethod
    def _is_excluded(node: Tag, excluded: set[int]) -> bool:
        if not excluded:
            return False
        if id(node) in excluded:
            return True
        return any(id(parent) in excluded for parent in node.parents)


class SquarespaceExtractionStrategy(PlatformExtractionStrategy):
    host_kind = HostKind.SQUARESPACE
    LAZY_ATTRIBUTES = ("data-src", "data-image", "data-srcset", "srcset")
    COPY_EXCLUSIONS = (
        ".sqs-cookie-banner",
        ".sqs-announcement-bar",
        ".announcement-bar-text",
        ".sqs-cookie-banner-v2",
    )
    # `?format=500w` selects a resized rendition of the same asset.
    DROPPED_QUERY_PARAMS = frozenset({"format"})


class WordPressExtractionStrategy(PlatformExtractionStrategy):
    host_kind = HostKind.WORDPRESS
    LAZY_ATTRIBUTES = (
        "data-lazy-src",
        "data-src",
        "data-original",
        "data-lazy-srcset",
        "data-srcset",
        "srcset",
    )
    COPY_EXCLUSIONS = (
        ".wp-block-search",
        ".comment-form",
        ".sidebar",
        "#secondary",
        "#cookie-notice",
        ".cookie-notice-container",
    )
    DROPPED_QUERY_PARAMS = frozenset({"resize", "fit", "w", "h", "ssl"})

    RESIZED_REGEX = re.compile(r"-\d+x\d+(?=\.[A-Za-z0-9]+$)")

    def canonical_path(self, path: str) -> str:
        if "/wp-content/uploads/" not in path:
            return path
        return self.RESIZED_REGEX.sub("", path)


class ShopifyExtractionStrategy(PlatformExtractionStrategy):
    host_kind = HostKind.SHOPIFY
    LAZY_ATTRIBUTES = ("data-src", "data-srcset", "srcset", "data-original")
    COPY_EXCLUSIONS = (
        ".announcement-bar",
        ".shopify-section-header-sticky",
        "#shopify-pc__banner",
        ".shopify-policy__container",
    )
    DROPPED_QUERY_PARAMS = frozenset({"width", "height", "crop"})

    SIZE_TOKEN_REGEX = re.compile(
        r"_(?:\{width\}|%7Bwidth%7D|\d+)x\d*(?:@\dx)?(?=\.[A-Za-z0-9]+$)",
        re.IGNORECASE,
    )

    def canonical_path(self, path: str) -> str:
        return self.SIZE_TOKEN_REGEX.sub("", path)


class WixExtractionStrategy(PlatformExtractionStrategy):
    host_kind = HostKind.WIX
    LAZY_ATTRIBUTES = ("data-src", "data-pin-media", "data-srcset", "srcset")
    COPY_EXCLUSIONS = (
        "[data-testid='WixAdsDesktopRoot']",
        "[data-hook='cookie-banner']",
        "#WIX_ADS",
    )

    def canonical_path(self, path: str) -> str:
        # /media/<id>~mv2.jpg/v1/fill/w_800,h_600/<name>.jpg -> /media/<id>~mv2.jpg
        marker = path.find("/v1/")
        return path[:marker] if marker > 0 else path
