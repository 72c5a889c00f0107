"""
Host-agnostic extraction for pages on an unknown platform.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from app.crawling.strategies.base import (
    TEXT_ELEMENTS,
    ExtractionStrategy,
    alt_text_for,
    clean_text,
    is_tracking_image,
    resolve_url,
)
from app.domain.extraction import ImageAsset, TextBlock
from app.domain.host import HostKind


class GenericExtractionStrategy(ExtractionStrategy):
    """
    Plain `img[src]`, `h1`-`h3` and `p` extraction.
    """

    host_kind = HostKind.GENERIC

    def extract_text(self, soup: BeautifulSoup, page_url: str) -> list[TextBlock]:
        blocks: list[TextBlock] = []
        seen: set[tuple[str, str]] = set()
        for node in soup.find_all(TEXT_ELEMENTS):
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
        images: list[ImageAsset] = []
        seen: set[str] = set()
        for node in soup.find_all("img", src=True):
            url = resolve_url(node.get("src"), page_url)
            if url is None or url in seen or is_tracking_image(url, node):
                continue
            seen.add(url)
            images.append(
                ImageAsset(
                    url=url,
                    alt_text=alt_text_for(node),
                    is_lazy_loaded=False,
                    source_attribute="src",
                )
            )
        return images
