"""
app/domain/extraction.py

Value objects produced by extraction strategies.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class TextBlock:
    """
    One piece of page copy. `kind` is the source element (h1, h2, h3, p).
    """

    kind: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImageAsset:
    """
    One image resolved to a canonical absolute URL.
    """

    url: str
    alt_text: str | None
    is_lazy_loaded: bool
    source_attribute: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
