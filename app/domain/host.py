"""
app/domain/host.py

Hosting platform classification types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class HostKind(str, Enum):
    SQUARESPACE = "squarespace"
    WORDPRESS = "wordpress"
    SHOPIFY = "shopify"
    WIX = "wix"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: str | None) -> "HostKind":
        """Resolve a stored value; anything unrecognised is GENERIC."""
        if not value:
            return cls.GENERIC
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.GENERIC


@dataclass(frozen=True)
class HostProfile:
    """
    Detected platform for one fetched page.

    `signals` holds `category:evidence` strings, e.g.
    ``cdn:images.squarespace-cdn.com`` or ``meta:Squarespace 7.1``.
    """

    host_kind: HostKind
    confidence: float
    signals: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def generic(cls) -> "HostProfile":
        return cls(host_kind=HostKind.GENERIC, confidence=0.0, signals=())
