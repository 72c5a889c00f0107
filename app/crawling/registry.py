"""
Extraction strategy registry keyed by host kind.
"""

from __future__ import annotations

from collections.abc import Mapping

from app.crawling.strategies import (
    ExtractionStrategy,
    GenericExtractionStrategy,
    ShopifyExtractionStrategy,
    SquarespaceExtractionStrategy,
    WixExtractionStrategy,
    WordPressExtractionStrategy,
)
from app.domain.host import HostKind, HostProfile


class StrategyRegistry:
    """
    Fixed host kind -> strategy table.

    Lookups never fail: an unknown or unmapped host kind resolves to the
    generic strategy. Overrides are passed at construction time.
    """

    def __init__(self, registrations: Mapping[HostKind, ExtractionStrategy] | None = None) -> None:
        self._generic: ExtractionStrategy = GenericExtractionStrategy()
        table: dict[HostKind, ExtractionStrategy] = {
            HostKind.GENERIC: self._generic,
            HostKind.SQUARESPACE: SquarespaceExtractionStrategy(),
            HostKind.WORDPRESS: WordPressExtractionStrategy(),
            HostKind.SHOPIFY: ShopifyExtractionStrategy(),
            HostKind.WIX: WixExtractionStrategy(),
        }
        if registrations:
            table.update(registrations)
        self._registrations = table

    def resolve(self, host_kind: HostKind | str | None) -> ExtractionStrategy:
        kind = host_kind if isinstance(host_kind, HostKind) else HostKind.parse(host_kind)
        return self._registrations.get(kind, self._generic)

    def for_profile(self, profile: HostProfile) -> ExtractionStrategy:
        return self.resolve(profile.host_kind)
