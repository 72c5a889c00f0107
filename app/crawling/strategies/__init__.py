"""
Extraction strategy implementations.
"""

from app.crawling.strategies.base import ExtractionStrategy
from app.crawling.strategies.generic import GenericExtractionStrategy
from app.crawling.strategies.platforms import (
    PlatformExtractionStrategy,
    ShopifyExtractionStrategy,
    SquarespaceExtractionStrategy,
    WixExtractionStrategy,
    WordPressExtractionStrategy,
)

__all__ = [
    "ExtractionStrategy",
    "GenericExtractionStrategy",
    "PlatformExtractionStrategy",
    "ShopifyExtractionStrategy",
    "SquarespaceExtractionStrategy",
    "WixExtractionStrategy",
    "WordPressExtractionStrategy",
]
