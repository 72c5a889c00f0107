"""
app/domain package marker.
"""

from app.domain.extraction import ImageAsset, TextBlock
from app.domain.host import HostKind, HostProfile

__all__ = [
    "HostKind",
    "HostProfile",
    "ImageAsset",
    "TextBlock",
]
