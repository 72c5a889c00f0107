"""
bfs/base.py

Brand Fidelity Score types and the abstract scorer interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from content_generation.schema import BrandGuide

TONE_ALIGNMENT = "tone_alignment"
TERMINOLOGY_MATCH = "terminology_match"
COMPLIANCE = "compliance"
CTA_FIT = "cta_fit"
PLATFORM_FIT = "platform_fit"

# Scoring weights, must sum to 1.0
DIMENSION_WEIGHTS: Dict[str, float] = {
    TONE_ALIGNMENT: 0.30,
    TERMINOLOGY_MATCH: 0.20,
    COMPLIANCE: 0.20,
    CTA_FIT: 0.15,
    PLATFORM_FIT: 0.15,
}


@dataclass(frozen=True)
class DraftCandidate:
    """Generated copy as seen by the scorer."""

    platform: str
    body: str
    headline: Optional[str] = None
    cta: Optional[str] = None
    hashtags: Tuple[str, ...] = ()

    @property
    def combined_text(self) -> str:
        return f"{self.headline or ''} {self.body} {self.cta or ''}"


@dataclass(frozen=True)
class BFSScore:
    """Weighted score on a 0-100 scale with per-dimension breakdown."""

    overall: float
    dimensions: Dict[str, float]
    passed: bool
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "dimensions": dict(self.dimensions),
            "passed": self.passed,
            "issues": list(self.issues),
        }


class BaseFidelityScorer(ABC):
    """Abstract base class for brand fidelity scorers.

    Implementations must be pure: the same draft and guide always yield
    the same score, with no I/O.
    """

    @abstractmethod
    def score(self, draft: DraftCandidate, guide: BrandGuide) -> BFSScore:
        """Score a draft against a brand guide.

        Raises:
            ScoringFailure: If any dimension cannot be computed.
        """
        raise NotImplementedError("Subclasses must implement score()")
