"""
bfs/scoring.py

Brand Fidelity Score model implementing BaseFidelityScorer.
Scores a generated draft against the brand guide on five weighted
dimensions and applies the acceptance threshold and per-dimension floors.
"""

import math
import re
from typing import Callable, Dict, List, Mapping, Optional

from app.errors import ScoringFailure
from bfs.base import (
    COMPLIANCE,
    CTA_FIT,
    DIMENSION_WEIGHTS,
    PLATFORM_FIT,
    TERMINOLOGY_MATCH,
    TONE_ALIGNMENT,
    BaseFidelityScorer,
    BFSScore,
    DraftCandidate,
)
from content_generation.schema import BrandGuide

DimensionFn = Callable[[DraftCandidate, BrandGuide], float]

DEFAULT_THRESHOLD = 80.0
DEFAULT_FLOORS: Dict[str, float] = {COMPLIANCE: 60.0, TONE_ALIGNMENT: 40.0}

CONTRACTION_REGEX = re.compile(r"\b(don't|can't|won't|it's|you're|we're)\b")
PROFANITY_REGEX = re.compile(r"\b(damn|hell|crap)\b")
SENTENCE_SPLIT_REGEX = re.compile(r"[.!?]")
EXCESSIVE_PUNCTUATION_REGEX = re.compile(r"!{2,}")

CTA_ACTION_VERBS = (
    "click",
    "visit",
    "learn",
    "discover",
    "explore",
    "get",
    "join",
    "start",
    "try",
    "shop",
    "book",
    "download",
    "subscribe",
    "follow",
    "share",
    "comment",
    "dm",
)

# Below these per-dimension values (0..1) an issue is reported.
ISSUE_THRESHOLDS: Dict[str, float] = {
    TONE_ALIGNMENT: 0.7,
    TERMINOLOGY_MATCH: 0.7,
    COMPLIANCE: 1.0,
    CTA_FIT: 0.7,
    PLATFORM_FIT: 0.8,
}

ISSUE_MESSAGES: Dict[str, str] = {
    TONE_ALIGNMENT: "Tone does not match brand personality",
    TERMINOLOGY_MATCH: "Missing key brand terminology or phrases",
    COMPLIANCE: "Compliance issues detected (banned phrases or missing requirements)",
    CTA_FIT: "CTA does not align with brand voice or goals",
    PLATFORM_FIT: "Content does not fit platform best practices",
}


def _clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def score_tone_alignment(draft: DraftCandidate, guide: BrandGuide) -> float:
    """Share of tone and personality keywords present in the copy, doubled."""
    keywords = [keyword.lower() for keyword in [*guide.tone_keywords, *guide.personality]]
    if not keywords:
        return 0.8
    text = draft.combined_text.lower()
    matches = sum(1 for keyword in keywords if keyword in text)
    return _clamp((matches / len(keywords)) * 2)


def score_terminology_match(draft: DraftCandidate, guide: BrandGuide) -> float:
    text = draft.combined_text
    lowered = text.lower()
    score = 0.5

    phrases = [phrase.lower() for phrase in guide.brand_phrases]
    if phrases:
        found = sum(1 for phrase in phrases if phrase in lowered)
        score += (found / len(phrases)) * 0.3

    style = guide.voice_description.lower()
    has_contractions = CONTRACTION_REGEX.search(lowered) is not None
    if "conversational" in style:
        sentences = SENTENCE_SPLIT_REGEX.split(text)
        average_length = sum(len(s.strip().split(" ")) for s in sentences) / max(len(sentences), 1)
        if has_contractions:
            score += 0.1
        if "?" in text:
            score += 0.05
        if average_length < 20:
            score += 0.05
    if "formal" in style:
        if not has_contractions:
            score += 0.1
        if PROFANITY_REGEX.search(lowered) is None:
            score += 0.1

    return _clamp(score)


def score_compliance(draft: DraftCandidate, guide: BrandGuide) -> float:
    """Zero on any banned phrase, else the share of requirements met."""
    text = draft.combined_text
    lowered = text.lower()
    if any(phrase.lower() in lowered for phrase in guide.banned_phrases):
        return 0.0

    hashtags = {tag.lower().lstrip("#") for tag in draft.hashtags}
    requirements = len(guide.required_disclaimers) + len(guide.required_hashtags)
    if requirements == 0:
        return 1.0
    met = sum(1 for disclaimer in guide.required_disclaimers if disclaimer in text)
    met += sum(1 for tag in guide.required_hashtags if tag.lower().lstrip("#") in hashtags)
    return met / requirements


def score_cta_fit(draft: DraftCandidate, guide: BrandGuide) -> float:
    cta = (draft.cta or "").strip()
    if not cta:
        return 0.3

    lowered = cta.lower()
    score = 0.5
    if any(verb in lowered for verb in CTA_ACTION_VERBS):
        score += 0.3
    if len(cta.split()) <= 10:
        score += 0.1
    if any(keyword.lower() in lowered for keyword in guide.tone_keywords):
        score += 0.1
    return _clamp(score)


def score_platform_fit(draft: DraftCandidate, guide: BrandGuide) -> float:
    """Length and hashtag heuristics per platform."""
    platform = draft.platform.lower()
    body_length = len(draft.body)
    hashtag_count = len(draft.hashtags)
    headline = draft.headline or ""
    score = 0.5

    if platform == "instagram":
        if 125 <= body_length <= 2200:
            score += 0.2
        if 5 <= hashtag_count <= 10:
            score += 0.2
        if headline and len(headline) <= 60:
            score += 0.1
    elif platform == "linkedin":
        if 150 <= body_length <= 3000:
            score += 0.2
        if hashtag_count <= 5:
            score += 0.2
        if EXCESSIVE_PUNCTUATION_REGEX.search(draft.body) is None:
            score += 0.1
    elif platform == "facebook":
        if 80 <= body_length <= 300:
            score += 0.3
        if hashtag_count <= 3:
            score += 0.2
    elif platform == "twitter":
        if body_length <= 280:
            score += 0.3
        if hashtag_count <= 2:
            score += 0.2
    elif platform == "email":
        if headline and len(headline) <= 80:
            score += 0.2
        if body_length >= 100:
            score += 0.2
    elif platform == "blog":
        if headline:
            score += 0.2
        if body_length >= 300:
            score += 0.3
    else:
        score += 0.2

    return _clamp(score)


DEFAULT_DIMENSIONS: Dict[str, DimensionFn] = {
    TONE_ALIGNMENT: score_tone_alignment,
    TERMINOLOGY_MATCH: score_terminology_match,
    COMPLIANCE: score_compliance,
    CTA_FIT: score_cta_fit,
    PLATFORM_FIT: score_platform_fit,
}


class BrandFidelityScorer(BaseFidelityScorer):
    """Weighted Brand Fidelity Score on a 0-100 scale.

    Each dimension scorer returns a value in [0, 1]; it is scaled to
    0-100, weighted by DIMENSION_WEIGHTS and summed. A draft passes when
    the overall score reaches the threshold and no dimension is below its
    floor.
    """

    def __init__(
        self,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        floors: Optional[Mapping[str, float]] = None,
        dimensions: Optional[Mapping[str, DimensionFn]] = None,
    ) -> None:
        resolved = dict(DEFAULT_DIMENSIONS)
        if dimensions:
            resolved.update(dimensions)
        unknown = set(resolved) - set(DIMENSION_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown BFS dimensions: {sorted(unknown)}")

        self._threshold = threshold
        self._floors = dict(DEFAULT_FLOORS if floors is None else floors)
        self._dimensions = resolved

    @property
    def threshold(self) -> float:
        return self._threshold

    def score(self, draft: DraftCandidate, guide: BrandGuide) -> BFSScore:
        dimensions: Dict[str, float] = {}
        issues: List[str] = []

        for name in DIMENSION_WEIGHTS:
            try:
                raw = float(self._dimensions[name](draft, guide))
            except Exception as exc:
                raise ScoringFailure(name, exc) from exc
            if not math.isfinite(raw):
                raise ScoringFailure(name, ValueError(f"non-finite score {raw!r}"))
            value = _clamp(raw)
            dimensions[name] = round(value * 100.0, 2)
            if value < ISSUE_THRESHOLDS[name]:
                issues.append(ISSUE_MESSAGES[name])

        overall = round(
            sum(dimensions[name] * weight for name, weight in DIMENSION_WEIGHTS.items()),
            2,
        )

        floor_breaches = [
            name
            for name, floor in self._floors.items()
            if name in dimensions and dimensions[name] < floor
        ]
        for name in floor_breaches:
            issues.append(
                f"{name} {dimensions[name]:.0f} is below the floor of {self._floors[name]:.0f}"
            )
        if overall < self._threshold:
            issues.append(
                f"Overall score {overall:.1f} is below the threshold of {self._threshold:.0f}"
            )

        return BFSScore(
            overall=overall,
            dimensions=dimensions,
            passed=overall >= self._threshold and not floor_breaches,
            issues=issues,
        )
