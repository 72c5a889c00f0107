"""
bfs/policy.py

Accept / regenerate / escalate decision for a scored draft.
"""

from enum import Enum
from typing import Optional

from bfs.base import BFSScore


class DraftDecision(str, Enum):
    ACCEPT = "accept"
    REGENERATE = "regenerate"
    ESCALATE = "escalate"


def decide(score: Optional[BFSScore], retry_count: int, max_retries: int) -> DraftDecision:
    """Decide the next step for a draft.

    ``score`` is None when scoring failed; that is never a pass.
    A failing draft is regenerated while ``retry_count < max_retries``
    and escalated for human review after that.
    """
    if score is not None and score.passed:
        return DraftDecision.ACCEPT
    if retry_count < max_retries:
        return DraftDecision.REGENERATE
    return DraftDecision.ESCALATE
