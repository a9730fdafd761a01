"""
Review score rules

Score scale (-4..3):
- -4, 0: captain-only
- -2, 2: the old "rejection" / "support" scores, no longer selectable
- everything else: open to any reviewer
"""
from typing import Optional

MIN_SCORE = -4
MAX_SCORE = 3
CAPTAIN_SCORES = (-4, 0)
DEPRECATED_SCORES = (-2, 2)
BULK_SCORES = (1, 3)


def is_valid_score(score) -> bool:
    return (
        isinstance(score, int)
        and not isinstance(score, bool)
        and MIN_SCORE <= score <= MAX_SCORE
    )


def requires_captain(score: int) -> bool:
    return score in CAPTAIN_SCORES


def allow_deprecated_score(existing: Optional[int], requested: int) -> bool:
    """
    Deprecated scores stay writable only for a review that already holds
    the exact same score.

    Remove once no stored review uses -2 or 2.
    """
    if requested not in DEPRECATED_SCORES:
        return True
    return existing == requested
