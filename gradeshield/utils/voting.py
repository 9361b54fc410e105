"""
Tolerance-bucketed majority vote.

Values are snapped to the nearest 0.5 and counted; the most frequent
bucket wins and ties go to the bucket seen first. Used across OCR
engines for one frame and across frames for a whole recording.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .text_utils import percent


def half_bucket(value: float) -> float:
    """Snap a grade to the nearest 0.5 (halves round up)."""
    return math.floor(value * 2 + 0.5) / 2


@dataclass
class VoteResult:
    value: Optional[float]
    support: int
    total: int

    @property
    def consistency(self) -> int:
        """Share of votes in the winning bucket, as a rounded percentage."""
        return percent(self.support, self.total)

    @property
    def agreed(self) -> bool:
        return self.support >= 2


def majority_vote(values: Iterable[Optional[float]]) -> VoteResult:
    """Vote over non-null values. No values gives VoteResult(None, 0, 0)."""
    counts: dict[float, int] = {}
    total = 0
    for value in values:
        if value is None:
            continue
        total += 1
        bucket = half_bucket(value)
        counts[bucket] = counts.get(bucket, 0) + 1

    best_value: Optional[float] = None
    best_count = 0
    # dicts keep insertion order, so strict > keeps the first-seen bucket on ties
    for bucket, count in counts.items():
        if count > best_count:
            best_value = bucket
            best_count = count

    return VoteResult(value=best_value, support=best_count, total=total)
