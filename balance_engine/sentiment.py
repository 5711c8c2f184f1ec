"""
Community sentiment: one scalar in [0, 100], always moved by blending
toward a target rather than by raw addition.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_log = logging.getLogger("metabalance.sentiment")

# overall balance floor -> sentiment target range
BALANCE_SENTIMENT_BANDS: List[Tuple[float, Tuple[float, float]]] = [
    (80.0, (70.0, 90.0)),
    (60.0, (50.0, 75.0)),
    (40.0, (30.0, 55.0)),
    (20.0, (15.0, 40.0)),
    (0.0,  (10.0, 25.0)),
]

FEEDBACK_BLEND_PER_ITEM = 0.1


def _clamp(v: float) -> float:
    return max(0.0, min(100.0, v))


@dataclass
class CommunitySentiment:
    value: float = 65.0
    balance_blend: float = 0.3
    event_blend: float = 0.6
    initial: float = field(init=False)

    def __post_init__(self):
        self.value = _clamp(self.value)
        self.initial = self.value

    def reset(self):
        self.value = self.initial

    def blend_toward(self, target: float, weight: float) -> float:
        weight = max(0.0, min(1.0, weight))
        old = self.value
        self.value = _clamp(old + (_clamp(target) - old) * weight)
        return self.value - old

    def update_from_balance(self, overall_balance: float, rng: Optional[random.Random] = None) -> float:
        if rng is None:
            rng = random.Random()
        lo, hi = BALANCE_SENTIMENT_BANDS[-1][1]
        for floor, band in BALANCE_SENTIMENT_BANDS:
            if overall_balance >= floor:
                lo, hi = band
                break
        return self.blend_toward(rng.uniform(lo, hi), self.balance_blend)

    def apply_delta(self, delta: float) -> float:
        """Event outcome: blend toward value + delta."""
        return self.blend_toward(self.value + delta, self.event_blend)

    def apply_feedback(self, average_sentiment: float, count: int) -> float:
        """average_sentiment in [-1, 1]; more items pull harder."""
        if count <= 0:
            return 0.0
        target = (average_sentiment + 1.0) * 50.0
        return self.blend_toward(target, count * FEEDBACK_BLEND_PER_ITEM)

    def describe(self) -> str:
        if self.value >= 75:
            return "Very Positive"
        if self.value >= 60:
            return "Positive"
        if self.value >= 40:
            return "Mixed"
        if self.value >= 25:
            return "Negative"
        return "Hostile"
