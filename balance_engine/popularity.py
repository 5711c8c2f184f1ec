"""
Popularity Influence Engine

Two directions of coupling between popularity and performance:

- popularity -> win rate: overcentralization penalty, underdog bonus,
  trend damping, counter-meta bonus (calculate_effects)
- win rate -> popularity: performance, archetype appeal, meta adaptation
  (update_popularity_from_performance)

Trends must be updated once per cycle before effects are computed.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from balance_engine.characters import Archetype, Stat
from balance_engine.matchups import MatchupMatrix
from balance_engine.settings import BalanceCalculationSettings

_log = logging.getLogger("metabalance.popularity")

TREND_SMOOTHING = 0.3
TREND_EFFECT = 0.1
EXTREME_POPULARITY = 85.0
EXTREME_POPULARITY_KICKER = 0.2

COUNTER_META_POPULARITY = 60.0
COUNTER_META_SCALE = 0.5
COUNTER_META_CAP = 3.0

PERFORMANCE_INFLUENCE = 0.2
APPEAL_JITTER = 0.3
META_ADAPTATION_POPULARITY = 65.0
META_ADAPTATION_MIN_ADVANTAGE = 1.0
META_ADAPTATION_SCALE = 0.3
POPULARITY_CHANGE_RATE = 0.3

ARCHETYPE_APPEAL = {
    Archetype.WARRIOR: 0.5,
    Archetype.MAGE: 0.2,
    Archetype.SUPPORT: -0.8,
    Archetype.TANK: -0.3,
}


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


@dataclass
class PopularityTrend:
    previous_popularity: float = 50.0
    trend: float = 0.0


@dataclass
class PopularityInfluence:
    settings: BalanceCalculationSettings = field(default_factory=BalanceCalculationSettings)
    trends: Dict[Archetype, PopularityTrend] = field(default_factory=dict)

    def reset(self):
        self.trends.clear()

    def trend_of(self, archetype: Archetype) -> float:
        return self.trends.get(archetype, PopularityTrend()).trend

    def update_trends(self, popularities: Dict[Archetype, float]):
        for arch, pop in popularities.items():
            state = self.trends.setdefault(arch, PopularityTrend())
            state.trend = _lerp(state.trend, pop - state.previous_popularity, TREND_SMOOTHING)
            state.previous_popularity = pop

    # ── popularity -> win rate ──

    def centralization_effect(self, popularity: float) -> float:
        s = self.settings
        if popularity > s.high_popularity_threshold:
            excess = popularity - s.high_popularity_threshold
            effect = -s.popularity_penalty * (excess / (100.0 - s.high_popularity_threshold))
            if popularity > EXTREME_POPULARITY:
                effect -= (popularity - EXTREME_POPULARITY) * EXTREME_POPULARITY_KICKER
            return effect
        if popularity < s.low_popularity_threshold:
            deficit = s.low_popularity_threshold - popularity
            return s.unpopularity_bonus * (deficit / s.low_popularity_threshold)
        return 0.0

    def counter_meta_bonus(self, archetype: Archetype, values: Dict[Archetype, Dict[Stat, float]],
                           matrix: MatchupMatrix) -> float:
        bonus = 0.0
        for other, stats in values.items():
            if other == archetype:
                continue
            pop = stats[Stat.POPULARITY]
            if pop <= COUNTER_META_POPULARITY:
                continue
            adv = matrix.rating(archetype, other)
            if adv > 0:
                weight = (pop - COUNTER_META_POPULARITY) / (100.0 - COUNTER_META_POPULARITY)
                bonus += adv * weight * COUNTER_META_SCALE
        return max(0.0, min(COUNTER_META_CAP, bonus))

    def calculate_effect(self, archetype: Archetype, values: Dict[Archetype, Dict[Stat, float]],
                         matrix: MatchupMatrix) -> float:
        pop = values[archetype][Stat.POPULARITY]
        return (self.centralization_effect(pop)
                - self.trend_of(archetype) * TREND_EFFECT
                + self.counter_meta_bonus(archetype, values, matrix))

    def calculate_effects(self, values: Dict[Archetype, Dict[Stat, float]],
                          matrix: MatchupMatrix) -> Dict[Archetype, float]:
        return {a: self.calculate_effect(a, values, matrix) for a in values}

    # ── win rate -> popularity ──

    def update_popularity_from_performance(self, values: Dict[Archetype, Dict[Stat, float]],
                                           matrix: MatchupMatrix,
                                           rng: Optional[random.Random] = None) -> Dict[Archetype, float]:
        """Return the new popularity per character (caller writes them back)."""
        if rng is None:
            rng = random.Random()
        most_popular = max(values, key=lambda a: values[a][Stat.POPULARITY]) if values else None

        out = {}
        for arch, stats in values.items():
            performance = (stats[Stat.WIN_RATE] - 50.0) * PERFORMANCE_INFLUENCE
            appeal = ARCHETYPE_APPEAL.get(arch, 0.0) + rng.uniform(-APPEAL_JITTER, APPEAL_JITTER)
            adaptation = 0.0
            if (most_popular is not None and most_popular != arch
                    and values[most_popular][Stat.POPULARITY] > META_ADAPTATION_POPULARITY):
                adv = matrix.rating(arch, most_popular)
                if adv > META_ADAPTATION_MIN_ADVANTAGE:
                    adaptation = adv * META_ADAPTATION_SCALE
            change = (performance + appeal + adaptation) * POPULARITY_CHANGE_RATE
            out[arch] = max(0.0, min(100.0, stats[Stat.POPULARITY] + change))
        return out

    # ── diagnostics ──

    @staticmethod
    def meta_diversity(popularities: Dict[Archetype, float]) -> float:
        if not popularities:
            return 0.0
        vals = list(popularities.values())
        mean = sum(vals) / len(vals)
        std = math.sqrt(sum((v - mean) ** 2 for v in vals) / len(vals))
        return max(0.0, 100.0 - std * 2.0)

    @staticmethod
    def extremes(popularities: Dict[Archetype, float]) -> Tuple[Optional[Archetype], Optional[Archetype]]:
        """(most popular, least popular)."""
        if not popularities:
            return None, None
        return (max(popularities, key=popularities.get),
                min(popularities, key=popularities.get))
