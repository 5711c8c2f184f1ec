"""
Matchup Matrix

Directional advantage scores between archetypes.  The base layer is a
hand-authored rock-paper-scissors table (intentionally asymmetric); the
current layer blends in a stat-based term once per recalculation cycle.

Usage:
    matrix = MatchupMatrix(settings.balance)
    matrix.update_matrix(store.values)
    adj = matrix.calculate_matchup_adjustment(Archetype.MAGE, store.values)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

from balance_engine.characters import Archetype, Stat
from balance_engine.settings import BalanceCalculationSettings

_log = logging.getLogger("metabalance.matchups")

W, M, S, T = Archetype.WARRIOR, Archetype.MAGE, Archetype.SUPPORT, Archetype.TANK

# attacker -> defender -> advantage
BASE_MATCHUPS: Dict[Archetype, Dict[Archetype, float]] = {
    W: {W: 0.0, M: 3.0, S: 4.0, T: -2.0},
    M: {W: -3.0, M: 0.0, S: 2.0, T: 1.0},
    S: {W: -4.0, M: -2.0, S: 0.0, T: 3.0},
    T: {W: 2.0, M: -1.0, S: -3.0, T: 0.0},
}

# Per-point advantage coefficients
STAT_ADVANTAGE_COEFS = {
    Stat.HEALTH: 0.02,
    Stat.DAMAGE: 0.03,
    Stat.SPEED: 0.025,
    Stat.UTILITY: 0.02,
}

# How much each archetype cares about each advantage
ARCHETYPE_MATCHUP_WEIGHTS: Dict[Archetype, Dict[Stat, float]] = {
    W: {Stat.HEALTH: 0.4, Stat.DAMAGE: 0.4, Stat.SPEED: 0.2},
    M: {Stat.DAMAGE: 0.5, Stat.SPEED: 0.3, Stat.UTILITY: 0.2},
    S: {Stat.UTILITY: 0.5, Stat.SPEED: 0.3, Stat.HEALTH: 0.2},
    T: {Stat.HEALTH: 0.5, Stat.UTILITY: 0.3, Stat.DAMAGE: 0.2},
}

STAT_MATCHUP_CAP = 3.0
STAT_BLEND = 0.5
MIN_POPULARITY_WEIGHT = 0.1


def base_matchup(attacker: Archetype, defender: Archetype) -> float:
    if attacker == defender:
        return 0.0
    return BASE_MATCHUPS.get(attacker, {}).get(defender, 0.0)


def stat_based_matchup(attacker: Archetype, a_stats: Dict[Stat, float],
                       d_stats: Dict[Stat, float]) -> float:
    adv = {s: (a_stats[s] - d_stats[s]) * c for s, c in STAT_ADVANTAGE_COEFS.items()}
    weights = ARCHETYPE_MATCHUP_WEIGHTS.get(attacker, {})
    score = sum(adv[s] * w for s, w in weights.items())
    return max(-STAT_MATCHUP_CAP, min(STAT_MATCHUP_CAP, score))


@dataclass
class MatchupMatrix:
    settings: BalanceCalculationSettings = field(default_factory=BalanceCalculationSettings)
    current: Dict[Tuple[Archetype, Archetype], float] = field(default_factory=dict)

    @property
    def is_built(self) -> bool:
        return bool(self.current)

    def reset(self):
        self.current.clear()

    def update_matrix(self, values: Dict[Archetype, Dict[Stat, float]]):
        """Blend base and stat-based matchups; call once per cycle."""
        self.current = {}
        for a in values:
            for d in values:
                if a == d:
                    self.current[(a, d)] = 0.0
                else:
                    self.current[(a, d)] = (base_matchup(a, d)
                                            + STAT_BLEND * stat_based_matchup(a, values[a], values[d]))

    def rating(self, attacker: Archetype, defender: Archetype) -> float:
        if attacker == defender:
            return 0.0
        return self.current.get((attacker, defender), 0.0)

    def matchups_for(self, attacker: Archetype) -> Dict[Archetype, float]:
        return {d: v for (a, d), v in self.current.items() if a == attacker and d != attacker}

    def overall_advantage(self, attacker: Archetype) -> float:
        row = self.matchups_for(attacker)
        if not row:
            return 0.0
        return sum(row.values()) / len(row)

    def calculate_matchup_adjustment(self, attacker: Archetype,
                                     values: Dict[Archetype, Dict[Stat, float]]) -> float:
        """Popularity-weighted average matchup vs. the field, clamped."""
        if attacker not in values:
            return 0.0
        total = 0.0
        weight_sum = 0.0
        for defender, d_stats in values.items():
            if defender == attacker:
                continue
            score = base_matchup(attacker, defender) + stat_based_matchup(
                attacker, values[attacker], d_stats)
            weight = max(MIN_POPULARITY_WEIGHT, d_stats[Stat.POPULARITY] / 100.0)
            total += score * weight
            weight_sum += weight
        if weight_sum <= 0:
            return 0.0
        cap = self.settings.max_matchup_modifier
        return max(-cap, min(cap, total / weight_sum))

    def calculate_all_adjustments(self, values: Dict[Archetype, Dict[Stat, float]]) -> Dict[Archetype, float]:
        return {a: self.calculate_matchup_adjustment(a, values) for a in values}

    def to_dict(self) -> dict:
        return {
            a.value: {d.value: round(self.rating(a, d), 3) for d in Archetype}
            for a in Archetype
        }
