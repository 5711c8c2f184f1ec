"""
Meta Health & Meta Cycle

MetaHealth scores the whole roster:
    diversity  - how different the kits are (pairwise stat gaps)
    balance    - how close win rates sit to 50
    engagement - how evenly popularity is spread
    overall    = 0.4*diversity + 0.4*balance + 0.2*engagement

MetaCalculator also owns the calculation cycle counter, the meta-drift
oscillation and the meta-shift intensity (mean win-rate movement per cycle).
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, Optional

from balance_engine.characters import Archetype, Stat, BASE_STATS
from balance_engine.settings import BalanceCalculationSettings

DIVERSITY_SCALE = 2.0
BALANCE_PENALTY = 3.0
ENGAGEMENT_PENALTY = 2.0
OVERALL_BALANCE_PENALTY = 2.0

HEALTH_WEIGHTS = (0.4, 0.4, 0.2)   # diversity, balance, engagement


def _clamp(v: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, v))


# Per-archetype meta tendency: (function, frequency, phase, amplitude)
META_TENDENCIES = {
    Archetype.WARRIOR: (math.sin, 0.08, 0.0, 1.5),
    Archetype.MAGE:    (math.cos, 0.12, 0.0, 2.0),
    Archetype.SUPPORT: (math.sin, 0.06, 1.0, 1.0),
    Archetype.TANK:    (math.cos, 0.10, 2.0, 1.5),
}


@dataclass
class MetaHealth:
    diversity: float
    balance: float
    engagement: float
    overall: float

    def to_dict(self) -> dict:
        return {
            "diversity": round(self.diversity, 2),
            "balance": round(self.balance, 2),
            "engagement": round(self.engagement, 2),
            "overall": round(self.overall, 2),
        }


@dataclass
class MetaCalculator:
    settings: BalanceCalculationSettings = field(default_factory=BalanceCalculationSettings)
    cycle: int = 0
    meta_shift_intensity: float = 0.0
    smoothed_shift: float = 0.0
    previous_win_rates: Dict[Archetype, float] = field(default_factory=dict)

    def reset(self):
        self.cycle = 0
        self.meta_shift_intensity = 0.0
        self.smoothed_shift = 0.0
        self.previous_win_rates.clear()

    # ── scores ──

    def diversity_score(self, values: Dict[Archetype, Dict[Stat, float]]) -> float:
        pairs = list(combinations(values.values(), 2))
        if not pairs:
            return 0.0
        total = 0.0
        for a, b in pairs:
            total += sum(abs(a[s] - b[s]) for s in BASE_STATS) / len(BASE_STATS)
        return _clamp(total / len(pairs) * DIVERSITY_SCALE)

    def balance_score(self, values: Dict[Archetype, Dict[Stat, float]]) -> float:
        if not values:
            return 100.0
        ideal = self.settings.ideal_win_rate_range
        excess = [max(0.0, abs(v[Stat.WIN_RATE] - 50.0) - ideal) for v in values.values()]
        return max(0.0, 100.0 - BALANCE_PENALTY * (sum(excess) / len(excess)))

    def engagement_score(self, values: Dict[Archetype, Dict[Stat, float]]) -> float:
        if not values:
            return 100.0
        pops = [v[Stat.POPULARITY] for v in values.values()]
        spread = max(pops) - min(pops)
        ideal = self.settings.ideal_popularity_range
        if spread <= ideal:
            return 100.0
        return max(0.0, 100.0 - ENGAGEMENT_PENALTY * (spread - ideal))

    def meta_health(self, values: Dict[Archetype, Dict[Stat, float]]) -> MetaHealth:
        d = self.diversity_score(values)
        b = self.balance_score(values)
        e = self.engagement_score(values)
        wd, wb, we = HEALTH_WEIGHTS
        return MetaHealth(diversity=d, balance=b, engagement=e, overall=wd * d + wb * b + we * e)

    @staticmethod
    def overall_balance(values: Dict[Archetype, Dict[Stat, float]]) -> float:
        """100 when every win rate is 50, minus 2 per point of mean deviation."""
        if not values:
            return 100.0
        dev = sum(abs(v[Stat.WIN_RATE] - 50.0) for v in values.values()) / len(values)
        return max(0.0, 100.0 - dev * OVERALL_BALANCE_PENALTY)

    # ── cycle / drift ──

    def meta_drift(self, archetype: Archetype) -> float:
        c = self.cycle
        drift = math.sin((c + archetype.index) * 0.15) * 2.0
        fn, freq, phase, amp = META_TENDENCIES[archetype]
        drift += fn(c * freq + phase) * amp
        return drift * self.settings.meta_drift_strength

    def max_drift(self) -> float:
        amp = max(t[3] for t in META_TENDENCIES.values())
        return (2.0 + amp) * abs(self.settings.meta_drift_strength)

    def meta_variance(self, archetype: Archetype, rng: Optional[random.Random] = None) -> float:
        if rng is None:
            rng = random.Random()
        spread = self.settings.max_random_variance
        noise = rng.uniform(-spread, spread) if spread > 0 else 0.0
        return noise + self.meta_drift(archetype)

    def advance_cycle(self, win_rates: Dict[Archetype, float]) -> float:
        """Step the cycle and record how far win rates moved since the last one."""
        self.cycle += 1
        if self.previous_win_rates:
            shared = [a for a in win_rates if a in self.previous_win_rates]
            if shared:
                self.meta_shift_intensity = sum(
                    abs(win_rates[a] - self.previous_win_rates[a]) for a in shared
                ) / len(shared)
        self.smoothed_shift += (self.meta_shift_intensity - self.smoothed_shift) * self.settings.calculation_momentum
        self.previous_win_rates = dict(win_rates)
        return self.meta_shift_intensity
