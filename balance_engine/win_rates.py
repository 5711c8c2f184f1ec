"""
Win-Rate Aggregator

One recalculation cycle, in order:

    1. base win rate from power
    2. + matchup adjustment * matchup_influence   (matrix rebuilt once first)
    3. + popularity effect                         (trends updated first)
    4. + bounded random variance + meta drift
    5. momentum blend with the previous win rate
    6. clamp to [0, 100] and write back

Steps 1-3, 5 and 6 are exact for given stats; step 4 uses the injected RNG.
A failing sub-step logs and falls back to neutral (0 adjustment, 50 base).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from balance_engine.characters import Archetype, Stat, StatStore
from balance_engine.matchups import MatchupMatrix
from balance_engine.meta import MetaCalculator
from balance_engine.popularity import PopularityInfluence
from balance_engine.power import PowerCalculator
from balance_engine.settings import BalanceCalculationSettings

_log = logging.getLogger("metabalance.win_rates")

_RECOVERABLE = (KeyError, ValueError, ArithmeticError)


@dataclass
class RecalculationReport:
    """Per-character breakdown of one cycle."""
    cycle: int
    base: Dict[Archetype, float] = field(default_factory=dict)
    matchup: Dict[Archetype, float] = field(default_factory=dict)
    popularity: Dict[Archetype, float] = field(default_factory=dict)
    variance: Dict[Archetype, float] = field(default_factory=dict)
    target: Dict[Archetype, float] = field(default_factory=dict)
    final: Dict[Archetype, float] = field(default_factory=dict)
    meta_shift_intensity: float = 0.0
    smoothed_shift: float = 0.0

    def to_dict(self) -> dict:
        def _r(d):
            return {a.value: round(v, 3) for a, v in d.items()}
        return {
            "cycle": self.cycle,
            "base": _r(self.base),
            "matchup": _r(self.matchup),
            "popularity": _r(self.popularity),
            "variance": _r(self.variance),
            "target": _r(self.target),
            "final": _r(self.final),
            "meta_shift_intensity": round(self.meta_shift_intensity, 3),
            "smoothed_meta_shift": round(self.smoothed_shift, 3),
        }


@dataclass
class WinRateAggregator:
    settings: BalanceCalculationSettings
    power: PowerCalculator
    matchups: MatchupMatrix
    popularity: PopularityInfluence
    meta: MetaCalculator

    @classmethod
    def build(cls, settings: BalanceCalculationSettings) -> "WinRateAggregator":
        return cls(
            settings=settings,
            power=PowerCalculator(settings),
            matchups=MatchupMatrix(settings),
            popularity=PopularityInfluence(settings),
            meta=MetaCalculator(settings),
        )

    def reset(self):
        self.matchups.reset()
        self.popularity.reset()
        self.meta.reset()

    def recalculate(self, store: StatStore, rng: Optional[random.Random] = None) -> RecalculationReport:
        if rng is None:
            rng = random.Random()
        values = store.values
        report = RecalculationReport(cycle=self.meta.cycle)

        try:
            report.base = self.power.calculate_base_win_rates(values, self.meta.cycle)
        except _RECOVERABLE as e:
            _log.warning(f"Power calculation failed ({e!r}); using neutral base win rates")
            report.base = {a: 50.0 for a in values}

        try:
            self.matchups.update_matrix(values)
            report.matchup = {
                a: adj * self.settings.matchup_influence
                for a, adj in self.matchups.calculate_all_adjustments(values).items()
            }
        except _RECOVERABLE as e:
            _log.warning(f"Matchup adjustment failed ({e!r}); skipping")
            report.matchup = {a: 0.0 for a in values}

        try:
            self.popularity.update_trends(store.column(Stat.POPULARITY))
            report.popularity = self.popularity.calculate_effects(values, self.matchups)
        except _RECOVERABLE as e:
            _log.warning(f"Popularity effects failed ({e!r}); skipping")
            report.popularity = {a: 0.0 for a in values}

        speed = self.settings.win_rate_transition_speed
        for arch in values:
            variance = self.meta.meta_variance(arch, rng)
            target = (report.base.get(arch, 50.0)
                      + report.matchup.get(arch, 0.0)
                      + report.popularity.get(arch, 0.0)
                      + variance)
            previous = store.get(arch, Stat.WIN_RATE)
            blended = previous + (target - previous) * speed
            report.variance[arch] = variance
            report.target[arch] = target
            report.final[arch] = store.set(arch, Stat.WIN_RATE, blended)

        report.meta_shift_intensity = self.meta.advance_cycle(report.final)
        report.smoothed_shift = self.meta.smoothed_shift
        _log.debug(f"Cycle {report.cycle}: " + ", ".join(
            f"{a.value}={v:.1f}" for a, v in report.final.items()))
        return report

    def stabilize(self, store: StatStore, rng: Optional[random.Random] = None,
                  iterations: Optional[int] = None) -> RecalculationReport:
        """Run several cycles back to back (settings.calculation_iterations by default)."""
        n = max(1, iterations if iterations is not None else self.settings.calculation_iterations)
        report = None
        for _ in range(n):
            report = self.recalculate(store, rng)
        return report
