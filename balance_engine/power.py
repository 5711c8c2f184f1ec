"""
Power Calculator

Turns raw stats into a power score per character and converts powers into
base win rates.

    final = 0.6 * base + 0.3 * archetype + 0.1 * synergy

Archetype formulas are coefficient tables (ARCHETYPE_FORMULAS): linear stat
terms, an optional min-of-two-stats synergy, and hinge terms of the form
``coef * max(0, value - pivot)`` (or ``pivot - value``).  The raw archetype
score is calibrated against the neutral 50/50/50/50 kit so identical kits
produce identical power regardless of archetype.

Usage:
    calc = PowerCalculator(settings.balance)
    powers = calc.calculate_base_power_levels(store.values, cycle=3)
    win_rates = calc.calculate_base_win_rates(store.values, cycle=3)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from balance_engine.characters import Archetype, Stat, BASE_STATS
from balance_engine.settings import BalanceCalculationSettings

BASE_WEIGHT = 0.6
ARCHETYPE_WEIGHT = 0.3
SYNERGY_WEIGHT = 0.1

MIN_BASE_WIN_RATE = 25.0
MAX_BASE_WIN_RATE = 75.0

REFERENCE_KIT = {s: 50.0 for s in BASE_STATS}

SPREAD = "spread"   # population std-dev of the four base stats


# ──────────────────────────────────────────────
# ARCHETYPE FORMULAS
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Hinge:
    """coef * max(0, value - pivot) when above, else coef * max(0, pivot - value)."""
    source: object          # Stat or SPREAD
    pivot: float
    coef: float
    above: bool = True


@dataclass(frozen=True)
class ArchetypeFormula:
    linear: Dict[Stat, float]
    min_pair: Optional[Tuple[Stat, Stat]] = None
    min_pair_coef: float = 0.0
    hinges: Tuple[Hinge, ...] = ()
    dominant_stat: Stat = Stat.DAMAGE   # drives the meta-cycle oscillation


ARCHETYPE_FORMULAS: Dict[Archetype, ArchetypeFormula] = {
    # Balanced fighter: rewards even stats and health/damage overlap
    Archetype.WARRIOR: ArchetypeFormula(
        linear={Stat.HEALTH: 0.4, Stat.DAMAGE: 0.4, Stat.SPEED: 0.1, Stat.UTILITY: 0.1},
        min_pair=(Stat.HEALTH, Stat.DAMAGE), min_pair_coef=0.16,
        hinges=(Hinge(SPREAD, 80.0, 0.3, above=False),),
        dominant_stat=Stat.DAMAGE,
    ),
    # Burst caster: damage heavy, mobility bonus, fragility penalty
    Archetype.MAGE: ArchetypeFormula(
        linear={Stat.DAMAGE: 1.2, Stat.UTILITY: 0.4},
        hinges=(
            Hinge(Stat.SPEED, 50.0, 0.3, above=True),
            Hinge(Stat.HEALTH, 40.0, -0.5, above=False),
        ),
        dominant_stat=Stat.UTILITY,
    ),
    # Enabler: utility first, then speed
    Archetype.SUPPORT: ArchetypeFormula(
        linear={Stat.UTILITY: 0.6, Stat.SPEED: 0.15, Stat.HEALTH: 0.08, Stat.DAMAGE: 0.02},
        min_pair=(Stat.UTILITY, Stat.SPEED), min_pair_coef=0.015,
        dominant_stat=Stat.SPEED,
    ),
    # Durable anchor: health and utility, slowed down past speed 60
    Archetype.TANK: ArchetypeFormula(
        linear={Stat.HEALTH: 1.45, Stat.UTILITY: 0.95, Stat.DAMAGE: 0.4},
        hinges=(Hinge(Stat.SPEED, 60.0, -0.2, above=True),),
        dominant_stat=Stat.HEALTH,
    ),
}


def stat_spread(stats: Dict[Stat, float]) -> float:
    vals = [stats[s] for s in BASE_STATS]
    mean = sum(vals) / len(vals)
    return math.sqrt(sum((v - mean) ** 2 for v in vals) / len(vals))


def raw_archetype_power(archetype: Archetype, stats: Dict[Stat, float]) -> float:
    """Uncalibrated archetype formula."""
    formula = ARCHETYPE_FORMULAS[archetype]
    total = sum(stats[s] * c for s, c in formula.linear.items())
    if formula.min_pair:
        a, b = formula.min_pair
        total += min(stats[a], stats[b]) * formula.min_pair_coef
    for h in formula.hinges:
        value = stat_spread(stats) if h.source == SPREAD else stats[h.source]
        gap = value - h.pivot if h.above else h.pivot - value
        total += h.coef * max(0.0, gap)
    return total


# ──────────────────────────────────────────────
# CALCULATOR
# ──────────────────────────────────────────────

@dataclass
class PowerCalculator:
    settings: BalanceCalculationSettings = field(default_factory=BalanceCalculationSettings)

    def base_power(self, stats: Dict[Stat, float]) -> float:
        s = self.settings
        return (stats[Stat.HEALTH] * s.health_weight
                + stats[Stat.DAMAGE] * s.damage_weight
                + stats[Stat.SPEED] * s.speed_weight
                + stats[Stat.UTILITY] * s.utility_weight)

    def archetype_power(self, archetype: Archetype, stats: Dict[Stat, float]) -> float:
        raw = raw_archetype_power(archetype, stats)
        if not self.settings.calibrate_archetype_power:
            return raw
        ref = raw_archetype_power(archetype, REFERENCE_KIT)
        if ref <= 0:
            return raw
        return raw * self.base_power(REFERENCE_KIT) / ref

    def synergy_power(self, archetype: Archetype, stats: Dict[Stat, float], cycle: int) -> float:
        vals = [stats[s] for s in BASE_STATS]
        mean = sum(vals) / len(vals)
        max_dev = max(abs(v - mean) for v in vals)

        synergy = max(0.0, (20.0 - max_dev) * 0.1)
        peak = max(vals)
        if peak > mean + 20.0:
            synergy += (peak - mean - 20.0) * 0.05

        dominant = stats[ARCHETYPE_FORMULAS[archetype].dominant_stat]
        synergy += math.sin(cycle * 0.1) * 2.0 * dominant * 0.02
        return synergy

    def power(self, archetype: Archetype, stats: Dict[Stat, float], cycle: int = 0) -> float:
        return (BASE_WEIGHT * self.base_power(stats)
                + ARCHETYPE_WEIGHT * self.archetype_power(archetype, stats)
                + SYNERGY_WEIGHT * self.synergy_power(archetype, stats, cycle))

    def calculate_base_power_levels(self, values: Dict[Archetype, Dict[Stat, float]],
                                    cycle: int = 0) -> Dict[Archetype, float]:
        return {arch: self.power(arch, stats, cycle) for arch, stats in values.items()}

    def power_to_win_rate(self, archetype: Archetype, power: float, average_power: float) -> float:
        if average_power <= 0:
            return 50.0
        wr = 50.0 * (power / average_power) + self.settings.win_rate_modifier(archetype)
        return max(MIN_BASE_WIN_RATE, min(MAX_BASE_WIN_RATE, wr))

    def calculate_base_win_rates(self, values: Dict[Archetype, Dict[Stat, float]],
                                 cycle: int = 0) -> Dict[Archetype, float]:
        powers = self.calculate_base_power_levels(values, cycle)
        if not powers:
            return {}
        avg = sum(powers.values()) / len(powers)
        return {arch: self.power_to_win_rate(arch, p, avg) for arch, p in powers.items()}
