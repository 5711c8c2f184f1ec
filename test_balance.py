#!/usr/bin/env python3
"""
Balance Pipeline Tests
=======================

Power, matchups, popularity influence, meta health and the win-rate
aggregator.
"""

import random

import pytest

from balance_engine.characters import Archetype, Stat, BASE_STATS, StatStore
from balance_engine.matchups import MatchupMatrix, base_matchup, stat_based_matchup
from balance_engine.meta import MetaCalculator
from balance_engine.popularity import PopularityInfluence
from balance_engine.power import PowerCalculator, raw_archetype_power, REFERENCE_KIT
from balance_engine.settings import BalanceCalculationSettings
from balance_engine.win_rates import WinRateAggregator

W, M, S, T = Archetype.WARRIOR, Archetype.MAGE, Archetype.SUPPORT, Archetype.TANK


def _kit(h=50.0, d=50.0, s=50.0, u=50.0, wr=50.0, pop=50.0):
    return {Stat.HEALTH: h, Stat.DAMAGE: d, Stat.SPEED: s, Stat.UTILITY: u,
            Stat.WIN_RATE: wr, Stat.POPULARITY: pop}


def _neutral_values():
    return {a: _kit() for a in Archetype}


def _quiet_settings(**overrides):
    """No variance, no drift: everything but the formulas switched off."""
    s = BalanceCalculationSettings(max_random_variance=0.0, meta_drift_strength=0.0)
    for k, v in overrides.items():
        setattr(s, k, v)
    return s


# ═══════════════════════════════════════════════════════════════
# POWER
# ═══════════════════════════════════════════════════════════════

class TestPowerCalculator:
    def test_base_power(self):
        calc = PowerCalculator()
        assert calc.base_power(_kit(h=60, d=40, s=50, u=50)) == pytest.approx(
            60 * 0.25 + 40 * 0.35 + 50 * 0.2 + 50 * 0.2)

    def test_raw_archetype_formulas_at_reference(self):
        assert raw_archetype_power(W, REFERENCE_KIT) == pytest.approx(82.0)
        assert raw_archetype_power(M, REFERENCE_KIT) == pytest.approx(80.0)
        assert raw_archetype_power(S, REFERENCE_KIT) == pytest.approx(43.25)
        assert raw_archetype_power(T, REFERENCE_KIT) == pytest.approx(140.0)

    def test_tank_speed_penalty(self):
        assert raw_archetype_power(T, _kit(s=70)) == pytest.approx(138.0)
        assert raw_archetype_power(T, _kit(s=60)) == pytest.approx(140.0)

    def test_mage_fragility_and_mobility(self):
        assert raw_archetype_power(M, _kit(h=30)) == pytest.approx(75.0)
        assert raw_archetype_power(M, _kit(s=60)) == pytest.approx(83.0)

    def test_warrior_rewards_even_stats(self):
        even = raw_archetype_power(W, _kit())
        lopsided = raw_archetype_power(W, _kit(h=50, d=50, s=10, u=90))
        assert even > lopsided

    def test_identical_kits_have_equal_power(self):
        calc = PowerCalculator()
        powers = calc.calculate_base_power_levels(_neutral_values(), cycle=0)
        first = powers[W]
        for p in powers.values():
            assert p == pytest.approx(first)

    def test_uncalibrated_archetypes_differ(self):
        calc = PowerCalculator(BalanceCalculationSettings(calibrate_archetype_power=False))
        powers = calc.calculate_base_power_levels(_neutral_values())
        assert powers[T] > powers[S]

    def test_synergy_terms(self):
        calc = PowerCalculator()
        assert calc.synergy_power(W, _kit(), cycle=0) == pytest.approx(2.0)
        # (90, 50, 50, 50): mean 60, no balance bonus, specialization (90-60-20)*0.05
        assert calc.synergy_power(W, _kit(h=90), cycle=0) == pytest.approx(0.5)

    def test_neutral_win_rates_are_archetype_modifiers(self):
        calc = PowerCalculator()
        wr = calc.calculate_base_win_rates(_neutral_values())
        assert wr[W] == pytest.approx(50.0)
        assert wr[M] == pytest.approx(50.0)
        assert wr[S] == pytest.approx(48.0)
        assert wr[T] == pytest.approx(51.0)

    def test_win_rate_clamped(self):
        calc = PowerCalculator()
        assert calc.power_to_win_rate(W, 200.0, 50.0) == 75.0
        assert calc.power_to_win_rate(W, 1.0, 50.0) == 25.0
        assert calc.power_to_win_rate(W, 10.0, 0.0) == 50.0

    def test_conversion_is_deterministic(self):
        calc = PowerCalculator()
        values = _neutral_values()
        values[M][Stat.DAMAGE] = 71.3
        values[T][Stat.SPEED] = 12.0
        a = calc.calculate_base_win_rates(values, cycle=7)
        b = calc.calculate_base_win_rates(values, cycle=7)
        assert a == b

    def test_damage_buff_raises_mage(self):
        calc = PowerCalculator()
        values = _neutral_values()
        values[M][Stat.DAMAGE] = 80
        wr = calc.calculate_base_win_rates(values)
        assert wr[M] > 50.0
        assert wr[M] > wr[W]


# ═══════════════════════════════════════════════════════════════
# MATCHUPS
# ═══════════════════════════════════════════════════════════════

class TestMatchupMatrix:
    def test_self_pairs_zero(self):
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[W][Stat.HEALTH] = 99
        values[M][Stat.DAMAGE] = 5
        matrix.update_matrix(values)
        for a in Archetype:
            assert matrix.rating(a, a) == 0.0
            assert base_matchup(a, a) == 0.0
            assert matrix.current[(a, a)] == 0.0

    def test_equal_stats_reproduce_base_table(self):
        matrix = MatchupMatrix()
        matrix.update_matrix(_neutral_values())
        assert matrix.rating(W, M) == pytest.approx(3.0)
        assert matrix.rating(S, T) == pytest.approx(3.0)
        assert matrix.rating(T, S) == pytest.approx(-3.0)

    def test_unbuilt_matrix_is_neutral(self):
        matrix = MatchupMatrix()
        assert not matrix.is_built
        assert matrix.rating(W, M) == 0.0
        assert matrix.overall_advantage(W) == 0.0

    def test_stat_based_term(self):
        a = _kit(d=60)
        d = _kit()
        # damage advantage 10 * 0.03 weighted 0.4 for warriors
        assert stat_based_matchup(W, a, d) == pytest.approx(0.12)

    def test_stat_based_clamp(self):
        assert stat_based_matchup(T, _kit(h=500), _kit(h=1)) == 3.0
        assert stat_based_matchup(T, _kit(h=1), _kit(h=500)) == -3.0

    def test_adjustment_equal_popularity(self):
        matrix = MatchupMatrix()
        values = _neutral_values()
        assert matrix.calculate_matchup_adjustment(W, values) == pytest.approx(5.0 / 3.0)
        assert matrix.calculate_matchup_adjustment(M, values) == pytest.approx(0.0)
        assert matrix.calculate_matchup_adjustment(S, values) == pytest.approx(-1.0)
        assert matrix.calculate_matchup_adjustment(T, values) == pytest.approx(-2.0 / 3.0)

    def test_adjustment_weighted_by_popularity(self):
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[M][Stat.POPULARITY] = 100
        # (3*1.0 + 4*0.5 - 2*0.5) / 2.0
        assert matrix.calculate_matchup_adjustment(W, values) == pytest.approx(2.0)

    def test_adjustment_min_weight(self):
        matrix = MatchupMatrix()
        values = _neutral_values()
        for a in (M, S, T):
            values[a][Stat.POPULARITY] = 0
        assert matrix.calculate_matchup_adjustment(W, values) == pytest.approx(5.0 / 3.0)

    def test_adjustment_clamped(self):
        matrix = MatchupMatrix(BalanceCalculationSettings(max_matchup_modifier=1.0))
        assert matrix.calculate_matchup_adjustment(W, _neutral_values()) == 1.0

    def test_overall_advantage(self):
        matrix = MatchupMatrix()
        matrix.update_matrix(_neutral_values())
        assert matrix.overall_advantage(W) == pytest.approx(5.0 / 3.0)
        assert len(matrix.matchups_for(W)) == 3


# ═══════════════════════════════════════════════════════════════
# POPULARITY
# ═══════════════════════════════════════════════════════════════

class TestPopularityInfluence:
    def test_centralization_penalty(self):
        p = PopularityInfluence()
        # -4 * 25/30, then the >85 kicker of (95-85) * 0.2
        assert p.centralization_effect(95) == pytest.approx(-4 * 25 / 30 - 2.0)
        assert p.centralization_effect(80) == pytest.approx(-4 * 10 / 30)
        assert p.centralization_effect(50) == 0.0

    def test_underdog_bonus(self):
        p = PopularityInfluence()
        assert p.centralization_effect(20) == pytest.approx(1.0)
        assert p.centralization_effect(0) == pytest.approx(3.0)

    def test_trend_smoothing(self):
        p = PopularityInfluence()
        p.update_trends({W: 60.0})
        assert p.trend_of(W) == pytest.approx(3.0)
        p.update_trends({W: 60.0})
        assert p.trend_of(W) == pytest.approx(2.1)

    def test_counter_meta_bonus(self):
        p = PopularityInfluence()
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[W][Stat.POPULARITY] = 100
        matrix.update_matrix(values)
        # tank beats warrior by 2; full weight at popularity 100
        assert p.counter_meta_bonus(T, values, matrix) == pytest.approx(1.0)
        assert p.counter_meta_bonus(M, values, matrix) == 0.0
        assert p.counter_meta_bonus(W, values, matrix) == 0.0

    def test_overpopular_character_is_suppressed(self):
        p = PopularityInfluence()
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[W][Stat.POPULARITY] = 95
        matrix.update_matrix(values)
        p.update_trends({a: v[Stat.POPULARITY] for a, v in values.items()})
        effects = p.calculate_effects(values, matrix)
        for other in (M, S, T):
            assert effects[W] < effects[other]

    def test_performance_drives_popularity(self):
        p = PopularityInfluence()
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[W][Stat.WIN_RATE] = 70
        matrix.update_matrix(values)
        new = p.update_popularity_from_performance(values, matrix, random.Random(3))
        # (4 + 0.5 +- 0.3) * 0.3
        assert 51.26 <= new[W] <= 51.44
        # support has negative appeal and no performance edge
        assert new[S] < 50.0

    def test_meta_adaptation_bonus(self):
        p = PopularityInfluence()
        matrix = MatchupMatrix()
        values = _neutral_values()
        values[W][Stat.POPULARITY] = 80
        matrix.update_matrix(values)
        new = p.update_popularity_from_performance(values, matrix, random.Random(5))
        # tank counters the dominant warrior: (-0.3 +- 0.3 + 0.6) * 0.3 >= 0
        assert new[T] >= 50.0

    def test_popularity_clamped(self):
        p = PopularityInfluence()
        values = _neutral_values()
        values[W][Stat.POPULARITY] = 100
        values[W][Stat.WIN_RATE] = 100
        values[S][Stat.POPULARITY] = 0
        values[S][Stat.WIN_RATE] = 0
        new = p.update_popularity_from_performance(values, MatchupMatrix(), random.Random(1))
        assert new[W] == 100.0
        assert new[S] == 0.0

    def test_diversity_and_extremes(self):
        pops = {W: 80.0, M: 50.0, S: 20.0, T: 50.0}
        assert PopularityInfluence.meta_diversity({a: 50.0 for a in Archetype}) == 100.0
        assert PopularityInfluence.meta_diversity(pops) < 100.0
        assert PopularityInfluence.extremes(pops) == (W, S)


# ═══════════════════════════════════════════════════════════════
# META HEALTH
# ═══════════════════════════════════════════════════════════════

class TestMetaHealth:
    def test_balance_perfect_at_fifty(self):
        meta = MetaCalculator()
        rng = random.Random(9)
        values = {a: _kit(h=rng.uniform(1, 100), d=rng.uniform(1, 100),
                          s=rng.uniform(1, 100), u=rng.uniform(1, 100),
                          pop=rng.uniform(0, 100)) for a in Archetype}
        assert meta.balance_score(values) == 100.0

    def test_balance_penalizes_excess_only(self):
        meta = MetaCalculator()
        values = _neutral_values()
        values[W][Stat.WIN_RATE] = 54      # inside the ideal range
        assert meta.balance_score(values) == 100.0
        values[W][Stat.WIN_RATE] = 60      # 5 over the range, mean 1.25
        assert meta.balance_score(values) == pytest.approx(96.25)

    def test_balance_floor(self):
        meta = MetaCalculator()
        values = {a: _kit(wr=100) for a in Archetype}
        assert meta.balance_score(values) == 0.0

    def test_diversity_monotonic(self):
        meta = MetaCalculator()
        scores = []
        for gap in (0, 5, 10, 20, 40):
            values = _neutral_values()
            values[W][Stat.HEALTH] = 50 + gap
            values[M][Stat.DAMAGE] = 50 + gap
            scores.append(meta.diversity_score(values))
        assert scores[0] == 0.0
        assert all(b > a for a, b in zip(scores, scores[1:]))

    def test_diversity_clamped(self):
        meta = MetaCalculator()
        values = _neutral_values()
        values[W] = _kit(h=1000, d=1000, s=1000, u=1000)
        assert meta.diversity_score(values) == 100.0

    def test_engagement(self):
        meta = MetaCalculator()
        values = _neutral_values()
        assert meta.engagement_score(values) == 100.0
        values[W][Stat.POPULARITY] = 90
        values[S][Stat.POPULARITY] = 40
        # range 50, ideal 25, 2 points per excess point
        assert meta.engagement_score(values) == pytest.approx(50.0)

    def test_overall_weights(self):
        meta = MetaCalculator()
        values = _neutral_values()
        values[W][Stat.HEALTH] = 90
        health = meta.meta_health(values)
        assert health.overall == pytest.approx(
            0.4 * health.diversity + 0.4 * health.balance + 0.2 * health.engagement)

    def test_shift_intensity(self):
        meta = MetaCalculator()
        meta.advance_cycle({W: 50.0, M: 50.0})
        assert meta.cycle == 1
        assert meta.meta_shift_intensity == 0.0
        meta.advance_cycle({W: 54.0, M: 48.0})
        assert meta.meta_shift_intensity == pytest.approx(3.0)

    def test_variance_bounds(self):
        meta = MetaCalculator()
        rng = random.Random(11)
        bound = meta.settings.max_random_variance + meta.max_drift()
        for cycle in range(200):
            meta.cycle = cycle
            for a in Archetype:
                assert abs(meta.meta_variance(a, rng)) <= bound

    def test_zero_variance_zero_drift(self):
        meta = MetaCalculator(_quiet_settings())
        meta.cycle = 17
        for a in Archetype:
            assert meta.meta_variance(a, random.Random(1)) == 0.0


# ═══════════════════════════════════════════════════════════════
# WIN-RATE AGGREGATOR
# ═══════════════════════════════════════════════════════════════

class TestWinRateAggregator:
    def test_neutral_roster_stays_at_fifty(self):
        settings = _quiet_settings(matchup_influence=0.0)
        for a in Archetype:
            settings.archetype_win_rate_modifiers[a] = 0.0
        agg = WinRateAggregator.build(settings)
        store = StatStore()
        report = agg.recalculate(store, random.Random(1))
        for a in Archetype:
            assert report.final[a] == pytest.approx(50.0)
            assert store.get(a, Stat.WIN_RATE) == pytest.approx(50.0)

    def test_archetype_modifiers_blend_in(self):
        agg = WinRateAggregator.build(_quiet_settings(matchup_influence=0.0))
        store = StatStore()
        report = agg.recalculate(store, random.Random(1))
        assert report.final[S] == pytest.approx(50.0 + 0.3 * -2.0)
        assert report.final[T] == pytest.approx(50.0 + 0.3 * 1.0)

    def test_momentum(self):
        agg = WinRateAggregator.build(_quiet_settings(matchup_influence=0.0))
        store = StatStore()
        store.set(W, Stat.WIN_RATE, 80)
        report = agg.recalculate(store, random.Random(1))
        assert report.final[W] == pytest.approx(80 + (50 - 80) * 0.3)

    def test_matchup_step_scaled_by_influence(self):
        agg = WinRateAggregator.build(_quiet_settings())
        report = agg.recalculate(StatStore(), random.Random(1))
        assert report.matchup[W] == pytest.approx(5.0 / 3.0 * 0.4)
        assert agg.matchups.is_built

    def test_cycle_advances(self):
        agg = WinRateAggregator.build(BalanceCalculationSettings())
        store = StatStore()
        first = agg.recalculate(store, random.Random(2))
        second = agg.recalculate(store, random.Random(2))
        assert (first.cycle, second.cycle) == (0, 1)
        assert agg.meta.cycle == 2

    def test_variance_is_bounded(self):
        settings = BalanceCalculationSettings()
        agg = WinRateAggregator.build(settings)
        store = StatStore()
        rng = random.Random(4)
        bound = settings.max_random_variance + agg.meta.max_drift()
        for _ in range(30):
            report = agg.recalculate(store, rng)
            for a in Archetype:
                assert abs(report.variance[a]) <= bound

    def test_extreme_stats_stay_in_bounds(self):
        agg = WinRateAggregator.build(BalanceCalculationSettings(max_random_variance=20.0))
        store = StatStore()
        store.set(M, Stat.DAMAGE, 1000)
        store.set(S, Stat.UTILITY, 1)
        store.set(T, Stat.POPULARITY, 100)
        rng = random.Random(8)
        for _ in range(50):
            agg.recalculate(store, rng)
            for a in Archetype:
                assert 0.0 <= store.get(a, Stat.WIN_RATE) <= 100.0

    def test_failed_step_falls_back(self, monkeypatch):
        settings = _quiet_settings(matchup_influence=0.0)
        for a in Archetype:
            settings.archetype_win_rate_modifiers[a] = 0.0
        agg = WinRateAggregator.build(settings)

        def boom(*args, **kwargs):
            raise ValueError("no power today")

        monkeypatch.setattr(agg.power, "calculate_base_win_rates", boom)
        report = agg.recalculate(StatStore(), random.Random(1))
        assert all(v == 50.0 for v in report.base.values())
        assert report.final[W] == pytest.approx(50.0)

    def test_reset_clears_state(self):
        agg = WinRateAggregator.build(BalanceCalculationSettings())
        agg.recalculate(StatStore(), random.Random(1))
        agg.reset()
        assert agg.meta.cycle == 0
        assert not agg.matchups.is_built
        assert agg.popularity.trends == {}

    def test_stabilize_runs_configured_iterations(self):
        agg = WinRateAggregator.build(BalanceCalculationSettings(calculation_iterations=4))
        agg.stabilize(StatStore(), random.Random(1))
        assert agg.meta.cycle == 4
