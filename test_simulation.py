#!/usr/bin/env python3
"""
Simulation Loop & Community Feedback Tests
===========================================

Phase/week loop, stat changes through the simulation, reset, the
reentrancy guard, feedback generation and the sequential feedback queue.
"""

import random

import pytest

from balance_engine import (
    MetaSimulation, GamePhase, Archetype, Stat, load_settings,
    InvalidCharacter, InvalidStat, InsufficientResources, EventNotFound, SimulationBusy,
    ChangeNotFound, ChangeNotUndoable, ChangeStatus, InvalidPhase,
)
from balance_engine.event_catalog import templates_for
from balance_engine.events import EventCategory
from balance_engine.feedback import (
    BalanceChange, CommunityFeedbackManager, FeedbackItem, FeedbackQueue, FeedbackType,
    PopularityShiftStrategy, Segment,
)
from balance_engine.settings import FeedbackSettings


def _sim(seed=42, **feedback_overrides) -> MetaSimulation:
    settings = load_settings()
    for k, v in feedback_overrides.items():
        setattr(settings.feedback, k, v)
    return MetaSimulation(settings=settings, seed=seed)


def _item(n=0) -> FeedbackItem:
    return FeedbackItem(author=f"user{n}", segment=Segment.GENERAL,
                        feedback_type=FeedbackType.DISCUSSION, content=f"post {n}", sentiment=0.0)


# ═══════════════════════════════════════════════════════════════
# PHASE LOOP
# ═══════════════════════════════════════════════════════════════

class TestPhaseLoop:
    def test_initial_state(self):
        sim = _sim()
        assert sim.phase == GamePhase.PLANNING
        assert sim.week == 1
        assert sim.resources.to_dict() == {"rp": 24, "cp": 0}
        assert sim.get_community_sentiment() == 65.0

    def test_phase_order(self):
        sim = _sim()
        seen = [sim.advance_phase() for _ in range(4)]
        assert seen == [GamePhase.IMPLEMENTATION, GamePhase.FEEDBACK,
                        GamePhase.EVENT, GamePhase.PLANNING]

    def test_week_rollover(self):
        sim = _sim()
        for _ in range(4):
            sim.advance_phase()
        assert sim.week == 2
        assert sim.resources.to_dict() == {"rp": 34, "cp": 5}
        assert sim.last_report is not None

    def test_event_phase_generates(self):
        sim = _sim()
        sim.advance_phase(GamePhase.EVENT)
        assert len(sim.get_active_events()) >= 1
        assert any(n.kind == "event" for n in sim.notices)

    def test_continuous_event_phase_only_triggers(self):
        settings = load_settings()
        settings.events.schedule_mode = "continuous"
        sim = MetaSimulation(settings=settings, seed=1)
        sim.advance_phase(GamePhase.EVENT)
        assert sim.get_active_events() == []

    def test_same_phase_is_noop(self):
        sim = _sim()
        before = len(sim.notices)
        assert sim.advance_phase("planning") == GamePhase.PLANNING
        assert len(sim.notices) == before

    def test_unknown_phase(self):
        with pytest.raises(ValueError):
            _sim().advance_phase("lunch")

    def test_seasonal_week(self):
        sim = _sim()
        for _ in range(4):
            sim.advance_week()
        assert sim.week == 5
        cats = [e.definition.category for e in sim.get_active_events()]
        assert EventCategory.SEASONAL in cats

    def test_weeks_stay_in_bounds(self):
        sim = _sim(seed=3)
        for _ in range(6):
            for _ in range(4):
                sim.advance_phase()
            sim.tick(30.0)
            for a in Archetype:
                assert 0.0 <= sim.get_stat(a, Stat.WIN_RATE) <= 100.0
                assert 0.0 <= sim.get_stat(a, Stat.POPULARITY) <= 100.0
            assert 0.0 <= sim.get_community_sentiment() <= 100.0

    def test_to_dict(self):
        d = _sim().to_dict()
        assert d["phase"] == "planning"
        assert set(d["characters"]) == {"warrior", "mage", "support", "tank"}
        assert set(d["meta_health"]) == {"diversity", "balance", "engagement", "overall"}


# ═══════════════════════════════════════════════════════════════
# STATS THROUGH THE SIMULATION
# ═══════════════════════════════════════════════════════════════

class TestStatChanges:
    def test_modify_triggers_recalculation(self):
        sim = _sim()
        value = sim.modify_stat("mage", "damage", 10)
        assert value == pytest.approx(55.0)
        assert sim.aggregator.meta.cycle == 1
        assert sim.last_report is not None

    def test_win_rate_write_does_not_recalculate(self):
        sim = _sim()
        sim.set_stat(Archetype.TANK, Stat.WIN_RATE, 60)
        assert sim.aggregator.meta.cycle == 0
        assert sim.get_stat("tank", "winrate") == 60.0

    def test_manual_recalculation_mode(self):
        settings = load_settings()
        sim = MetaSimulation(settings=settings, seed=1, auto_recalculate=False)
        sim.modify_stat(Archetype.WARRIOR, Stat.HEALTH, 20)
        assert sim.aggregator.meta.cycle == 0
        sim.recalculate_win_rates()
        assert sim.aggregator.meta.cycle == 1

    def test_unknown_keys(self):
        sim = _sim()
        with pytest.raises(InvalidCharacter):
            sim.modify_stat("rogue", Stat.HEALTH, 10)
        with pytest.raises(InvalidStat):
            sim.set_stat(Archetype.MAGE, "mana", 10)
        assert sim.pending_changes == []

    def test_clamped_through_simulation(self):
        sim = _sim()
        sim.modify_stat(Archetype.SUPPORT, Stat.SPEED, -300)
        sim.set_stat(Archetype.MAGE, Stat.POPULARITY, 400)
        assert sim.get_stat(Archetype.SUPPORT, Stat.SPEED) == 1.0
        assert sim.get_stat(Archetype.MAGE, Stat.POPULARITY) == 100.0

    def test_changes_recorded(self):
        sim = _sim()
        sim.modify_stat(Archetype.MAGE, Stat.DAMAGE, 20)
        change = sim.pending_changes[0]
        assert change.character == Archetype.MAGE
        assert (change.previous_value, change.new_value) == (50.0, 60.0)

    def test_burst_of_big_changes_raises_reaction(self):
        sim = _sim()
        for stat in (Stat.HEALTH, Stat.DAMAGE, Stat.SPEED):
            sim.modify_stat(Archetype.TANK, stat, 40)
        keys = [e.definition.key for e in sim.get_active_events()]
        assert "reaction.patch_whiplash" in keys

    def test_overpowered_popularity_boost(self):
        sim = _sim()
        sim.set_stat(Archetype.WARRIOR, Stat.WIN_RATE, 70)
        sim.recalculate_win_rates()
        assert sim.store.balance_state(Archetype.WARRIOR).value == "overpowered"
        assert sim.get_stat(Archetype.WARRIOR, Stat.POPULARITY) == pytest.approx(52.5)
        sim.recalculate_win_rates()
        assert sim.get_stat(Archetype.WARRIOR, Stat.POPULARITY) == pytest.approx(52.5)

    def test_reset_matches_fresh_simulation(self):
        sim = _sim(seed=11)
        sim.modify_stat(Archetype.MAGE, Stat.DAMAGE, 35)
        sim.set_stat(Archetype.TANK, Stat.HEALTH, 80)
        sim.recalculate_win_rates()
        sim.reset_all_characters(seed=7)

        fresh = _sim(seed=7)
        assert sim.store.snapshot() == fresh.store.snapshot()
        assert sim.aggregator.meta.cycle == 0

        a = sim.recalculate_win_rates()
        b = fresh.recalculate_win_rates()
        assert a.final == b.final

    def test_reset_twice_is_stable(self):
        sim = _sim()
        sim.modify_stat(Archetype.WARRIOR, Stat.SPEED, 50)
        sim.reset_all_characters()
        first = sim.store.snapshot()
        sim.reset_all_characters()
        assert sim.store.snapshot() == first
        assert sim.store.modifiers(Archetype.WARRIOR) == []


# ═══════════════════════════════════════════════════════════════
# EVENTS THROUGH THE SIMULATION
# ═══════════════════════════════════════════════════════════════

class TestSimulationEvents:
    def test_crisis_unaffordable(self):
        sim = _sim()
        sim.resources.set(2, 0)
        crisis = templates_for(EventCategory.CRISIS)[1]
        ev = sim.trigger_event(crisis, "warrior")
        snapshot = sim.store.snapshot()
        sentiment = sim.get_community_sentiment()
        with pytest.raises(InsufficientResources):
            sim.resolve_event(ev.event_id, "emergency_fix")
        assert sim.store.snapshot() == snapshot
        assert sim.get_community_sentiment() == sentiment
        assert sim.resources.to_dict() == {"rp": 2, "cp": 0}
        assert sim.busy is None

    def test_popularity_effect_recalculates(self):
        sim = _sim()
        sim.resources.set(5, 5)
        ev = sim.trigger_event(templates_for(EventCategory.OPPORTUNITY)[0], Archetype.MAGE)
        sim.resolve_event(ev.event_id, "seize")
        assert sim.aggregator.meta.cycle == 1
        assert any(n.kind == "resolution" for n in sim.notices)

    def test_expiry_during_tick(self):
        sim = _sim()
        ev = sim.trigger_event(templates_for(EventCategory.TECHNICAL)[1])
        result = sim.tick(ev.definition.time_to_live)
        assert [r.event_id for r in result.expired] == [ev.event_id]
        assert sim.clock == ev.definition.time_to_live

    def test_force_expire_and_clear(self):
        sim = _sim()
        pool = templates_for(EventCategory.COMMUNITY)
        first = sim.trigger_event(pool[0])
        for d in pool[1:]:
            sim.trigger_event(d)
        sim.force_expire_event(first.event_id)
        results = sim.clear_events()
        assert len(results) == 3
        assert sim.get_active_events() == []

    def test_unknown_event(self):
        sim = _sim()
        with pytest.raises(EventNotFound):
            sim.resolve_event("evt-0404", "anything")
        assert sim.busy is None

    def test_negative_tick(self):
        with pytest.raises(ValueError):
            _sim().tick(-1.0)

    def test_continuous_spawn_is_announced(self):
        settings = load_settings()
        settings.events.schedule_mode = "continuous"
        settings.events.min_time_between_events = 1.0
        settings.events.max_time_between_events = 1.0
        settings.events.event_trigger_chance = 1.0
        sim = MetaSimulation(settings=settings, seed=8)
        spawned = []
        for _ in range(5):
            spawned.extend(sim.tick(1.0).spawned)
        assert spawned
        announced = [n.data.get("event_id") for n in sim.notices if n.kind == "event"]
        assert [ev.event_id for ev in spawned] == announced


# ═══════════════════════════════════════════════════════════════
# BALANCE CHANGE CARDS
# ═══════════════════════════════════════════════════════════════

class TestBalanceChangeCards:
    def test_queued_card_applies_on_implementation(self):
        sim = _sim()
        change = sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, -10)
        assert change.change_id == "chg-0001"
        assert change.status == ChangeStatus.QUEUED
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == 50.0

        sim.advance_phase(GamePhase.IMPLEMENTATION)
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == pytest.approx(45.0)
        assert sim.resources.to_dict() == {"rp": 22, "cp": 0}
        assert change.status == ChangeStatus.IMPLEMENTED
        assert sim.last_implementation.rp_spent == 2
        assert sim.last_report is not None
        assert any(n.kind == "implementation" for n in sim.notices)

    def test_batch_applies_in_queue_order(self):
        sim = _sim()
        sim.queue_balance_change("mage", "damage", 20)
        sim.queue_balance_change("mage", "damage", 10)
        sim.queue_balance_change("tank", "health", -20)
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        report = sim.last_implementation
        assert len(report.implemented) == 3
        assert (report.rp_spent, report.cp_spent) == (6, 0)
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == pytest.approx(66.0)
        assert sim.get_stat(Archetype.TANK, Stat.HEALTH) == pytest.approx(40.0)
        assert sim.aggregator.meta.cycle == 1

    def test_queue_must_stay_affordable(self):
        sim = _sim()
        sim.resources.set(3, 0)
        sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 10)
        with pytest.raises(InsufficientResources):
            sim.queue_balance_change(Archetype.TANK, Stat.HEALTH, 10)
        with pytest.raises(InsufficientResources):
            sim.queue_balance_change(Archetype.TANK, Stat.HEALTH, 10, rp_cost=0, cp_cost=1)
        assert len(sim.implementation.queue) == 1
        assert sim.resources.to_dict() == {"rp": 3, "cp": 0}

    def test_unaffordable_batch_keeps_queue(self):
        sim = _sim()
        sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, -10)
        sim.resources.set(1, 0)
        snapshot = sim.store.snapshot()
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        report = sim.last_implementation
        assert not report.affordable
        assert report.implemented == []
        assert len(sim.implementation.queue) == 1
        assert sim.store.snapshot() == snapshot
        assert sim.resources.to_dict() == {"rp": 1, "cp": 0}

    def test_queue_during_implementation(self):
        sim = _sim()
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        sim.queue_balance_change(Archetype.SUPPORT, Stat.SPEED, 10)
        assert sim.get_stat(Archetype.SUPPORT, Stat.SPEED) == 50.0
        report = sim.implement_balance_changes()
        assert len(report.implemented) == 1
        assert sim.get_stat(Archetype.SUPPORT, Stat.SPEED) == pytest.approx(55.0)

    def test_wrong_phase(self):
        sim = _sim()
        with pytest.raises(InvalidPhase):
            sim.implement_balance_changes()
        sim.advance_phase(GamePhase.FEEDBACK)
        with pytest.raises(InvalidPhase):
            sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 10)
        assert sim.implementation.queue == []

    def test_oversized_card(self):
        with pytest.raises(ValueError):
            _sim().queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 80)

    def test_cancel_is_free(self):
        sim = _sim()
        change = sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 10)
        sim.cancel_balance_change(change.change_id)
        assert change.status == ChangeStatus.CANCELLED
        with pytest.raises(ChangeNotFound):
            sim.cancel_balance_change(change.change_id)
        with pytest.raises(ChangeNotFound):
            sim.cancel_balance_change("chg-0404")
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        assert sim.resources.to_dict() == {"rp": 24, "cp": 0}
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == 50.0

    def test_undo_keeps_later_changes(self):
        sim = _sim()
        change = sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 20)
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == pytest.approx(60.0)
        sim.modify_stat(Archetype.MAGE, Stat.DAMAGE, 10)
        assert sim.get_stat(Archetype.MAGE, Stat.DAMAGE) == pytest.approx(66.0)

        value = sim.undo_balance_change(change.change_id)
        assert value == pytest.approx(55.0)
        assert change.status == ChangeStatus.UNDONE
        assert sim.resources.to_dict() == {"rp": 22, "cp": 0}
        with pytest.raises(ChangeNotUndoable):
            sim.undo_balance_change(change.change_id)

    def test_undo_requires_implemented_change(self):
        sim = _sim()
        change = sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 20)
        with pytest.raises(ChangeNotUndoable):
            sim.undo_balance_change(change.change_id)
        assert sim.busy is None

    def test_reset_forgets_changes(self):
        sim = _sim()
        change = sim.queue_balance_change(Archetype.MAGE, Stat.DAMAGE, 20)
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        sim.reset_all_characters()
        assert sim.last_implementation is None
        with pytest.raises(ChangeNotFound):
            sim.undo_balance_change(change.change_id)

    def test_to_dict_exposes_plan_and_smoothing(self):
        sim = _sim()
        sim.queue_balance_change(Archetype.WARRIOR, Stat.HEALTH, -5)
        d = sim.to_dict()
        assert d["balance_changes"]["queued_cost"] == {"rp": 2, "cp": 0}
        assert len(d["balance_changes"]["queued"]) == 1
        assert "smoothed_meta_shift" in d
        sim.recalculate_win_rates()
        assert sim.last_report.to_dict()["smoothed_meta_shift"] == pytest.approx(
            sim.to_dict()["smoothed_meta_shift"], abs=1e-3)


# ═══════════════════════════════════════════════════════════════
# REENTRANCY
# ═══════════════════════════════════════════════════════════════

class TestReentrancy:
    def test_nested_recalculation_rejected(self):
        sim = _sim()
        errors = []

        def listener(notice):
            if notice.kind == "recalculation":
                try:
                    sim.recalculate_win_rates()
                except SimulationBusy as e:
                    errors.append(e)

        sim.on_notice = listener
        sim.recalculate_win_rates()
        assert len(errors) == 1
        assert sim.busy is None
        assert sim.aggregator.meta.cycle == 1

    def test_nested_stat_change_rejected(self):
        sim = _sim()
        errors = []

        def listener(notice):
            if notice.kind == "recalculation":
                try:
                    sim.modify_stat(Archetype.TANK, Stat.HEALTH, 10)
                except SimulationBusy as e:
                    errors.append(e)

        sim.on_notice = listener
        sim.modify_stat(Archetype.MAGE, Stat.DAMAGE, 10)
        assert errors
        assert sim.get_stat(Archetype.TANK, Stat.HEALTH) == 50.0

    def test_listener_outside_work_may_call_back(self):
        sim = _sim()
        calls = []

        def listener(notice):
            if notice.kind == "reset":
                calls.append(sim.recalculate_win_rates())

        sim.on_notice = listener
        sim.reset_all_characters()
        assert len(calls) == 1


# ═══════════════════════════════════════════════════════════════
# FEEDBACK
# ═══════════════════════════════════════════════════════════════

class TestBalanceChange:
    def test_magnitude_and_significance(self):
        c = BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 44.0)
        assert c.magnitude == pytest.approx(6.0)
        assert c.is_significant(5.0)
        assert not BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 55.0).is_significant(5.0)

    def test_positive_means_toward_fifty(self):
        assert BalanceChange(Archetype.TANK, Stat.WIN_RATE, 60.0, 55.0).is_positive()
        assert not BalanceChange(Archetype.TANK, Stat.WIN_RATE, 50.0, 40.0).is_positive()

    def test_positive_means_buff_for_other_stats(self):
        assert BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 65.0).is_positive()
        assert not BalanceChange(Archetype.MAGE, Stat.DAMAGE, 65.0, 50.0).is_positive()


class TestFeedbackManager:
    def test_significant_change_gets_reactions(self):
        mgr = CommunityFeedbackManager(FeedbackSettings(), random.Random(5))
        items = mgr.generate([BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 65.0)], 65.0)
        assert 1 <= len(items) <= 12
        for item in items:
            assert not item.is_organic
            assert "Mage" in item.content
            assert -1.0 <= item.sentiment <= 1.0
            assert item.character == Archetype.MAGE

    def test_small_changes_fall_back_to_organic(self):
        mgr = CommunityFeedbackManager(FeedbackSettings(max_organic_feedback=3), random.Random(5))
        items = mgr.generate([BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 52.0)], 65.0)
        assert 1 <= len(items) <= 3
        assert all(i.is_organic for i in items)

    def test_popularity_strategy_only_reacts_to_popularity(self):
        strategy = PopularityShiftStrategy()
        dmg = [BalanceChange(Archetype.MAGE, Stat.DAMAGE, 50.0, 70.0)]
        pop = [BalanceChange(Archetype.MAGE, Stat.POPULARITY, 50.0, 70.0)]
        assert strategy.priority(dmg, 50.0) == 0.0
        assert not strategy.should_apply(dmg, 50.0)
        assert strategy.should_apply(pop, 50.0)

    def test_average_sentiment(self):
        items = [_item(1), _item(2)]
        items[0].sentiment = 0.5
        items[1].sentiment = -0.1
        assert CommunityFeedbackManager.average_sentiment(items) == pytest.approx(0.2)
        assert CommunityFeedbackManager.average_sentiment([]) == 0.0


class TestFeedbackQueue:
    def test_delay_between_posts(self):
        q = FeedbackQueue(FeedbackSettings(feedback_show_chance=1.0), random.Random(1))
        q.enqueue([_item(1), _item(2)])
        q.start()
        assert q.tick(1.0) is None
        first = q.tick(0.5)
        assert first.content == "post 1"
        assert q.tick(1.0) is None
        assert q.tick(0.5).content == "post 2"

    def test_hidden_posts_are_consumed(self):
        q = FeedbackQueue(FeedbackSettings(feedback_show_chance=0.0), random.Random(1))
        q.enqueue([_item(1)])
        q.start()
        assert q.tick(1.5) is None
        assert len(q.pending) == 0
        assert q.shown == []

    def test_per_phase_cap(self):
        q = FeedbackQueue(FeedbackSettings(feedback_show_chance=1.0, max_feedback_per_phase=2),
                          random.Random(1))
        q.enqueue([_item(i) for i in range(4)])
        q.start()
        shown = [q.tick(1.5) for _ in range(4)]
        assert sum(1 for s in shown if s is not None) == 2
        assert not q.active

    def test_capacity(self):
        q = FeedbackQueue(FeedbackSettings(max_feedback_per_phase=2))
        q.enqueue([_item(i) for i in range(10)])
        assert len(q.pending) == 4
        assert [p.content for p in q.pending] == ["post 6", "post 7", "post 8", "post 9"]

    def test_full_queue_keeps_newest_posts(self):
        q = FeedbackQueue(FeedbackSettings(max_feedback_per_phase=6))
        q.enqueue([_item(i) for i in range(12)])
        q.enqueue([_item(100), _item(101), _item(102)])
        contents = [p.content for p in q.pending]
        assert len(contents) == 12
        assert contents[-3:] == ["post 100", "post 101", "post 102"]
        assert "post 0" not in contents
        assert contents[0] == "post 3"

    def test_inactive_queue_is_silent(self):
        q = FeedbackQueue(FeedbackSettings(feedback_show_chance=1.0))
        q.enqueue([_item(1)])
        assert q.tick(5.0) is None
        assert len(q.pending) == 1


class TestFeedbackPhase:
    def test_feedback_phase_shows_posts(self):
        sim = _sim(feedback_show_chance=1.0)
        sim.advance_phase(GamePhase.IMPLEMENTATION)
        sim.modify_stat(Archetype.MAGE, Stat.DAMAGE, 30)
        sim.advance_phase(GamePhase.FEEDBACK)
        assert sim.pending_changes == []
        assert sim.feedback_queue.active
        shown = [sim.tick(1.5).feedback for _ in range(20)]
        posts = [p for p in shown if p is not None]
        assert 1 <= len(posts) <= sim.settings.feedback.max_feedback_per_phase
        assert not sim.feedback_queue.active

    def test_feedback_moves_popularity(self):
        sim = _sim()
        sim.set_stat(Archetype.WARRIOR, Stat.WIN_RATE, 70)
        sim.advance_phase(GamePhase.FEEDBACK)
        assert sim.get_stat(Archetype.WARRIOR, Stat.POPULARITY) > 50.0

    def test_leaving_feedback_stops_queue(self):
        sim = _sim()
        sim.advance_phase(GamePhase.FEEDBACK)
        sim.advance_phase(GamePhase.EVENT)
        assert not sim.feedback_queue.active


class TestCLI:
    def test_json_run(self, capsys):
        import json
        import simulate_meta

        rows = simulate_meta.main(["--weeks", "2", "--seed", "1", "--json", "--auto-resolve"])
        assert [r["week"] for r in rows] == [1, 2]
        out = json.loads(capsys.readouterr().out)
        assert len(out["weeks"]) == 2
        assert out["final"]["week"] == 3

    def test_table_run(self, capsys):
        import simulate_meta

        simulate_meta.main(["--weeks", "1", "--seed", "2", "--continuous"])
        assert "META BALANCE SIMULATION" in capsys.readouterr().out

    def test_auto_balance_targets_outlier(self):
        import simulate_meta

        sim = _sim()
        assert simulate_meta.plan_correction(sim) is None
        sim.set_stat(Archetype.MAGE, Stat.WIN_RATE, 70)
        change = simulate_meta.plan_correction(sim)
        assert change.card.character == Archetype.MAGE
        assert change.card.stat == Stat.DAMAGE
        assert change.card.percent == -simulate_meta.AUTO_BALANCE_PERCENT
        sim.resources.set(0, 0)
        sim.set_stat(Archetype.TANK, Stat.WIN_RATE, 20)
        assert simulate_meta.plan_correction(sim) is None

    def test_auto_balance_run(self, capsys):
        import simulate_meta

        rows = simulate_meta.main(["--weeks", "3", "--seed", "4", "--json", "--auto-balance"])
        assert len(rows) == 3
        assert all(r["changes_implemented"] >= 0 for r in rows)
        capsys.readouterr()
