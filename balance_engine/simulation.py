"""
Meta Simulation (composition root)

Builds every collaborator once and wires them together explicitly:
stat store, win-rate pipeline, sentiment, resources, event manager,
feedback generation and display queue.  There are no globals; a host owns
one MetaSimulation per game and drives it with phase / week / tick calls.

Weekly loop:

    PLANNING        win rates recalculated; player queues balance change cards
    IMPLEMENTATION  queued cards are paid for and applied as one batch
    FEEDBACK        popularity evolves, community reacts to the changes
    EVENT           events generated; next advance starts a new week

Only one recalculation or resolution runs at a time; a nested request
raises SimulationBusy.

Usage:
    sim = MetaSimulation(seed=42)
    sim.queue_balance_change("mage", "damage", -10)
    sim.advance_phase()                  # -> IMPLEMENTATION, card applied
    sim.advance_phase()                  # -> FEEDBACK
    sim.tick(1.5)
    sim.advance_phase()                  # -> EVENT
    for ev in sim.get_active_events():
        sim.resolve_event(ev.event_id, ev.definition.responses[-1].response_id)
"""

from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from balance_engine.characters import (
    Archetype, BalanceState, Stat, StatStore, CharacterKey, StatKey,
    OVERPOWERED_POPULARITY_BOOST, resolve_archetype, resolve_stat,
)
from balance_engine.errors import InvalidPhase, SimulationBusy
from balance_engine.event_manager import EventManager, TURN_BASED
from balance_engine.events import ActiveEvent, EventDefinition, EventResolution
from balance_engine.feedback import (
    BalanceChange, CommunityFeedbackManager, FeedbackItem, FeedbackQueue,
)
from balance_engine.implementation import (
    BalanceChangeCard, ImplementationQueue, ImplementationReport, PlannedChange,
)
from balance_engine.meta import MetaHealth
from balance_engine.resources import ResourceManager
from balance_engine.sentiment import CommunitySentiment
from balance_engine.settings import SimulationSettings, load_settings
from balance_engine.win_rates import RecalculationReport, WinRateAggregator

_log = logging.getLogger("metabalance.simulation")


class GamePhase(Enum):
    PLANNING = "planning"
    IMPLEMENTATION = "implementation"
    FEEDBACK = "feedback"
    EVENT = "event"

    @property
    def next(self) -> "GamePhase":
        order = list(GamePhase)
        return order[(order.index(self) + 1) % len(order)]


def resolve_phase(phase) -> GamePhase:
    if isinstance(phase, GamePhase):
        return phase
    try:
        return GamePhase(str(phase).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown phase: {phase!r}") from None


@dataclass
class Notice:
    """Something the host may want to surface (event spawned, phase changed...)."""
    kind: str
    message: str
    week: int
    phase: GamePhase
    data: Dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "week": self.week,
            "phase": self.phase.value,
            "data": self.data,
        }


@dataclass
class TickResult:
    expired: List[EventResolution] = field(default_factory=list)
    spawned: List[ActiveEvent] = field(default_factory=list)
    feedback: Optional[FeedbackItem] = None


class MetaSimulation:

    MAX_NOTICES = 200

    def __init__(self, settings: Optional[SimulationSettings] = None,
                 seed: Optional[int] = None,
                 rng: Optional[random.Random] = None,
                 on_notice: Optional[Callable[[Notice], None]] = None,
                 auto_recalculate: bool = True):
        if settings is None:
            settings = load_settings()
        else:
            settings.balance.validate()
        self.settings = settings
        self.seed = seed
        self.rng = rng if rng is not None else random.Random(seed)
        self.on_notice = on_notice
        self.auto_recalculate = auto_recalculate

        self.store = StatStore(settings.roster)
        self.aggregator = WinRateAggregator.build(settings.balance)
        self.sentiment = CommunitySentiment(
            value=settings.feedback.initial_sentiment,
            balance_blend=settings.feedback.balance_sentiment_blend,
            event_blend=settings.events.event_sentiment_blend,
        )
        self.resources = ResourceManager(settings.resources)
        self.events = EventManager(settings.events, self.store, self.sentiment,
                                   self.resources, self.rng)
        self.feedback = CommunityFeedbackManager(settings.feedback, self.rng)
        self.feedback_queue = FeedbackQueue(settings.feedback, self.rng)
        self.implementation = ImplementationQueue(self.resources)

        self.week = 1
        self.phase = GamePhase.PLANNING
        self.clock = 0.0
        self.pending_changes: List[BalanceChange] = []
        self.last_report: Optional[RecalculationReport] = None
        self.last_implementation: Optional[ImplementationReport] = None
        self.notices: List[Notice] = []
        self._balance_states: Dict[Archetype, BalanceState] = {}
        self._busy: Optional[str] = None

    # ──────────────────────────────────────────────
    # PLUMBING
    # ──────────────────────────────────────────────

    @contextmanager
    def _exclusive(self, what: str):
        if self._busy is not None:
            raise SimulationBusy(f"Cannot start {what} while {self._busy} is in progress")
        self._busy = what
        try:
            yield
        finally:
            self._busy = None

    @property
    def busy(self) -> Optional[str]:
        return self._busy

    def _notify(self, kind: str, message: str, **data):
        notice = Notice(kind=kind, message=message, week=self.week, phase=self.phase, data=data)
        self.notices.append(notice)
        if len(self.notices) > self.MAX_NOTICES:
            self.notices = self.notices[-self.MAX_NOTICES:]
        if self.on_notice is not None:
            self.on_notice(notice)

    def _record_change(self, arch: Archetype, stat: Stat, before: float, after: float) -> bool:
        """Log a player-visible change; True when it should trigger a recalculation."""
        if before == after:
            return False
        self.pending_changes.append(BalanceChange(arch, stat, before, after, self.clock))
        reaction = self.events.record_major_change(abs(after - before))
        if reaction is not None:
            self._notify("event", f"Reaction event: {reaction.title}", event_id=reaction.event_id)
        return stat != Stat.WIN_RATE

    # ──────────────────────────────────────────────
    # STATS
    # ──────────────────────────────────────────────

    def get_stat(self, character: CharacterKey, stat: StatKey) -> float:
        return self.store.get(character, stat)

    def modify_stat(self, character: CharacterKey, stat: StatKey, percent_change: float) -> float:
        arch, s = resolve_archetype(character), resolve_stat(stat)
        with self._exclusive("stat change"):
            before = self.store.get(arch, s)
            after = self.store.modify_by_percent(arch, s, percent_change)
            needs_recalc = self._record_change(arch, s, before, after)
            if needs_recalc and self.auto_recalculate:
                self._recalculate()
        return self.store.get(arch, s)

    def set_stat(self, character: CharacterKey, stat: StatKey, value: float) -> float:
        arch, s = resolve_archetype(character), resolve_stat(stat)
        with self._exclusive("stat change"):
            before = self.store.get(arch, s)
            after = self.store.set(arch, s, value)
            needs_recalc = self._record_change(arch, s, before, after)
            if needs_recalc and self.auto_recalculate:
                self._recalculate()
        return self.store.get(arch, s)

    def reset_all_characters(self, seed: Optional[int] = None):
        """Back to base stats with fresh trends, cycle and matchups."""
        with self._exclusive("reset"):
            self.store.reset_all()
            self.aggregator.reset()
            self.pending_changes.clear()
            self.implementation.reset()
            self._balance_states.clear()
            self.last_report = None
            self.last_implementation = None
            if seed is not None:
                self.seed = seed
                self.rng.seed(seed)
        _log.info("All characters reset to base stats")
        self._notify("reset", "All characters reset")

    # ──────────────────────────────────────────────
    # BALANCE CHANGE CARDS
    # ──────────────────────────────────────────────

    def queue_balance_change(self, character: CharacterKey, stat: StatKey, percent: float,
                             rp_cost: Optional[int] = None, cp_cost: Optional[int] = None,
                             name: str = "") -> PlannedChange:
        """Queue a priced stat change for the next implementation batch."""
        if self.phase not in (GamePhase.PLANNING, GamePhase.IMPLEMENTATION):
            raise InvalidPhase(f"Balance changes can only be queued during planning or "
                               f"implementation, not {self.phase.value}")
        prices = self.settings.resources
        card = BalanceChangeCard(
            character=resolve_archetype(character),
            stat=resolve_stat(stat),
            percent=float(percent),
            rp_cost=prices.balance_change_rp_cost if rp_cost is None else rp_cost,
            cp_cost=prices.balance_change_cp_cost if cp_cost is None else cp_cost,
            name=name,
        )
        change = self.implementation.add(card, self.week)
        self._notify("balance_change", f"Queued: {card.description}", change_id=change.change_id)
        return change

    def cancel_balance_change(self, change_id: str) -> PlannedChange:
        change = self.implementation.cancel(change_id)
        self._notify("balance_change", f"Cancelled: {change.card.description}", change_id=change_id)
        return change

    def implement_balance_changes(self) -> ImplementationReport:
        """Pay for and apply every queued card. Runs on entering IMPLEMENTATION."""
        if self.phase != GamePhase.IMPLEMENTATION:
            raise InvalidPhase(f"Balance changes are implemented in the implementation phase, "
                               f"not {self.phase.value}")
        with self._exclusive("implementation"):
            report = self.implementation.implement(self.store)
            needs_recalc = False
            for change in report.implemented:
                needs_recalc |= self._record_change(change.card.character, change.card.stat,
                                                    change.previous, change.result)
            if needs_recalc and self.auto_recalculate:
                self._recalculate()
        self.last_implementation = report
        if report.implemented or not report.affordable:
            self._notify("implementation", report.message, count=len(report.implemented),
                         rp=report.rp_spent, cp=report.cp_spent)
        return report

    def undo_balance_change(self, change_id: str) -> float:
        """Revert an implemented card; returns the restored stat value."""
        change = self.implementation.find(change_id)
        card = change.card
        with self._exclusive("undo"):
            before, after = self.implementation.undo(change_id, self.store)
            needs_recalc = self._record_change(card.character, card.stat, before, after)
            if needs_recalc and self.auto_recalculate:
                self._recalculate()
        self._notify("balance_change", f"Undone: {card.description}", change_id=change_id)
        return self.store.get(card.character, card.stat)

    # ──────────────────────────────────────────────
    # RECALCULATION
    # ──────────────────────────────────────────────

    def recalculate_win_rates(self) -> RecalculationReport:
        with self._exclusive("recalculation"):
            return self._recalculate()

    def _recalculate(self) -> RecalculationReport:
        report = self.aggregator.recalculate(self.store, self.rng)
        self.last_report = report
        self._update_balance_states()
        overall = self.aggregator.meta.overall_balance(self.store.values)
        self.sentiment.update_from_balance(overall, self.rng)
        self._notify("recalculation", f"Win rates recalculated (cycle {report.cycle})",
                     cycle=report.cycle, shift=round(report.meta_shift_intensity, 3))
        return report

    def _update_balance_states(self):
        for arch in self.store.archetypes:
            state = self.store.balance_state(arch)
            previous = self._balance_states.get(arch, BalanceState.BALANCED)
            if state != previous:
                if state == BalanceState.OVERPOWERED:
                    self.store.modify_by_percent(arch, Stat.POPULARITY, OVERPOWERED_POPULARITY_BOOST)
                self._notify("balance_state", f"{arch.value} is now {state.value}",
                             character=arch.value, state=state.value)
            self._balance_states[arch] = state

    def get_meta_health(self) -> MetaHealth:
        return self.aggregator.meta.meta_health(self.store.values)

    def get_community_sentiment(self) -> float:
        return self.sentiment.value

    # ──────────────────────────────────────────────
    # PHASES / WEEKS
    # ──────────────────────────────────────────────

    def advance_phase(self, phase=None) -> GamePhase:
        target = self.phase.next if phase is None else resolve_phase(phase)
        if target == self.phase:
            _log.debug(f"Already in {target.value}")
            return self.phase

        previous = self.phase
        if previous == GamePhase.FEEDBACK:
            self.feedback_queue.stop()
        if previous == GamePhase.EVENT and target == GamePhase.PLANNING:
            self.advance_week()

        self.phase = target
        _log.info(f"Week {self.week}: {previous.value} -> {target.value}")
        self._notify("phase", f"Phase changed to {target.value}", previous=previous.value)

        if target == GamePhase.PLANNING:
            self.recalculate_win_rates()
        elif target == GamePhase.IMPLEMENTATION:
            self.implement_balance_changes()
        elif target == GamePhase.FEEDBACK:
            self._run_feedback_phase()
        elif target == GamePhase.EVENT:
            self._run_event_phase()
        return self.phase

    def advance_week(self) -> int:
        self.week += 1
        rp, cp = self.resources.generate_weekly()
        seasonal = self.events.start_week(self.week)
        self._notify("week", f"Week {self.week} begins", rp=rp, cp=cp)
        for ev in seasonal:
            self._notify("event", f"Seasonal event: {ev.title}", event_id=ev.event_id)
        return self.week

    def _run_feedback_phase(self):
        values = self.store.values
        new_pops = self.aggregator.popularity.update_popularity_from_performance(
            values, self.aggregator.matchups, self.rng)
        for arch, pop in new_pops.items():
            before = self.store.get(arch, Stat.POPULARITY)
            after = self.store.set(arch, Stat.POPULARITY, pop)
            if before != after:
                self.pending_changes.append(BalanceChange(arch, Stat.POPULARITY, before, after, self.clock))

        items = self.feedback.generate(self.pending_changes, self.sentiment.value)
        self.sentiment.apply_feedback(self.feedback.average_sentiment(items), len(items))
        self.feedback_queue.enqueue(items)
        self.feedback_queue.start()
        self.pending_changes = []
        self._notify("feedback", f"{len(items)} community posts incoming", count=len(items))

    def _run_event_phase(self):
        if self.settings.events.schedule_mode == TURN_BASED:
            created = self.events.generate_for_phase()
        else:
            self.events.events_this_phase = 0
            created = self.events.check_triggered_events()
        for ev in created:
            self._notify("event", f"New event: {ev.title}", event_id=ev.event_id,
                         category=ev.definition.category.value)

    # ──────────────────────────────────────────────
    # EVENTS
    # ──────────────────────────────────────────────

    def trigger_event(self, definition: EventDefinition, subject: Optional[CharacterKey] = None) -> ActiveEvent:
        arch = resolve_archetype(subject) if subject is not None else None
        ev = self.events.trigger(definition, arch)
        self._notify("event", f"New event: {ev.title}", event_id=ev.event_id)
        return ev

    def get_active_events(self) -> List[ActiveEvent]:
        return self.events.get_active_events()

    def _absorb_resolutions(self, results: List[EventResolution]):
        needs_recalc = False
        for result in results:
            for a in result.applied:
                needs_recalc |= self._record_change(a.character, a.stat, a.previous, a.new)
        if needs_recalc and self.auto_recalculate:
            self._recalculate()

    def resolve_event(self, event_id: str, response_id: str) -> EventResolution:
        with self._exclusive("resolution"):
            result = self.events.resolve(event_id, response_id)
            self._absorb_resolutions([result])
        self._notify("resolution", result.message, event_id=event_id,
                     response_id=response_id, success=result.success)
        return result

    def force_expire_event(self, event_id: str) -> EventResolution:
        with self._exclusive("expiration"):
            result = self.events.force_expire(event_id)
            self._absorb_resolutions([result])
        self._notify("expiration", f"Event {event_id} force-expired", event_id=event_id)
        return result

    def clear_events(self) -> List[EventResolution]:
        with self._exclusive("expiration"):
            results = self.events.clear()
            self._absorb_resolutions(results)
        if results:
            self._notify("expiration", f"Cleared {len(results)} events", count=len(results))
        return results

    # ──────────────────────────────────────────────
    # TIME
    # ──────────────────────────────────────────────

    def tick(self, dt: float) -> TickResult:
        """Advance simulation time by dt seconds."""
        if dt < 0:
            raise ValueError("dt must be non-negative")
        with self._exclusive("tick"):
            self.clock += dt
            self.store.clock = self.clock
            events = self.events.tick(dt)
            self._absorb_resolutions(events.expired)
        for result in events.expired:
            self._notify("expiration", f"Event {result.event_id} expired", event_id=result.event_id)
        for ev in events.spawned:
            self._notify("event", f"New event: {ev.title}", event_id=ev.event_id,
                         category=ev.definition.category.value)
        item = self.feedback_queue.tick(dt)
        return TickResult(expired=events.expired, spawned=events.spawned, feedback=item)

    # ──────────────────────────────────────────────
    # SERIALIZATION
    # ──────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "week": self.week,
            "phase": self.phase.value,
            "clock": round(self.clock, 2),
            "resources": self.resources.to_dict(),
            "sentiment": round(self.sentiment.value, 2),
            "sentiment_label": self.sentiment.describe(),
            "meta_health": self.get_meta_health().to_dict(),
            "meta_cycle": self.aggregator.meta.cycle,
            "meta_shift_intensity": round(self.aggregator.meta.meta_shift_intensity, 3),
            "smoothed_meta_shift": round(self.aggregator.meta.smoothed_shift, 3),
            "characters": self.store.to_dict(),
            "balance_changes": self.implementation.to_dict(),
            "active_events": [e.to_dict() for e in self.events.get_active_events()],
            "queued_events": [e.to_dict() for e in self.events.get_queued_events()],
            "last_recalculation": self.last_report.to_dict() if self.last_report else None,
        }
