"""
Event Generator & Resolver

Creates events on a schedule (turn-based on entering the Event phase, or
continuously while time ticks), reacts to sentiment and balance state, and
resolves player responses or expirations into stat, sentiment and resource
changes.

Category roll: cumulative over the configured chances in a fixed order
(crisis, opportunity, community, technical, competitive).  Chances do not
have to sum to 1; whatever mass is left over falls through to COMMUNITY
rather than being renormalized.

Usage:
    mgr = EventManager(settings.events, store, sentiment, resources, rng)
    mgr.generate_for_phase()
    result = mgr.resolve(event_id, "emergency_fix")
    expired = mgr.tick(2.0).expired
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from balance_engine.characters import Archetype, Stat, StatStore
from balance_engine.errors import EventAlreadyResolved, EventNotFound, InsufficientResources
from balance_engine.event_catalog import (
    balance_concern_event, community_outrage_event, emergency_meeting_event,
    patch_whiplash_event, seasonal_event, templates_for,
)
from balance_engine.events import (
    ActiveEvent, AppliedEffect, EventCategory, EventDefinition, EventResolution,
    EventStatus, ResponseOption, StatEffect,
)
from balance_engine.meta import MetaCalculator
from balance_engine.resources import ResourceManager
from balance_engine.sentiment import CommunitySentiment
from balance_engine.settings import EventSettings

_log = logging.getLogger("metabalance.events")

CATEGORY_ORDER = (
    EventCategory.CRISIS,
    EventCategory.OPPORTUNITY,
    EventCategory.COMMUNITY,
    EventCategory.TECHNICAL,
    EventCategory.COMPETITIVE,
)
FALLBACK_CATEGORY = EventCategory.COMMUNITY

TURN_BASED = "turn_based"
CONTINUOUS = "continuous"


@dataclass
class EventTick:
    expired: List[EventResolution] = field(default_factory=list)
    spawned: List[ActiveEvent] = field(default_factory=list)


@dataclass
class EventManager:
    settings: EventSettings
    store: StatStore
    sentiment: CommunitySentiment
    resources: ResourceManager
    rng: random.Random = field(default_factory=random.Random)

    active: Dict[str, ActiveEvent] = field(default_factory=dict)
    queue: Deque[ActiveEvent] = field(default_factory=deque)
    history: Dict[str, ActiveEvent] = field(default_factory=dict)
    week: int = 1
    clock: float = 0.0
    events_this_phase: int = 0
    events_this_week: int = 0
    next_roll_at: Optional[float] = None
    major_changes: List[float] = field(default_factory=list)
    _counter: int = 0

    # ──────────────────────────────────────────────
    # QUERIES
    # ──────────────────────────────────────────────

    def get_active_events(self) -> List[ActiveEvent]:
        return list(self.active.values())

    def get_queued_events(self) -> List[ActiveEvent]:
        return list(self.queue)

    def find(self, event_id: str) -> ActiveEvent:
        if event_id in self.active:
            return self.active[event_id]
        for ev in self.queue:
            if ev.event_id == event_id:
                return ev
        if event_id in self.history:
            return self.history[event_id]
        raise EventNotFound(f"No event with id {event_id!r}")

    def has_open(self, key: str) -> bool:
        return any(ev.definition.key == key for ev in list(self.active.values()) + list(self.queue))

    # ──────────────────────────────────────────────
    # TRIGGERING
    # ──────────────────────────────────────────────

    def trigger(self, definition: EventDefinition, subject: Optional[Archetype] = None) -> ActiveEvent:
        self._counter += 1
        event = ActiveEvent(
            event_id=f"evt-{self._counter:04d}",
            definition=definition,
            time_remaining=definition.time_to_live,
            subject=subject,
            created_week=self.week,
            created_at=self.clock,
        )
        if len(self.active) < self.settings.max_simultaneous_events:
            event.status = EventStatus.DISPLAYED
            self.active[event.event_id] = event
            _log.info(f"Event {event.event_id} displayed: {definition.title}")
        else:
            self.queue.append(event)
            _log.info(f"Event {event.event_id} queued: {definition.title} (queue {len(self.queue)})")
        self.events_this_phase += 1
        self.events_this_week += 1
        return event

    def _promote_queued(self):
        while self.queue and len(self.active) < self.settings.max_simultaneous_events:
            event = self.queue.popleft()
            event.status = EventStatus.DISPLAYED
            self.active[event.event_id] = event
            _log.debug(f"Promoted queued event {event.event_id}")

    def category_weights(self) -> Dict[EventCategory, float]:
        s = self.settings
        weights = {
            EventCategory.CRISIS: s.crisis_chance,
            EventCategory.OPPORTUNITY: s.opportunity_chance,
            EventCategory.COMMUNITY: s.community_chance,
            EventCategory.TECHNICAL: s.technical_chance,
            EventCategory.COMPETITIVE: s.competitive_chance,
        }
        mood = self.sentiment.value
        if mood < s.low_sentiment_threshold and s.low_sentiment_threshold > 0:
            deficit = (s.low_sentiment_threshold - mood) / s.low_sentiment_threshold
            weights[EventCategory.CRISIS] += s.crisis_boost * deficit
        elif mood > s.high_sentiment_threshold and s.high_sentiment_threshold < 100:
            excess = (mood - s.high_sentiment_threshold) / (100.0 - s.high_sentiment_threshold)
            weights[EventCategory.OPPORTUNITY] += s.opportunity_boost * excess
        return weights

    def roll_category(self) -> EventCategory:
        weights = self.category_weights()
        roll = self.rng.random()
        cumulative = 0.0
        for cat in CATEGORY_ORDER:
            cumulative += weights[cat]
            if roll < cumulative:
                return cat
        return FALLBACK_CATEGORY

    def _pick_subject(self, category: EventCategory) -> Optional[Archetype]:
        archetypes = self.store.archetypes
        if not archetypes:
            return None
        if category in (EventCategory.CRISIS, EventCategory.COMPETITIVE):
            return max(archetypes, key=lambda a: abs(self.store.get(a, Stat.WIN_RATE) - 50.0))
        if category == EventCategory.OPPORTUNITY:
            return max(archetypes, key=lambda a: self.store.get(a, Stat.POPULARITY))
        return self.rng.choice(archetypes)

    def generate_event(self, category: Optional[EventCategory] = None) -> Optional[ActiveEvent]:
        if category is None:
            category = self.roll_category()
        pool = templates_for(category)
        if not pool:
            _log.info(f"No {category.value} templates available, skipping")
            return None
        definition = self.rng.choice(pool)
        return self.trigger(definition, self._pick_subject(category))

    def generate_for_phase(self) -> List[ActiveEvent]:
        """Turn-based generation on entering the Event phase."""
        s = self.settings
        self.events_this_phase = 0
        low = max(0, s.min_events_per_phase)
        if s.guarantee_event:
            low = max(1, low)
        high = max(low, s.max_events_per_phase)
        count = self.rng.randint(low, high)

        created = []
        for _ in range(count):
            ev = self.generate_event()
            if ev is not None:
                created.append(ev)
        created.extend(self.check_triggered_events())
        _log.info(f"Week {self.week}: generated {len(created)} events")
        return created

    def check_triggered_events(self) -> List[ActiveEvent]:
        """Extra events driven by sentiment and balance state."""
        s = self.settings
        mood = self.sentiment.value
        created = []

        if mood < s.low_sentiment_threshold:
            chance = (s.low_sentiment_threshold - mood) / s.low_sentiment_threshold
            if self.rng.random() < chance:
                ev = self.generate_event(EventCategory.CRISIS)
                if ev:
                    created.append(ev)
        elif mood > s.high_sentiment_threshold:
            chance = (mood - s.high_sentiment_threshold) / (100.0 - s.high_sentiment_threshold)
            if self.rng.random() < chance:
                ev = self.generate_event(EventCategory.OPPORTUNITY)
                if ev:
                    created.append(ev)

        if mood < s.outrage_sentiment_threshold:
            definition = community_outrage_event(mood)
            if not self.has_open(definition.key):
                created.append(self.trigger(definition))

        values = self.store.values
        if values:
            worst = max(values, key=lambda a: abs(values[a][Stat.WIN_RATE] - 50.0))
            wr = values[worst][Stat.WIN_RATE]
            if wr > s.balance_concern_high or wr < s.balance_concern_low:
                definition = balance_concern_event(wr, s.balance_concern_high, s.balance_concern_low)
                if not self.has_open(definition.key):
                    created.append(self.trigger(definition, worst))

            overall = MetaCalculator.overall_balance(values)
            if overall < s.emergency_balance_threshold:
                definition = emergency_meeting_event(overall)
                if not self.has_open(definition.key):
                    created.append(self.trigger(definition))
        return created

    def start_week(self, week: int) -> List[ActiveEvent]:
        self.week = week
        self.events_this_phase = 0
        self.events_this_week = 0
        if self.settings.season_interval > 0 and week % self.settings.season_interval == 0:
            return [self.trigger(seasonal_event(week, self.settings.season_interval))]
        return []

    def record_major_change(self, magnitude: float) -> Optional[ActiveEvent]:
        """Track large changes; a burst inside the window triggers a reaction event."""
        s = self.settings
        if magnitude < s.major_change_threshold:
            return None
        self.major_changes.append(self.clock)
        self.major_changes = [t for t in self.major_changes if self.clock - t <= s.major_change_window]
        if len(self.major_changes) >= s.major_change_burst:
            count = len(self.major_changes)
            self.major_changes.clear()
            _log.info(f"{count} major changes within {s.major_change_window}s, triggering reaction")
            return self.trigger(patch_whiplash_event(count))
        return None

    # ──────────────────────────────────────────────
    # TIME
    # ──────────────────────────────────────────────

    def _schedule_next_roll(self):
        s = self.settings
        self.next_roll_at = self.clock + self.rng.uniform(s.min_time_between_events, s.max_time_between_events)

    def tick(self, dt: float) -> EventTick:
        """Advance countdowns and, in continuous mode, roll for new events."""
        self.clock += dt
        expired = []
        spawned = []
        for event in list(self.active.values()):
            event.time_remaining -= dt
            if event.time_remaining <= 0:
                _log.info(f"Event {event.event_id} expired: {event.title}")
                expired.append(self._expire(event))

        if self.settings.schedule_mode == CONTINUOUS:
            if self.next_roll_at is None:
                self._schedule_next_roll()
            elif self.clock >= self.next_roll_at:
                if (len(self.active) < self.settings.max_simultaneous_events
                        and self.rng.random() < self.settings.event_trigger_chance):
                    event = self.generate_event()
                    if event is not None:
                        spawned.append(event)
                self._schedule_next_roll()
        self._promote_queued()
        return EventTick(expired=expired, spawned=spawned)

    # ──────────────────────────────────────────────
    # RESOLUTION
    # ──────────────────────────────────────────────

    def _targets(self, effect: StatEffect, event: ActiveEvent) -> List[Archetype]:
        if effect.character is not None:
            return [effect.character]
        if event.subject is not None:
            return [event.subject]
        return self.store.archetypes

    def _signed_magnitude(self, effect: StatEffect, arch: Archetype) -> float:
        if not effect.toward_balance:
            return effect.magnitude
        win_rate = self.store.get(arch, Stat.WIN_RATE)
        if win_rate > 50.0:
            return -abs(effect.magnitude)
        if win_rate < 50.0:
            return abs(effect.magnitude)
        return 0.0

    def _apply_effects(self, effects, event: ActiveEvent) -> List[AppliedEffect]:
        applied = []
        for effect in effects:
            for arch in self._targets(effect, event):
                magnitude = self._signed_magnitude(effect, arch)
                if effect.toward_balance and magnitude == 0.0:
                    continue
                before = self.store.get(arch, effect.stat)
                if effect.is_percentage:
                    after = self.store.modify_by_percent(arch, effect.stat, magnitude)
                else:
                    after = self.store.set(arch, effect.stat, before + magnitude)
                # corrective win-rate changes stop at 50
                if (effect.toward_balance and effect.stat == Stat.WIN_RATE
                        and (after - 50.0) * (before - 50.0) < 0):
                    after = self.store.set(arch, Stat.WIN_RATE, 50.0)
                applied.append(AppliedEffect(arch, effect.stat, before, after))
        return applied

    def _finish(self, event: ActiveEvent, status: EventStatus):
        event.status = status
        self.active.pop(event.event_id, None)
        self.queue = deque(e for e in self.queue if e is not event)
        self.history[event.event_id] = event
        self._promote_queued()

    def _check_open(self, event_id: str) -> ActiveEvent:
        event = self.find(event_id)
        if not event.is_open:
            raise EventAlreadyResolved(f"Event {event_id} is already {event.status.value}")
        return event

    def resolve(self, event_id: str, response_id: str) -> EventResolution:
        event = self._check_open(event_id)
        if event.status != EventStatus.DISPLAYED:
            raise EventNotFound(f"Event {event_id} is queued and not yet displayed")
        option = event.definition.response(response_id)
        if option is None:
            raise EventNotFound(f"Event {event_id} has no response {response_id!r}")
        if not self.resources.can_spend(option.rp_cost, option.cp_cost):
            raise InsufficientResources(option.rp_cost, option.cp_cost,
                                        self.resources.research_points,
                                        self.resources.community_points)

        self.resources.spend(option.rp_cost, option.cp_cost)
        success = True
        if option.can_fail:
            success = self.rng.random() < option.success_chance

        result = EventResolution(
            event_id=event_id,
            response_id=response_id,
            success=success,
            message=option.success_message if success else (option.failure_message or "It didn't work out."),
            rp_spent=option.rp_cost,
            cp_spent=option.cp_cost,
            sentiment_before=self.sentiment.value,
        )
        if success:
            result.applied = self._apply_effects(option.effects, event)
            self.sentiment.apply_delta(option.sentiment_change)
            if option.rp_reward or option.cp_reward:
                self.resources.add(option.rp_reward, option.cp_reward)
                result.rp_gained, result.cp_gained = option.rp_reward, option.cp_reward
        else:
            result.applied = self._apply_effects(option.failure_effects, event)
            self.sentiment.apply_delta(option.failure_sentiment_change)
        result.sentiment_after = self.sentiment.value

        self._finish(event, EventStatus.RESOLVED)
        _log.info(f"Resolved {event_id} with {response_id}: "
                  f"{'success' if success else 'failure'}, sentiment "
                  f"{result.sentiment_before:.1f} -> {result.sentiment_after:.1f}")
        return result

    def _expiration_option(self, event: ActiveEvent) -> ResponseOption:
        if event.definition.expiration_penalty is not None:
            return event.definition.expiration_penalty
        return ResponseOption(
            response_id="ignored", label="Ignored",
            sentiment_change=self.settings.expiration_sentiment_penalty,
            success_message="The event expired without a response.",
        )

    def _expire(self, event: ActiveEvent) -> EventResolution:
        penalty = self._expiration_option(event)
        result = EventResolution(
            event_id=event.event_id,
            response_id=penalty.response_id,
            success=False,
            message=penalty.success_message or "The event expired.",
            expired=True,
            sentiment_before=self.sentiment.value,
        )
        result.applied = self._apply_effects(penalty.effects, event)
        self.sentiment.apply_delta(penalty.sentiment_change)
        result.sentiment_after = self.sentiment.value
        self._finish(event, EventStatus.EXPIRED)
        return result

    def force_expire(self, event_id: str) -> EventResolution:
        event = self._check_open(event_id)
        _log.info(f"Force-expiring {event_id}")
        return self._expire(event)

    def clear(self) -> List[EventResolution]:
        """Expire everything open, queued events included."""
        open_events = list(self.active.values()) + list(self.queue)
        return [self._expire(ev) for ev in open_events if ev.is_open]

    def reset(self):
        self.active.clear()
        self.queue.clear()
        self.history.clear()
        self.major_changes.clear()
        self.events_this_phase = 0
        self.events_this_week = 0
        self.next_roll_at = None
        self.week = 1
        self.clock = 0.0
        self._counter = 0
