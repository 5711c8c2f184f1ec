"""
Community Feedback

Players react to balance changes through a small set of strategies, one per
community voice (balance reactions, pro players, casuals, content creators,
competitive grinders, meta analysts, popularity watchers).  Each strategy
decides whether it cares about a batch of changes, how loudly (priority),
and how positive the resulting post is.

Generated posts are shown one at a time through FeedbackQueue.tick(dt):
a fixed delay between posts, a cap per phase and a show chance per post.

Usage:
    mgr = CommunityFeedbackManager(settings.feedback, rng=rng)
    items = mgr.generate(changes, sentiment.value)
    queue.enqueue(items); queue.start()
    post = queue.tick(0.5)
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional

from balance_engine.characters import Archetype, Stat
from balance_engine.settings import FeedbackSettings

_log = logging.getLogger("metabalance.feedback")


class FeedbackType(Enum):
    REACTION = "reaction"
    PRAISE = "praise"
    COMPLAINT = "complaint"
    ANALYSIS = "analysis"
    DISCUSSION = "discussion"


class Segment(Enum):
    GENERAL = "General Community"
    PRO = "Pro Players"
    CASUAL = "Casual Players"
    CREATORS = "Content Creators"
    COMPETITIVE = "Competitive"


@dataclass
class BalanceChange:
    """A recorded stat change that the community can react to."""
    character: Archetype
    stat: Stat
    previous_value: float
    new_value: float
    time: float = 0.0

    @property
    def magnitude(self) -> float:
        return abs(self.new_value - self.previous_value)

    def is_significant(self, threshold: float = 5.0) -> bool:
        return self.magnitude > threshold

    def is_positive(self) -> bool:
        """Win rate: closer to 50 than before. Other stats: a buff."""
        if self.stat == Stat.WIN_RATE:
            return abs(self.new_value - 50.0) < abs(self.previous_value - 50.0)
        return self.new_value > self.previous_value

    def to_dict(self) -> dict:
        return {
            "character": self.character.value,
            "stat": self.stat.value,
            "previous": round(self.previous_value, 2),
            "new": round(self.new_value, 2),
            "magnitude": round(self.magnitude, 2),
        }


@dataclass
class FeedbackItem:
    author: str
    segment: Segment
    feedback_type: FeedbackType
    content: str
    sentiment: float                 # -1 .. 1
    upvotes: int = 0
    replies: int = 0
    character: Optional[Archetype] = None
    is_organic: bool = False

    def to_dict(self) -> dict:
        return {
            "author": self.author,
            "segment": self.segment.value,
            "type": self.feedback_type.value,
            "content": self.content,
            "sentiment": round(self.sentiment, 3),
            "upvotes": self.upvotes,
            "replies": self.replies,
            "character": self.character.value if self.character else None,
            "organic": self.is_organic,
        }


def _clamp1(v: float) -> float:
    return max(-1.0, min(1.0, v))


_AUTHOR_PREFIXES = ["Meta", "Patch", "Ranked", "Casual", "Pro", "Lane", "Clutch", "Draft", "Tilt", "Queue"]
_AUTHOR_SUFFIXES = ["Watcher", "Enjoyer", "Grinder", "Main", "Andy", "Sage", "Goblin", "Fan", "Lord", "Diff"]


def _author(rng: random.Random) -> str:
    return f"{rng.choice(_AUTHOR_PREFIXES)}{rng.choice(_AUTHOR_SUFFIXES)}{rng.randint(1, 999)}"


# ══════════════════════════════════════════════
# STRATEGIES
# ══════════════════════════════════════════════

class FeedbackStrategy:
    name = "base"
    segment = Segment.GENERAL
    base_priority = 0.5
    min_magnitude = 5.0
    jitter = 0.2
    positive = ["{CHARACTER} feels right now."]
    negative = ["{CHARACTER} got worse."]
    neutral = ["Not sure about {CHARACTER} yet."]

    def priority(self, changes: List[BalanceChange], sentiment: float) -> float:
        if not changes:
            return 0.0
        p = self.base_priority
        if sentiment < 35.0 or sentiment > 75.0:
            p += 0.15
        return max(0.0, min(1.0, p))

    def should_apply(self, changes: List[BalanceChange], sentiment: float) -> bool:
        return any(c.magnitude > self.min_magnitude for c in changes)

    def pick_change(self, changes: List[BalanceChange]) -> BalanceChange:
        return max(changes, key=lambda c: c.magnitude)

    def feedback_sentiment(self, change: BalanceChange, community_sentiment: float,
                           rng: random.Random) -> float:
        base = (community_sentiment - 50.0) / 100.0
        base += 0.4 if change.is_positive() else -0.4
        return _clamp1(base + rng.uniform(-self.jitter, self.jitter))

    def feedback_type(self, sentiment: float) -> FeedbackType:
        if sentiment > 0.3:
            return FeedbackType.PRAISE
        if sentiment < -0.3:
            return FeedbackType.COMPLAINT
        return FeedbackType.REACTION

    def generate(self, changes: List[BalanceChange], community_sentiment: float,
                 rng: random.Random) -> FeedbackItem:
        change = self.pick_change(changes)
        score = self.feedback_sentiment(change, community_sentiment, rng)
        if score > 0.2:
            pool = self.positive
        elif score < -0.2:
            pool = self.negative
        else:
            pool = self.neutral
        text = rng.choice(pool).replace("{CHARACTER}", change.character.value.title())
        text = text.replace("{STAT}", change.stat.value.replace("_", " "))
        engagement = 1.0 + change.magnitude / 10.0
        return FeedbackItem(
            author=_author(rng),
            segment=self.segment,
            feedback_type=self.feedback_type(score),
            content=text,
            sentiment=score,
            upvotes=int(rng.randint(5, 120) * engagement),
            replies=int(rng.randint(0, 30) * engagement),
            character=change.character,
        )


class BalanceReactionStrategy(FeedbackStrategy):
    name = "balance_reaction"
    base_priority = 0.8
    positive = [
        "Finally, {CHARACTER} feels balanced.",
        "Good call on the {CHARACTER} {STAT} change.",
        "{CHARACTER} is in a much healthier spot now.",
    ]
    negative = [
        "Why would you touch {CHARACTER} like that?",
        "{CHARACTER} was fine, now it's useless.",
        "Please revert the {CHARACTER} {STAT} change.",
    ]
    neutral = [
        "Interesting {CHARACTER} changes, let's see how it plays out.",
        "{CHARACTER} feels different, need more games to judge.",
    ]


class PopularityShiftStrategy(FeedbackStrategy):
    name = "popularity_shift"
    base_priority = 0.6
    positive = ["Seeing a lot more {CHARACTER} lately, nice to have variety."]
    negative = ["Every single game has {CHARACTER} in it now."]
    neutral = ["{CHARACTER} pick rate is moving, wonder why."]

    def priority(self, changes, sentiment):
        return 0.6 if any(c.stat == Stat.POPULARITY for c in changes) else 0.0

    def should_apply(self, changes, sentiment):
        return any(c.stat == Stat.POPULARITY and c.magnitude > self.min_magnitude for c in changes)

    def pick_change(self, changes):
        pops = [c for c in changes if c.stat == Stat.POPULARITY]
        return max(pops or changes, key=lambda c: c.magnitude)


class MetaAnalysisStrategy(FeedbackStrategy):
    name = "meta_analysis"
    segment = Segment.PRO
    base_priority = 0.3
    min_magnitude = 10.0
    jitter = 0.1
    positive = ["Deep dive: the {CHARACTER} {STAT} shift opens up new drafts."]
    negative = ["Numbers say {CHARACTER} just pushed the meta into one lane."]
    neutral = ["Tracking {CHARACTER} across a few hundred games before calling it."]

    def priority(self, changes, sentiment):
        if not changes:
            return 0.0
        p = self.base_priority
        if len(changes) >= 3:
            p += 0.3
        if any(c.stat == Stat.WIN_RATE or (c.magnitude > 12.0 and c.stat.is_base) for c in changes):
            p += 0.25
        if sentiment < 35.0 or sentiment > 75.0:
            p += 0.15
        return max(0.0, min(1.0, p))

    def should_apply(self, changes, sentiment):
        return len(changes) >= 2 or any(c.magnitude > 10.0 and c.stat.is_base for c in changes)

    def feedback_type(self, sentiment):
        return FeedbackType.ANALYSIS


class ProPlayerStrategy(FeedbackStrategy):
    name = "pro_player"
    segment = Segment.PRO
    base_priority = 0.7
    positive = ["{CHARACTER} is tournament viable again."]
    negative = ["This {CHARACTER} patch makes scrims miserable."]
    neutral = ["Our team is still testing {CHARACTER} after the patch."]

    def should_apply(self, changes, sentiment):
        return any(c.magnitude > 5.0 and c.stat in (Stat.DAMAGE, Stat.HEALTH, Stat.SPEED, Stat.WIN_RATE)
                   for c in changes)


class CasualPlayerStrategy(FeedbackStrategy):
    name = "casual_player"
    segment = Segment.CASUAL
    base_priority = 0.5
    jitter = 0.4
    positive = ["{CHARACTER} is more fun to play now!", "My favourite {CHARACTER} got some love."]
    negative = ["I liked {CHARACTER} the way it was.", "Can we please leave {CHARACTER} alone?"]
    neutral = ["I guess {CHARACTER} is different now?"]

    def priority(self, changes, sentiment):
        if not changes:
            return 0.0
        p = self.base_priority
        if any(c.stat in (Stat.HEALTH, Stat.DAMAGE, Stat.SPEED) for c in changes):
            p += 0.25
        if sentiment < 40.0 or sentiment > 70.0:
            p += 0.15
        if all(c.stat == Stat.UTILITY and c.magnitude < 8.0 for c in changes):
            p -= 0.2
        return max(0.0, min(1.0, p))

    def should_apply(self, changes, sentiment):
        return any(c.magnitude > 5.0 and c.stat != Stat.WIN_RATE for c in changes)


class ContentCreatorStrategy(FeedbackStrategy):
    name = "content_creator"
    segment = Segment.CREATORS
    base_priority = 0.6
    min_magnitude = 4.0
    positive = ["New video: why {CHARACTER} is the pick of the week."]
    negative = ["Tier list update: {CHARACTER} drops hard."]
    neutral = ["Streaming {CHARACTER} tonight to test the changes."]

    def priority(self, changes, sentiment):
        p = super().priority(changes, sentiment)
        if changes and len(changes) >= 3:
            p = min(1.0, p + 0.15)
        return p

    def feedback_sentiment(self, change, community_sentiment, rng):
        # Big swings are content either way
        if change.magnitude > 15.0:
            return _clamp1(rng.uniform(0.2, 0.5))
        return super().feedback_sentiment(change, community_sentiment, rng)


class CompetitiveStrategy(FeedbackStrategy):
    name = "competitive"
    segment = Segment.COMPETITIVE
    base_priority = 0.6
    min_magnitude = 6.0
    positive = ["Ranked feels fairer with this {CHARACTER} change."]
    negative = ["{CHARACTER} is now a must-ban in ranked."]
    neutral = ["Ladder will sort out where {CHARACTER} lands."]

    def priority(self, changes, sentiment):
        if not changes:
            return 0.0
        hit = any(c.magnitude > 8.0 or c.stat in (Stat.WIN_RATE, Stat.DAMAGE, Stat.HEALTH)
                  for c in changes)
        return 0.9 if hit else 0.6


DEFAULT_STRATEGIES = (
    BalanceReactionStrategy,
    PopularityShiftStrategy,
    MetaAnalysisStrategy,
    ProPlayerStrategy,
    CasualPlayerStrategy,
    ContentCreatorStrategy,
    CompetitiveStrategy,
)

ORGANIC_POSTS = [
    "Anyone else enjoying the current meta?",
    "Quiet patch week, just grinding games.",
    "What's everyone maining this week?",
    "Hoping the devs look at matchmaking next.",
    "Solo queue has been surprisingly fun lately.",
]


# ══════════════════════════════════════════════
# MANAGER
# ══════════════════════════════════════════════

@dataclass
class CommunityFeedbackManager:
    settings: FeedbackSettings = field(default_factory=FeedbackSettings)
    rng: random.Random = field(default_factory=random.Random)
    strategies: List[FeedbackStrategy] = field(default_factory=lambda: [s() for s in DEFAULT_STRATEGIES])

    def generate(self, changes: List[BalanceChange], community_sentiment: float) -> List[FeedbackItem]:
        significant = [c for c in changes if c.is_significant(self.settings.significant_change)]
        limit = self.settings.max_feedback_per_phase * 2
        items: List[FeedbackItem] = []
        if significant:
            ranked = sorted(
                self.strategies,
                key=lambda s: s.priority(significant, community_sentiment),
                reverse=True,
            )
            for strategy in ranked:
                if len(items) >= limit:
                    break
                if strategy.priority(significant, community_sentiment) <= 0:
                    continue
                if not strategy.should_apply(significant, community_sentiment):
                    continue
                items.append(strategy.generate(significant, community_sentiment, self.rng))
        if not items:
            items = self.generate_organic()
        _log.debug(f"Generated {len(items)} feedback items from {len(changes)} changes")
        return items

    def generate_organic(self) -> List[FeedbackItem]:
        count = self.rng.randint(1, max(1, self.settings.max_organic_feedback))
        out = []
        for _ in range(count):
            score = self.rng.uniform(-0.3, 0.5)
            out.append(FeedbackItem(
                author=_author(self.rng),
                segment=Segment.GENERAL,
                feedback_type=FeedbackType.DISCUSSION,
                content=self.rng.choice(ORGANIC_POSTS),
                sentiment=score,
                upvotes=self.rng.randint(1, 60),
                replies=self.rng.randint(0, 15),
                is_organic=True,
            ))
        return out

    @staticmethod
    def average_sentiment(items: List[FeedbackItem]) -> float:
        if not items:
            return 0.0
        return sum(i.sentiment for i in items) / len(items)


@dataclass
class FeedbackQueue:
    """Sequential display: at most one post per tick, spaced by a fixed delay."""
    settings: FeedbackSettings = field(default_factory=FeedbackSettings)
    rng: random.Random = field(default_factory=random.Random)
    pending: Deque[FeedbackItem] = field(default_factory=deque)
    shown: List[FeedbackItem] = field(default_factory=list)
    active: bool = False
    elapsed: float = 0.0
    shown_this_phase: int = 0

    @property
    def capacity(self) -> int:
        return self.settings.max_feedback_per_phase * 2

    def enqueue(self, items: List[FeedbackItem]):
        """Append new posts; over capacity the oldest pending posts are dropped."""
        self.pending.extend(items)
        dropped = 0
        while len(self.pending) > self.capacity:
            self.pending.popleft()
            dropped += 1
        if dropped:
            _log.debug(f"Feedback queue full, dropped {dropped} stale posts")

    def start(self):
        self.active = True
        self.elapsed = 0.0
        self.shown_this_phase = 0

    def stop(self):
        self.active = False

    def clear(self):
        self.pending.clear()
        self.shown.clear()
        self.stop()

    def tick(self, dt: float) -> Optional[FeedbackItem]:
        if not self.active:
            return None
        if not self.pending or self.shown_this_phase >= self.settings.max_feedback_per_phase:
            self.stop()
            return None
        self.elapsed += dt
        if self.elapsed < self.settings.delay_between_feedback:
            return None
        self.elapsed = 0.0
        item = self.pending.popleft()
        if self.rng.random() >= self.settings.feedback_show_chance:
            return None
        self.shown.append(item)
        self.shown_this_phase += 1
        return item
