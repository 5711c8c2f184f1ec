"""
Event templates by category.

Each category has a handful of (key, title, description, severity) variants
that share the category's response options and time-to-live.  Special
templates (balance concern, emergency meeting, outrage, seasonal, burst
reaction) are built by the functions at the bottom.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from balance_engine.characters import Stat
from balance_engine.events import (
    EventCategory, EventDefinition, EventSeverity, ResponseOption, StatEffect,
)

C, O, M, T, P = (EventCategory.CRISIS, EventCategory.OPPORTUNITY, EventCategory.COMMUNITY,
                 EventCategory.TECHNICAL, EventCategory.COMPETITIVE)

LOW, MED, HIGH, CRIT = EventSeverity.LOW, EventSeverity.MEDIUM, EventSeverity.HIGH, EventSeverity.CRITICAL


# ──────────────────────────────────────────────
# VARIANTS
# ──────────────────────────────────────────────

_VARIANTS: Dict[EventCategory, List[Tuple[str, str, str, EventSeverity]]] = {
    C: [
        ("exploit", "Character Exploit Discovered",
         "Players found a way to stack damage without limit. The community wants a fix now.", CRIT),
        ("server_stability", "Server Stability Issues",
         "Ranked matches keep disconnecting. Competitive integrity is at risk.", HIGH),
        ("complaint_surge", "Balance Complaint Surge",
         "Several characters are being called overpowered. Sentiment is sliding.", MED),
        ("tournament_bug", "Tournament Bug",
         "A critical bug turned up right before a major tournament.", CRIT),
    ],
    O: [
        ("viral_moment", "Viral Gameplay Moment",
         "A streamer pulled off an incredible play and everyone is talking about it.", MED),
        ("tournament_success", "Tournament Success",
         "The last tournament set a viewership record.", MED),
        ("fan_content", "Community Creation",
         "Players made great fan content that deserves a spotlight.", LOW),
        ("pro_endorsement", "Pro Player Endorsement",
         "Top players are praising the recent balance changes.", MED),
    ],
    M: [
        ("feedback_surge", "Feedback Surge",
         "The community is sending a lot of feedback about recent changes.", MED),
        ("forum_thread", "Forum Discussion",
         "A long balance thread is climbing the front page.", MED),
        ("creator_review", "Content Creator Review",
         "A popular creator is reviewing the latest patch.", MED),
        ("poll_results", "Community Poll Results",
         "The latest poll shows mixed reactions to the changes.", LOW),
    ],
    T: [
        ("server_performance", "Server Performance Issues",
         "Some players see lag during peak hours.", HIGH),
        ("matchmaking", "Matchmaking Irregularities",
         "Odd patterns showed up in the matchmaking logs.", MED),
        ("stats_tracking", "Data Collection Error",
         "Player statistics tracking has inconsistencies.", MED),
        ("client_crash", "Client Crash Reports",
         "Crash reports from the game client are increasing.", HIGH),
    ],
    P: [
        ("meta_shift", "Meta Shift Analysis",
         "Pro players are adapting to the changes in unexpected ways.", MED),
        ("championship_prep", "Championship Preparation",
         "Teams are adjusting strategies ahead of a major tournament.", MED),
        ("tier_list", "Tier List Controversy",
         "The community is arguing over the character tier rankings.", LOW),
        ("pro_feedback", "Pro Player Feedback",
         "Professional players are sharing notes on competitive balance.", MED),
    ],
}


def _ignored(sentiment: float = -5.0, *effects: StatEffect) -> ResponseOption:
    return ResponseOption(
        response_id="ignored",
        label="Ignored",
        description="No response before the deadline",
        effects=tuple(effects),
        sentiment_change=sentiment,
        success_message="The moment passed without a response.",
    )


# category -> (responses, expiration penalty)
_CATEGORY_RESPONSES: Dict[EventCategory, Tuple[Tuple[ResponseOption, ...], ResponseOption]] = {
    C: (
        (
            ResponseOption(
                "emergency_fix", "Emergency Fix", "Deploy an immediate hotfix",
                rp_cost=3, cp_cost=0,
                effects=(StatEffect(Stat.WIN_RATE, 5.0, toward_balance=True),),
                sentiment_change=12.0, success_chance=0.85,
                success_message="Crisis resolved with quick action!",
                failure_message="The hotfix introduced new problems.",
                failure_effects=(StatEffect(Stat.POPULARITY, -5.0),),
                failure_sentiment_change=-4.0,
            ),
            ResponseOption(
                "investigate", "Investigate Further", "Gather data before acting",
                rp_cost=1, cp_cost=1, sentiment_change=-2.0,
                success_message="Investigation reveals key insights.",
            ),
        ),
        _ignored(-10.0, StatEffect(Stat.POPULARITY, -5.0)),
    ),
    O: (
        (
            ResponseOption(
                "seize", "Seize Opportunity", "Take advantage of the momentum",
                rp_cost=1, cp_cost=2,
                effects=(StatEffect(Stat.POPULARITY, 8.0),),
                sentiment_change=10.0, cp_reward=1,
                success_message="Opportunity successfully leveraged!",
            ),
            ResponseOption(
                "monitor", "Monitor Situation", "Watch before committing resources",
                sentiment_change=2.0,
                success_message="Situation monitored for optimal timing.",
            ),
        ),
        _ignored(-3.0),
    ),
    M: (
        (
            ResponseOption(
                "engage", "Engage Community", "Join the discussion directly",
                cp_cost=2, sentiment_change=8.0, success_chance=0.9,
                success_message="Community engagement successful!",
                failure_message="A dev comment was taken out of context.",
                failure_sentiment_change=-3.0,
            ),
            ResponseOption(
                "observe", "Observe & Learn", "Read feedback without stepping in",
                sentiment_change=2.0,
                success_message="Valuable community insights gathered.",
            ),
        ),
        _ignored(-4.0),
    ),
    T: (
        (
            ResponseOption(
                "technical_fix", "Technical Fix", "Ship an immediate technical fix",
                rp_cost=2, sentiment_change=6.0,
                success_message="Technical issue resolved successfully!",
            ),
            ResponseOption(
                "maintenance", "Schedule Maintenance", "Plan a proper maintenance window",
                cp_cost=1, sentiment_change=3.0,
                success_message="Maintenance scheduled for optimal resolution.",
            ),
        ),
        _ignored(-6.0),
    ),
    P: (
        (
            ResponseOption(
                "analyze_meta", "Analyze Meta", "Dig into competitive data and trends",
                rp_cost=2, cp_cost=1,
                effects=(StatEffect(Stat.WIN_RATE, 2.0, toward_balance=True),),
                sentiment_change=5.0, rp_reward=1,
                success_message="Meta analysis reveals valuable insights!",
            ),
            ResponseOption(
                "consult_pros", "Consult Pros", "Ask professional players directly",
                rp_cost=1, cp_cost=2, sentiment_change=7.0, success_chance=0.8,
                success_message="Pro consultation provides expert perspective.",
                failure_message="The pros disagreed with each other loudly.",
                failure_sentiment_change=-2.0,
            ),
        ),
        _ignored(-3.0),
    ),
}

_CATEGORY_TTL = {C: 90.0, O: 120.0, M: 90.0, T: 120.0, P: 150.0}
CRITICAL_TTL = 60.0


def _build(category: EventCategory) -> List[EventDefinition]:
    responses, penalty = _CATEGORY_RESPONSES[category]
    out = []
    for key, title, description, severity in _VARIANTS[category]:
        ttl = CRITICAL_TTL if severity == CRIT else _CATEGORY_TTL[category]
        out.append(EventDefinition(
            key=f"{category.value}.{key}", title=title, description=description,
            category=category, severity=severity, time_to_live=ttl,
            responses=responses, expiration_penalty=penalty,
        ))
    return out


EVENT_POOLS: Dict[EventCategory, List[EventDefinition]] = {cat: _build(cat) for cat in _VARIANTS}


def templates_for(category: EventCategory) -> List[EventDefinition]:
    return list(EVENT_POOLS.get(category, []))


# ──────────────────────────────────────────────
# SPECIAL EVENTS
# ──────────────────────────────────────────────

def balance_concern_event(win_rate: float, high: float = 60.0, low: float = 40.0) -> EventDefinition:
    """Raised for a character whose win rate drifted out of [low, high]."""
    overpowered = win_rate > high
    severe = win_rate > high + 5.0 or win_rate < low - 5.0
    direction = "too strong" if overpowered else "too weak"
    nudge = -10.0 if overpowered else 10.0
    return EventDefinition(
        key="crisis.balance_concern",
        title="Balance Concern",
        description=f"Players think this character is {direction} at {win_rate:.1f}% win rate.",
        category=C,
        severity=HIGH if severe else MED,
        time_to_live=90.0,
        responses=(
            ResponseOption(
                "adjust", "Targeted Adjustment", "Tune the character's core stat",
                rp_cost=2, effects=(StatEffect(Stat.DAMAGE, nudge),),
                sentiment_change=6.0,
                success_message="The adjustment landed well.",
            ),
            ResponseOption(
                "acknowledge", "Acknowledge", "Post that the team is watching it",
                cp_cost=1, sentiment_change=2.0,
                success_message="Players appreciate being heard.",
            ),
        ),
        expiration_penalty=_ignored(-6.0),
    )


def emergency_meeting_event(overall_balance: float) -> EventDefinition:
    return EventDefinition(
        key="crisis.emergency_meeting",
        title="Emergency Balance Meeting",
        description=f"Overall balance fell to {overall_balance:.0f}. Leadership wants a plan.",
        category=C,
        severity=CRIT,
        time_to_live=CRITICAL_TTL,
        responses=(
            ResponseOption(
                "balance_pass", "Full Balance Pass", "Pull every outlier toward the middle",
                rp_cost=5, cp_cost=1,
                effects=(StatEffect(Stat.WIN_RATE, 10.0, toward_balance=True),),
                sentiment_change=10.0, success_chance=0.75,
                success_message="The balance pass restored confidence.",
                failure_message="The balance pass missed the mark.",
                failure_sentiment_change=-5.0,
            ),
            ResponseOption(
                "roadmap", "Publish Roadmap", "Explain what will change and when",
                cp_cost=2, sentiment_change=4.0,
                success_message="The roadmap bought some goodwill.",
            ),
        ),
        expiration_penalty=_ignored(-12.0),
    )


def community_outrage_event(sentiment: float) -> EventDefinition:
    return EventDefinition(
        key="community.outrage",
        title="Community Outrage",
        description=f"Sentiment has collapsed to {sentiment:.0f}. Review bombing has started.",
        category=M,
        severity=CRIT,
        time_to_live=CRITICAL_TTL,
        responses=(
            ResponseOption(
                "apology", "Public Apology", "Own the mistakes openly",
                cp_cost=3, sentiment_change=15.0,
                success_message="The apology was well received.",
            ),
            ResponseOption(
                "compensation", "Player Compensation", "Hand out free rewards",
                rp_cost=2, cp_cost=1, sentiment_change=9.0, success_chance=0.7,
                success_message="Players accepted the compensation.",
                failure_message="Players called the compensation an insult.",
                failure_sentiment_change=-6.0,
            ),
        ),
        expiration_penalty=_ignored(-15.0),
    )


_SEASONAL = [
    ("season.ranked_reset", "Ranked Season Reset",
     "A new ranked season starts and everyone is testing the meta."),
    ("season.world_championship", "World Championship",
     "The yearly championship is here and every stat will be scrutinised."),
    ("season.anniversary", "Anniversary Celebration",
     "The game's anniversary is bringing lapsed players back."),
]


def seasonal_event(week: int, interval: int = 5) -> EventDefinition:
    """Template for the season starting at ``week``; rotates every ``interval`` weeks."""
    season = week // interval if interval > 0 else week
    key, title, description = _SEASONAL[season % len(_SEASONAL)]
    return EventDefinition(
        key=key, title=title, description=description,
        category=EventCategory.SEASONAL, severity=MED, time_to_live=150.0,
        responses=(
            ResponseOption(
                "celebrate", "Run Season Event", "Fund an in-game celebration",
                rp_cost=2, cp_cost=2, sentiment_change=10.0, cp_reward=2,
                effects=(StatEffect(Stat.POPULARITY, 5.0),),
                success_message="The season kicked off in style.",
            ),
            ResponseOption(
                "low_key", "Keep It Low-Key", "Let the season start quietly",
                sentiment_change=1.0,
                success_message="The season started without fanfare.",
            ),
        ),
        expiration_penalty=_ignored(-2.0),
    )


def patch_whiplash_event(change_count: int) -> EventDefinition:
    """Reaction to a burst of large stat changes in a short window."""
    return EventDefinition(
        key="reaction.patch_whiplash",
        title="Patch Whiplash",
        description=f"{change_count} major changes landed back to back. Players feel lost.",
        category=EventCategory.REACTION,
        severity=HIGH,
        time_to_live=90.0,
        responses=(
            ResponseOption(
                "patch_notes", "Detailed Patch Notes", "Explain every change",
                cp_cost=1, sentiment_change=6.0,
                success_message="Clear notes calmed things down.",
            ),
            ResponseOption(
                "freeze", "Announce Balance Freeze", "Promise no changes for a while",
                rp_cost=1, cp_cost=1, sentiment_change=9.0,
                success_message="Players welcome a stable patch.",
            ),
        ),
        expiration_penalty=_ignored(-8.0),
    )
