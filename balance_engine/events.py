"""
Event data model.

EventDefinition is an immutable template; triggering it produces an
ActiveEvent with its own countdown.  Lifecycle:

    PENDING (queued, over capacity) -> DISPLAYED -> RESOLVED | EXPIRED

Stat effects with ``character=None`` target the event's subject character
(or every character when the event has no subject).  Corrective effects
(``toward_balance``) pick their direction from each target's win rate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from balance_engine.characters import Archetype, Stat


class EventCategory(Enum):
    CRISIS = "crisis"
    OPPORTUNITY = "opportunity"
    COMMUNITY = "community"
    TECHNICAL = "technical"
    COMPETITIVE = "competitive"
    SEASONAL = "seasonal"
    REACTION = "reaction"


class EventSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EventStatus(Enum):
    PENDING = "pending"
    DISPLAYED = "displayed"
    RESOLVED = "resolved"
    EXPIRED = "expired"


@dataclass(frozen=True)
class StatEffect:
    """One stat change applied by a response.

    With ``toward_balance`` the sign of ``magnitude`` is ignored: the change
    weakens a target whose win rate is above 50 and strengthens one below 50
    (a target sitting at 50 is left alone).  A win-rate change never
    overshoots 50.
    """
    stat: Stat
    magnitude: float
    character: Optional[Archetype] = None
    is_percentage: bool = True
    toward_balance: bool = False

    def to_dict(self) -> dict:
        return {
            "character": self.character.value if self.character else None,
            "stat": self.stat.value,
            "magnitude": self.magnitude,
            "is_percentage": self.is_percentage,
            "toward_balance": self.toward_balance,
        }


@dataclass(frozen=True)
class ResponseOption:
    response_id: str
    label: str
    description: str = ""
    rp_cost: int = 0
    cp_cost: int = 0
    effects: Tuple[StatEffect, ...] = ()
    sentiment_change: float = 0.0
    success_chance: float = 1.0
    success_message: str = ""
    failure_message: str = ""
    failure_effects: Tuple[StatEffect, ...] = ()
    failure_sentiment_change: float = 0.0
    rp_reward: int = 0
    cp_reward: int = 0

    @property
    def can_fail(self) -> bool:
        return self.success_chance < 1.0

    def to_dict(self) -> dict:
        return {
            "id": self.response_id,
            "label": self.label,
            "description": self.description,
            "rp_cost": self.rp_cost,
            "cp_cost": self.cp_cost,
            "sentiment_change": self.sentiment_change,
            "success_chance": self.success_chance,
            "effects": [e.to_dict() for e in self.effects],
        }


@dataclass(frozen=True)
class EventDefinition:
    key: str
    title: str
    description: str
    category: EventCategory
    severity: EventSeverity = EventSeverity.MEDIUM
    time_to_live: float = 90.0
    responses: Tuple[ResponseOption, ...] = ()
    expiration_penalty: Optional[ResponseOption] = None

    def response(self, response_id: str) -> Optional[ResponseOption]:
        for r in self.responses:
            if r.response_id == response_id:
                return r
        return None


@dataclass
class ActiveEvent:
    event_id: str
    definition: EventDefinition
    time_remaining: float
    status: EventStatus = EventStatus.PENDING
    subject: Optional[Archetype] = None
    created_week: int = 1
    created_at: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.status in (EventStatus.PENDING, EventStatus.DISPLAYED)

    @property
    def title(self) -> str:
        return self.definition.title

    def to_dict(self) -> dict:
        d = self.definition
        return {
            "id": self.event_id,
            "key": d.key,
            "title": d.title,
            "description": d.description,
            "category": d.category.value,
            "severity": d.severity.value,
            "status": self.status.value,
            "time_remaining": round(max(0.0, self.time_remaining), 2),
            "subject": self.subject.value if self.subject else None,
            "week": self.created_week,
            "responses": [r.to_dict() for r in d.responses],
        }


@dataclass
class AppliedEffect:
    character: Archetype
    stat: Stat
    previous: float
    new: float

    def to_dict(self) -> dict:
        return {
            "character": self.character.value,
            "stat": self.stat.value,
            "previous": round(self.previous, 2),
            "new": round(self.new, 2),
        }


@dataclass
class EventResolution:
    """Outcome of a player response or an expiration."""
    event_id: str
    response_id: str
    success: bool
    message: str
    expired: bool = False
    rp_spent: int = 0
    cp_spent: int = 0
    rp_gained: int = 0
    cp_gained: int = 0
    sentiment_before: float = 0.0
    sentiment_after: float = 0.0
    applied: List[AppliedEffect] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "response_id": self.response_id,
            "success": self.success,
            "message": self.message,
            "expired": self.expired,
            "rp_spent": self.rp_spent,
            "cp_spent": self.cp_spent,
            "rp_gained": self.rp_gained,
            "cp_gained": self.cp_gained,
            "sentiment_before": round(self.sentiment_before, 2),
            "sentiment_after": round(self.sentiment_after, 2),
            "applied": [a.to_dict() for a in self.applied],
        }
