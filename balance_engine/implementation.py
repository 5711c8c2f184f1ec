"""
Balance Change Cards

The player pays for balance work.  During Planning (or Implementation) a
BalanceChangeCard is queued; entering Implementation implements the whole
queue as one batch:

    1. total RP/CP of every queued card is checked
    2. the total is spent up front
    3. each card applies its percentage change in queue order

When the total cannot be afforded nothing is applied, nothing is spent and
the queue is kept for a later attempt.  Queued cards cost nothing until they
are implemented, so cancelling one is free.

An implemented card can be undone.  The undo inverts the change recorded in
the stat store's modifier history; costs are not refunded.

Usage:
    plan = ImplementationQueue(resources)
    change = plan.add(BalanceChangeCard(Archetype.MAGE, Stat.DAMAGE, -10, rp_cost=2))
    report = plan.implement(store)
    plan.undo(change.change_id, store)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from balance_engine.characters import Archetype, Stat, StatModifier, StatStore
from balance_engine.errors import ChangeNotFound, ChangeNotUndoable, InsufficientResources
from balance_engine.resources import ResourceManager

_log = logging.getLogger("metabalance.implementation")

MAX_CARD_PERCENT = 50.0


class ChangeStatus(Enum):
    QUEUED = "queued"
    IMPLEMENTED = "implemented"
    CANCELLED = "cancelled"
    UNDONE = "undone"


@dataclass(frozen=True)
class BalanceChangeCard:
    character: Archetype
    stat: Stat
    percent: float
    rp_cost: int = 0
    cp_cost: int = 0
    name: str = ""

    def __post_init__(self):
        if abs(self.percent) > MAX_CARD_PERCENT:
            raise ValueError(f"Balance change of {self.percent}% exceeds ±{MAX_CARD_PERCENT:.0f}%")
        if self.rp_cost < 0 or self.cp_cost < 0:
            raise ValueError("Card costs must be non-negative")

    @property
    def description(self) -> str:
        direction = "Increase" if self.percent >= 0 else "Decrease"
        return f"{direction} {self.character.value}'s {self.stat.value} by {abs(self.percent):g}%"

    def to_dict(self) -> dict:
        return {
            "name": self.name or self.description,
            "character": self.character.value,
            "stat": self.stat.value,
            "percent": self.percent,
            "rp_cost": self.rp_cost,
            "cp_cost": self.cp_cost,
            "description": self.description,
        }


@dataclass
class PlannedChange:
    change_id: str
    card: BalanceChangeCard
    status: ChangeStatus = ChangeStatus.QUEUED
    week: int = 1
    previous: Optional[float] = None
    result: Optional[float] = None
    modifier: Optional[StatModifier] = None

    def to_dict(self) -> dict:
        d = {
            "id": self.change_id,
            "status": self.status.value,
            "week": self.week,
            "previous": round(self.previous, 2) if self.previous is not None else None,
            "result": round(self.result, 2) if self.result is not None else None,
        }
        d.update(self.card.to_dict())
        return d


@dataclass
class ImplementationReport:
    implemented: List[PlannedChange] = field(default_factory=list)
    rp_spent: int = 0
    cp_spent: int = 0
    affordable: bool = True
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "implemented": [c.to_dict() for c in self.implemented],
            "rp_spent": self.rp_spent,
            "cp_spent": self.cp_spent,
            "affordable": self.affordable,
            "message": self.message,
        }


@dataclass
class ImplementationQueue:
    resources: ResourceManager
    queue: List[PlannedChange] = field(default_factory=list)
    history: Dict[str, PlannedChange] = field(default_factory=dict)
    _counter: int = 0

    def total_cost(self) -> Tuple[int, int]:
        rp = sum(c.card.rp_cost for c in self.queue)
        cp = sum(c.card.cp_cost for c in self.queue)
        return rp, cp

    def add(self, card: BalanceChangeCard, week: int = 1) -> PlannedChange:
        """Queue a card; the whole queue (this card included) must stay affordable."""
        rp, cp = self.total_cost()
        rp, cp = rp + card.rp_cost, cp + card.cp_cost
        if not self.resources.can_spend(rp, cp):
            raise InsufficientResources(rp, cp, self.resources.research_points,
                                        self.resources.community_points)
        self._counter += 1
        change = PlannedChange(change_id=f"chg-{self._counter:04d}", card=card, week=week)
        self.queue.append(change)
        self.history[change.change_id] = change
        _log.info(f"Queued {change.change_id}: {card.description} ({card.rp_cost} RP / {card.cp_cost} CP)")
        return change

    def find(self, change_id: str) -> PlannedChange:
        if change_id not in self.history:
            raise ChangeNotFound(f"No balance change with id {change_id!r}")
        return self.history[change_id]

    def cancel(self, change_id: str) -> PlannedChange:
        change = self.find(change_id)
        if change.status != ChangeStatus.QUEUED:
            raise ChangeNotFound(f"Balance change {change_id} is not queued")
        self.queue.remove(change)
        change.status = ChangeStatus.CANCELLED
        return change

    def implement(self, store: StatStore) -> ImplementationReport:
        if not self.queue:
            return ImplementationReport(message="No balance changes queued")
        rp, cp = self.total_cost()
        if not self.resources.can_spend(rp, cp):
            _log.info(f"Cannot implement {len(self.queue)} changes: need {rp} RP / {cp} CP")
            return ImplementationReport(affordable=False,
                                        message=f"Insufficient resources: need {rp} RP / {cp} CP")

        self.resources.spend(rp, cp)
        report = ImplementationReport(rp_spent=rp, cp_spent=cp)
        for change in self.queue:
            card = change.card
            change.previous = store.get(card.character, card.stat)
            change.result = store.modify_by_percent(card.character, card.stat, card.percent)
            change.modifier = store.modifiers(card.character)[-1]
            change.status = ChangeStatus.IMPLEMENTED
            report.implemented.append(change)
        self.queue = []
        report.message = f"Implemented {len(report.implemented)} changes for {rp} RP / {cp} CP"
        _log.info(report.message)
        return report

    def undo(self, change_id: str, store: StatStore) -> Tuple[float, float]:
        """Revert an implemented change; returns (before, after) of the stat."""
        change = self.find(change_id)
        if change.status != ChangeStatus.IMPLEMENTED or change.modifier is None:
            raise ChangeNotUndoable(f"Balance change {change_id} is {change.status.value}")
        card = change.card
        before = store.get(card.character, card.stat)
        try:
            after = store.revert(card.character, change.modifier)
        except ValueError:
            raise ChangeNotUndoable(f"Balance change {change_id} was wiped by a reset") from None
        change.status = ChangeStatus.UNDONE
        _log.info(f"Undid {change_id}: {card.character.value} {card.stat.value} "
                  f"{before:.2f} -> {after:.2f}")
        return before, after

    def implemented(self) -> List[PlannedChange]:
        return [c for c in self.history.values() if c.status == ChangeStatus.IMPLEMENTED]

    def reset(self):
        """Forget the plan and every implemented change (stats were reset)."""
        self.queue = []
        self.history.clear()

    def to_dict(self) -> dict:
        rp, cp = self.total_cost()
        return {
            "queued": [c.to_dict() for c in self.queue],
            "implemented": [c.to_dict() for c in self.implemented()],
            "queued_cost": {"rp": rp, "cp": cp},
        }
