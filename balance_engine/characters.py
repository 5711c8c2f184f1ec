"""
Characters and the Stat Store

Each character is identified by its archetype and owns a table of six
float stats.  The store clamps after every mutation:

- Health, Damage, Speed, Utility >= 1
- WinRate, Popularity in [0, 100]

Lookups fail fast: unknown characters raise InvalidCharacter and unknown
stats raise InvalidStat.

Usage:
    store = StatStore(default_roster())
    store.modify_by_percent("warrior", Stat.DAMAGE, 10)
    dmg = store.get(Archetype.WARRIOR, "damage")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from balance_engine.errors import InvalidCharacter, InvalidStat

_log = logging.getLogger("metabalance.characters")


class Archetype(Enum):
    WARRIOR = "warrior"
    MAGE = "mage"
    SUPPORT = "support"
    TANK = "tank"

    @property
    def index(self) -> int:
        return list(Archetype).index(self)


class Stat(Enum):
    HEALTH = "health"
    DAMAGE = "damage"
    SPEED = "speed"
    UTILITY = "utility"
    WIN_RATE = "win_rate"
    POPULARITY = "popularity"

    @property
    def is_base(self) -> bool:
        return self in BASE_STATS


BASE_STATS = (Stat.HEALTH, Stat.DAMAGE, Stat.SPEED, Stat.UTILITY)

# (min, max) per stat; None means unbounded above
STAT_BOUNDS = {
    Stat.HEALTH:     (1.0, None),
    Stat.DAMAGE:     (1.0, None),
    Stat.SPEED:      (1.0, None),
    Stat.UTILITY:    (1.0, None),
    Stat.WIN_RATE:   (0.0, 100.0),
    Stat.POPULARITY: (0.0, 100.0),
}

OVERPOWERED_WIN_RATE = 55.0
UNDERPOWERED_WIN_RATE = 45.0
OVERPOWERED_POPULARITY_BOOST = 5.0   # percent, applied on entering OVERPOWERED

CharacterKey = Union[Archetype, str]
StatKey = Union[Stat, str]


def resolve_archetype(key: CharacterKey) -> Archetype:
    if isinstance(key, Archetype):
        return key
    if isinstance(key, str):
        try:
            return Archetype(key.strip().lower())
        except ValueError:
            pass
    raise InvalidCharacter(key)


def resolve_stat(key: StatKey) -> Stat:
    if isinstance(key, Stat):
        return key
    if isinstance(key, str):
        norm = key.strip().lower().replace(" ", "_")
        if norm == "winrate":
            norm = "win_rate"
        try:
            return Stat(norm)
        except ValueError:
            pass
    raise InvalidStat(key)


def clamp_stat(stat: Stat, value: float) -> float:
    lo, hi = STAT_BOUNDS[stat]
    value = max(lo, value)
    if hi is not None:
        value = min(hi, value)
    return value


class BalanceState(Enum):
    BALANCED = "balanced"
    OVERPOWERED = "overpowered"
    UNDERPOWERED = "underpowered"


def balance_state_for(win_rate: float) -> BalanceState:
    if win_rate > OVERPOWERED_WIN_RATE:
        return BalanceState.OVERPOWERED
    if win_rate < UNDERPOWERED_WIN_RATE:
        return BalanceState.UNDERPOWERED
    return BalanceState.BALANCED


# ──────────────────────────────────────────────
# CHARACTER DATA
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class CharacterData:
    """Immutable base kit for one character."""
    archetype: Archetype
    name: str
    description: str = ""
    base_health: float = 50.0
    base_damage: float = 50.0
    base_speed: float = 50.0
    base_utility: float = 50.0
    base_popularity: float = 50.0

    def base_value(self, stat: Stat) -> float:
        if stat == Stat.WIN_RATE:
            return 50.0
        return {
            Stat.HEALTH: self.base_health,
            Stat.DAMAGE: self.base_damage,
            Stat.SPEED: self.base_speed,
            Stat.UTILITY: self.base_utility,
            Stat.POPULARITY: self.base_popularity,
        }[stat]

    @classmethod
    def from_dict(cls, d: dict) -> "CharacterData":
        if not isinstance(d, dict) or "archetype" not in d:
            raise ValueError(f"Roster entry needs an 'archetype': {d!r}")
        arch = resolve_archetype(d["archetype"])
        try:
            return cls(
                archetype=arch,
                name=d.get("name", arch.value.title()),
                description=d.get("description", ""),
                base_health=float(d.get("health", 50.0)),
                base_damage=float(d.get("damage", 50.0)),
                base_speed=float(d.get("speed", 50.0)),
                base_utility=float(d.get("utility", 50.0)),
                base_popularity=float(d.get("popularity", 50.0)),
            )
        except (TypeError, ValueError):
            raise ValueError(f"Invalid stats for roster entry {arch.value}") from None


_DEFAULT_NAMES = {
    Archetype.WARRIOR: ("Warrior", "Frontline brawler with balanced health and damage."),
    Archetype.MAGE:    ("Mage", "Fragile burst caster that scales with damage."),
    Archetype.SUPPORT: ("Support", "Utility specialist that enables the team."),
    Archetype.TANK:    ("Tank", "Durable protector that soaks damage."),
}


def default_roster() -> List[CharacterData]:
    """One neutral (all 50s) character per archetype."""
    return [
        CharacterData(archetype=a, name=_DEFAULT_NAMES[a][0], description=_DEFAULT_NAMES[a][1])
        for a in Archetype
    ]


@dataclass(frozen=True)
class StatModifier:
    """Audit record of a single stat change.

    ``previous`` and ``result`` are the clamped values on either side of the
    change, which is what StatStore.revert needs to undo it exactly.
    """
    stat: Stat
    percentage: float
    applied_at: float
    previous: float = 0.0
    result: float = 0.0

    def to_dict(self) -> dict:
        return {
            "stat": self.stat.value,
            "percentage": round(self.percentage, 2),
            "applied_at": round(self.applied_at, 2),
            "previous": round(self.previous, 2),
            "result": round(self.result, 2),
        }


# ──────────────────────────────────────────────
# STAT STORE
# ──────────────────────────────────────────────

@dataclass
class StatStore:
    """Per-character mutable stat tables with clamping and modifier history."""
    roster: Iterable[CharacterData] = field(default_factory=default_roster)
    clock: float = 0.0
    characters: Dict[Archetype, CharacterData] = field(init=False)
    values: Dict[Archetype, Dict[Stat, float]] = field(init=False)
    history: Dict[Archetype, List[StatModifier]] = field(init=False)

    def __post_init__(self):
        self.characters = {}
        for data in self.roster:
            if data.archetype in self.characters:
                raise ValueError(f"Duplicate character for {data.archetype.value}")
            self.characters[data.archetype] = data
        self.roster = list(self.characters.values())
        self.values = {}
        self.history = {}
        self.reset_all()

    @property
    def archetypes(self) -> List[Archetype]:
        return list(self.characters.keys())

    def _table(self, character: CharacterKey) -> Dict[Stat, float]:
        arch = resolve_archetype(character)
        if arch not in self.values:
            raise InvalidCharacter(character)
        return self.values[arch]

    def get(self, character: CharacterKey, stat: StatKey) -> float:
        return self._table(character)[resolve_stat(stat)]

    def set(self, character: CharacterKey, stat: StatKey, value: float) -> float:
        table = self._table(character)
        s = resolve_stat(stat)
        table[s] = clamp_stat(s, float(value))
        return table[s]

    def modify_by_percent(self, character: CharacterKey, stat: StatKey, pct: float) -> float:
        table = self._table(character)
        s = resolve_stat(stat)
        old = table[s]
        table[s] = clamp_stat(s, old + old * pct / 100.0)
        self.history[resolve_archetype(character)].append(
            StatModifier(stat=s, percentage=pct, applied_at=self.clock, previous=old, result=table[s])
        )
        _log.debug(f"{resolve_archetype(character).value} {s.value} {pct:+.1f}%: "
                   f"{old:.2f} -> {table[s]:.2f}")
        return table[s]

    def revert(self, character: CharacterKey, modifier: StatModifier) -> float:
        """Undo a recorded percentage change.

        Applies the inverse of previous -> result to the current value, so
        changes made after the modifier are kept.  A change that ended at 0
        cannot be inverted by a percentage and is restored to ``previous``.
        The reversal is itself recorded in the history.
        """
        arch = resolve_archetype(character)
        if arch not in self.history:
            raise InvalidCharacter(character)
        if not any(m is modifier for m in self.history[arch]):
            raise ValueError(f"Modifier is not in {arch.value}'s history")
        s = modifier.stat
        if modifier.result == 0:
            old = self.values[arch][s]
            value = self.set(arch, s, modifier.previous)
            self.history[arch].append(StatModifier(
                stat=s, percentage=0.0, applied_at=self.clock, previous=old, result=value,
            ))
            return value
        inverse = (modifier.previous / modifier.result - 1.0) * 100.0
        return self.modify_by_percent(arch, s, inverse)

    def base_value(self, character: CharacterKey, stat: StatKey) -> float:
        arch = resolve_archetype(character)
        if arch not in self.characters:
            raise InvalidCharacter(character)
        return self.characters[arch].base_value(resolve_stat(stat))

    def reset_all(self):
        for arch, data in self.characters.items():
            self.values[arch] = {s: clamp_stat(s, data.base_value(s)) for s in Stat}
            self.history[arch] = []

    def modifiers(self, character: CharacterKey) -> List[StatModifier]:
        arch = resolve_archetype(character)
        if arch not in self.history:
            raise InvalidCharacter(character)
        return list(self.history[arch])

    def stats_of(self, character: CharacterKey) -> Dict[Stat, float]:
        return dict(self._table(character))

    def column(self, stat: StatKey) -> Dict[Archetype, float]:
        s = resolve_stat(stat)
        return {a: t[s] for a, t in self.values.items()}

    def balance_state(self, character: CharacterKey) -> BalanceState:
        return balance_state_for(self.get(character, Stat.WIN_RATE))

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        return {
            a.value: {s.value: v for s, v in t.items()}
            for a, t in self.values.items()
        }

    def to_dict(self) -> dict:
        out = {}
        for arch, data in self.characters.items():
            table = self.values[arch]
            out[arch.value] = {
                "name": data.name,
                "description": data.description,
                "stats": {s.value: round(v, 2) for s, v in table.items()},
                "balance_state": balance_state_for(table[Stat.WIN_RATE]).value,
                "modifiers": [m.to_dict() for m in self.history[arch][-10:]],
            }
        return out
