"""
Simulation Settings

Dataclass configuration for every tunable in the engine, loaded once at
simulation start.  Defaults live in the dataclasses; ``data/meta_settings.json``
ships the same values plus the starting roster, and any JSON file with the
same sections (balance / events / feedback / resources / roster) can
override them.

Usage:
    cfg = load_settings()                       # bundled defaults
    cfg = load_settings("my_settings.json")     # custom file
    cfg.balance.normalize_weights()
"""

from __future__ import annotations

import copy
import json
import logging
import warnings
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Dict, List, Optional, Union

from balance_engine.characters import Archetype, CharacterData, default_roster, resolve_archetype
from balance_engine.errors import ConfigurationInvariantViolated

_log = logging.getLogger("metabalance.settings")

SCHEDULE_MODES = ("turn_based", "continuous")

DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_SETTINGS_PATH = DATA_DIR / "meta_settings.json"

WEIGHT_TOLERANCE = 0.01


def _default_win_rate_mods() -> Dict[Archetype, float]:
    return {
        Archetype.WARRIOR: 0.0,
        Archetype.MAGE: 0.0,
        Archetype.SUPPORT: -2.0,
        Archetype.TANK: 1.0,
    }


def _default_popularity_mods() -> Dict[Archetype, float]:
    return {
        Archetype.WARRIOR: 5.0,
        Archetype.MAGE: 0.0,
        Archetype.SUPPORT: -10.0,
        Archetype.TANK: -5.0,
    }


# ═══════════════════════════════════════════════════════════════
# BALANCE CALCULATION
# ═══════════════════════════════════════════════════════════════

@dataclass
class BalanceCalculationSettings:
    """Weights and thresholds for the win-rate pipeline."""
    # Power weights (should sum to 1.0)
    health_weight: float = 0.25
    damage_weight: float = 0.35
    speed_weight: float = 0.20
    utility_weight: float = 0.20

    # Matchups
    max_matchup_modifier: float = 8.0
    matchup_influence: float = 0.4

    # Popularity
    popularity_penalty: float = 4.0
    unpopularity_bonus: float = 3.0
    high_popularity_threshold: float = 70.0
    low_popularity_threshold: float = 30.0

    # Meta health
    ideal_win_rate_range: float = 5.0
    ideal_popularity_range: float = 25.0

    # Variance / smoothing
    max_random_variance: float = 3.0
    meta_drift_strength: float = 1.0
    win_rate_transition_speed: float = 0.3
    calculation_iterations: int = 3
    calculation_momentum: float = 0.2
    calibrate_archetype_power: bool = True

    archetype_win_rate_modifiers: Dict[Archetype, float] = field(default_factory=_default_win_rate_mods)
    archetype_popularity_modifiers: Dict[Archetype, float] = field(default_factory=_default_popularity_mods)

    def total_weight(self) -> float:
        return self.health_weight + self.damage_weight + self.speed_weight + self.utility_weight

    def normalize_weights(self):
        total = self.total_weight()
        if total > 0:
            self.health_weight /= total
            self.damage_weight /= total
            self.speed_weight /= total
            self.utility_weight /= total

    def reset_to_defaults(self):
        fresh = BalanceCalculationSettings()
        for f in fields(self):
            setattr(self, f.name, copy.deepcopy(getattr(fresh, f.name)))

    def win_rate_modifier(self, archetype: Archetype) -> float:
        return self.archetype_win_rate_modifiers.get(archetype, 0.0)

    def popularity_modifier(self, archetype: Archetype) -> float:
        return self.archetype_popularity_modifiers.get(archetype, 0.0)

    def validate(self) -> List[str]:
        """Warn (never raise) on settings the formulas do not expect."""
        problems = []
        total = self.total_weight()
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            problems.append(f"power weights sum to {total:.3f}, expected 1.0")
        if self.high_popularity_threshold >= 100 or self.low_popularity_threshold <= 0:
            problems.append("popularity thresholds must lie strictly inside (0, 100)")
        if self.low_popularity_threshold >= self.high_popularity_threshold:
            problems.append("low popularity threshold is not below the high threshold")
        if not 0.0 <= self.win_rate_transition_speed <= 1.0:
            problems.append(f"win_rate_transition_speed {self.win_rate_transition_speed} outside [0, 1]")
        for msg in problems:
            _log.warning(f"Balance settings: {msg}")
            warnings.warn(msg, ConfigurationInvariantViolated, stacklevel=2)
        return problems

    def to_dict(self) -> dict:
        d = asdict(self)
        d["archetype_win_rate_modifiers"] = {a.value: v for a, v in self.archetype_win_rate_modifiers.items()}
        d["archetype_popularity_modifiers"] = {a.value: v for a, v in self.archetype_popularity_modifiers.items()}
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "BalanceCalculationSettings":
        if not isinstance(d, dict):
            raise ValueError(f"balance settings must be a mapping, got {type(d).__name__}")
        d = dict(d)
        out = cls()
        for key in ("archetype_win_rate_modifiers", "archetype_popularity_modifiers"):
            if key in d:
                mods = getattr(out, key)
                for arch, val in d.pop(key).items():
                    try:
                        mods[resolve_archetype(arch)] = float(val)
                    except (TypeError, ValueError):
                        raise ValueError(f"Invalid value for {key}.{arch}: {val!r}") from None
        _apply_fields(out, d)
        return out


# ═══════════════════════════════════════════════════════════════
# EVENTS / FEEDBACK / RESOURCES
# ═══════════════════════════════════════════════════════════════

@dataclass
class EventSettings:
    """Event generation, trigger thresholds and sentiment blending."""
    schedule_mode: str = "turn_based"       # "turn_based" | "continuous"
    max_simultaneous_events: int = 3
    min_events_per_phase: int = 1
    max_events_per_phase: int = 2
    guarantee_event: bool = True

    # Continuous mode
    min_time_between_events: float = 30.0
    max_time_between_events: float = 90.0
    event_trigger_chance: float = 0.3

    # Category weights; residual mass falls through to Community
    crisis_chance: float = 0.25
    opportunity_chance: float = 0.25
    community_chance: float = 0.25
    technical_chance: float = 0.15
    competitive_chance: float = 0.10

    # Triggers
    low_sentiment_threshold: float = 30.0
    high_sentiment_threshold: float = 75.0
    crisis_boost: float = 0.35
    opportunity_boost: float = 0.35
    major_change_threshold: float = 15.0
    major_change_burst: int = 3
    major_change_window: float = 10.0
    season_interval: int = 5
    balance_concern_high: float = 60.0
    balance_concern_low: float = 40.0
    emergency_balance_threshold: float = 30.0
    outrage_sentiment_threshold: float = 25.0

    # Sentiment response blending
    event_sentiment_blend: float = 0.6
    expiration_sentiment_penalty: float = -5.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "EventSettings":
        out = cls()
        _apply_fields(out, d)
        if out.schedule_mode not in SCHEDULE_MODES:
            raise ValueError(f"Unknown schedule mode '{out.schedule_mode}'")
        return out


@dataclass
class FeedbackSettings:
    """Sequential community-feedback display."""
    delay_between_feedback: float = 1.5
    max_feedback_per_phase: int = 6
    feedback_show_chance: float = 0.8
    initial_sentiment: float = 65.0
    balance_sentiment_blend: float = 0.3
    significant_change: float = 5.0
    max_organic_feedback: int = 3

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "FeedbackSettings":
        out = cls()
        _apply_fields(out, d)
        return out


@dataclass
class ResourceSettings:
    starting_rp: int = 24
    starting_cp: int = 0
    rp_per_week: int = 10
    cp_per_week: int = 5
    rp_multiplier: float = 1.0
    cp_multiplier: float = 1.0
    # default price of one queued balance change card
    balance_change_rp_cost: int = 2
    balance_change_cp_cost: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "ResourceSettings":
        out = cls()
        _apply_fields(out, d)
        return out


def _apply_fields(obj, d: dict):
    section = type(obj).__name__
    if not isinstance(d, dict):
        raise ValueError(f"{section} must be a mapping, got {type(d).__name__}")
    known = {f.name: f for f in fields(obj)}
    for key, val in d.items():
        if key not in known:
            _log.warning(f"Ignoring unknown setting {section}.{key}")
            continue
        current = getattr(obj, key)
        try:
            if isinstance(current, bool):
                val = bool(val)
            elif isinstance(current, int):
                val = int(val)
            elif isinstance(current, float):
                val = float(val)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid value for {section}.{key}: {val!r}") from None
        setattr(obj, key, val)


# ═══════════════════════════════════════════════════════════════
# AGGREGATE CONFIG
# ═══════════════════════════════════════════════════════════════

@dataclass
class SimulationSettings:
    balance: BalanceCalculationSettings = field(default_factory=BalanceCalculationSettings)
    events: EventSettings = field(default_factory=EventSettings)
    feedback: FeedbackSettings = field(default_factory=FeedbackSettings)
    resources: ResourceSettings = field(default_factory=ResourceSettings)
    roster: List[CharacterData] = field(default_factory=default_roster)

    def to_dict(self) -> dict:
        return {
            "balance": self.balance.to_dict(),
            "events": self.events.to_dict(),
            "feedback": self.feedback.to_dict(),
            "resources": self.resources.to_dict(),
            "roster": [
                {
                    "archetype": c.archetype.value,
                    "name": c.name,
                    "description": c.description,
                    "health": c.base_health,
                    "damage": c.base_damage,
                    "speed": c.base_speed,
                    "utility": c.base_utility,
                    "popularity": c.base_popularity,
                }
                for c in self.roster
            ],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SimulationSettings":
        out = cls(
            balance=BalanceCalculationSettings.from_dict(d.get("balance", {})),
            events=EventSettings.from_dict(d.get("events", {})),
            feedback=FeedbackSettings.from_dict(d.get("feedback", {})),
            resources=ResourceSettings.from_dict(d.get("resources", {})),
        )
        if d.get("roster"):
            if not isinstance(d["roster"], list):
                raise ValueError("roster must be a list of characters")
            out.roster = [CharacterData.from_dict(c) for c in d["roster"]]
        return out


_settings_cache: Optional[dict] = None


def _load_default_config() -> dict:
    global _settings_cache
    if _settings_cache is None:
        with open(DEFAULT_SETTINGS_PATH) as f:
            _settings_cache = json.load(f)
    return _settings_cache


def load_settings(path: Optional[Union[str, Path]] = None) -> SimulationSettings:
    """Build settings from a JSON file (bundled defaults when path is None).

    Returns a fresh object each call so callers may mutate it freely.
    """
    if path is None:
        if DEFAULT_SETTINGS_PATH.exists():
            raw = _load_default_config()
        else:
            _log.warning(f"{DEFAULT_SETTINGS_PATH} missing, using built-in defaults")
            raw = {}
    else:
        with open(path) as f:
            raw = json.load(f)
        _log.info(f"Loaded settings from {path}")
    settings = SimulationSettings.from_dict(copy.deepcopy(raw))
    settings.balance.validate()
    return settings
