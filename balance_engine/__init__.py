"""
Meta Balance Simulation Engine
"""

from .characters import (
    Archetype,
    Stat,
    BASE_STATS,
    BalanceState,
    CharacterData,
    StatModifier,
    StatStore,
    default_roster,
)
from .errors import (
    BalanceEngineError,
    InvalidCharacter,
    InvalidStat,
    InsufficientResources,
    EventNotFound,
    EventAlreadyResolved,
    ChangeNotFound,
    ChangeNotUndoable,
    InvalidPhase,
    SimulationBusy,
    ConfigurationInvariantViolated,
)
from .settings import (
    BalanceCalculationSettings,
    EventSettings,
    FeedbackSettings,
    ResourceSettings,
    SimulationSettings,
    load_settings,
)
from .power import PowerCalculator, ARCHETYPE_FORMULAS
from .matchups import MatchupMatrix, BASE_MATCHUPS
from .popularity import PopularityInfluence
from .meta import MetaCalculator, MetaHealth
from .win_rates import WinRateAggregator, RecalculationReport
from .resources import ResourceManager
from .sentiment import CommunitySentiment
from .feedback import BalanceChange, FeedbackItem, CommunityFeedbackManager, FeedbackQueue
from .implementation import (
    BalanceChangeCard,
    ChangeStatus,
    ImplementationQueue,
    ImplementationReport,
    PlannedChange,
)
from .events import (
    EventCategory,
    EventSeverity,
    EventStatus,
    StatEffect,
    ResponseOption,
    EventDefinition,
    ActiveEvent,
    EventResolution,
)
from .event_manager import EventManager, EventTick
from .simulation import MetaSimulation, GamePhase, Notice, TickResult

__all__ = [
    "Archetype",
    "Stat",
    "BASE_STATS",
    "BalanceState",
    "CharacterData",
    "StatModifier",
    "StatStore",
    "default_roster",
    "BalanceEngineError",
    "InvalidCharacter",
    "InvalidStat",
    "InsufficientResources",
    "EventNotFound",
    "EventAlreadyResolved",
    "ChangeNotFound",
    "ChangeNotUndoable",
    "InvalidPhase",
    "SimulationBusy",
    "ConfigurationInvariantViolated",
    "BalanceCalculationSettings",
    "EventSettings",
    "FeedbackSettings",
    "ResourceSettings",
    "SimulationSettings",
    "load_settings",
    "PowerCalculator",
    "ARCHETYPE_FORMULAS",
    "MatchupMatrix",
    "BASE_MATCHUPS",
    "PopularityInfluence",
    "MetaCalculator",
    "MetaHealth",
    "WinRateAggregator",
    "RecalculationReport",
    "ResourceManager",
    "CommunitySentiment",
    "BalanceChange",
    "FeedbackItem",
    "CommunityFeedbackManager",
    "FeedbackQueue",
    "BalanceChangeCard",
    "ChangeStatus",
    "ImplementationQueue",
    "ImplementationReport",
    "PlannedChange",
    "EventCategory",
    "EventSeverity",
    "EventStatus",
    "StatEffect",
    "ResponseOption",
    "EventDefinition",
    "ActiveEvent",
    "EventResolution",
    "EventManager",
    "EventTick",
    "MetaSimulation",
    "GamePhase",
    "Notice",
    "TickResult",
]
