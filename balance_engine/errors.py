"""
Typed failures raised by the balance engine.

Data and configuration errors surface to the caller as exceptions below.
ConfigurationInvariantViolated is a warning category: a suspicious setting
is reported through ``warnings.warn`` and the simulation keeps running.
"""


class BalanceEngineError(Exception):
    """Base class for all balance engine failures."""


class InvalidCharacter(BalanceEngineError, KeyError):
    """Unknown character / archetype key."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Unknown character: {key!r}")

    def __str__(self):
        return self.args[0]


class InvalidStat(BalanceEngineError, KeyError):
    """Unknown stat key."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Unknown stat: {key!r}")

    def __str__(self):
        return self.args[0]


class InsufficientResources(BalanceEngineError):
    """The player cannot afford the requested RP/CP cost."""

    def __init__(self, rp_cost: int, cp_cost: int, rp_available: int, cp_available: int):
        self.rp_cost = rp_cost
        self.cp_cost = cp_cost
        self.rp_available = rp_available
        self.cp_available = cp_available
        super().__init__(
            f"Need {rp_cost} RP / {cp_cost} CP, have {rp_available} RP / {cp_available} CP"
        )


class EventNotFound(BalanceEngineError):
    """No displayed event (or response option) with that id."""


class EventAlreadyResolved(BalanceEngineError):
    """The event was already resolved or has expired."""


class ChangeNotFound(BalanceEngineError):
    """No planned balance change with that id."""


class ChangeNotUndoable(BalanceEngineError):
    """The balance change is not implemented (still queued, cancelled or already undone)."""


class InvalidPhase(BalanceEngineError):
    """The operation is not allowed in the current game phase."""


class SimulationBusy(BalanceEngineError):
    """A recalculation or resolution is already in flight."""


class ConfigurationInvariantViolated(UserWarning):
    """Settings break an invariant the formulas assume (e.g. weights != 1)."""
