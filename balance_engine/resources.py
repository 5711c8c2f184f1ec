"""
Research Points (RP) and Community Points (CP).

RP pays for balance work, CP for community responses.  Both regenerate
once per week.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from balance_engine.errors import InsufficientResources
from balance_engine.settings import ResourceSettings

_log = logging.getLogger("metabalance.resources")


@dataclass
class ResourceManager:
    settings: ResourceSettings = field(default_factory=ResourceSettings)
    research_points: int = field(init=False)
    community_points: int = field(init=False)

    def __post_init__(self):
        self.research_points = self.settings.starting_rp
        self.community_points = self.settings.starting_cp

    def can_spend(self, rp: int, cp: int) -> bool:
        return self.research_points >= rp and self.community_points >= cp

    def spend(self, rp: int, cp: int):
        if not self.can_spend(rp, cp):
            raise InsufficientResources(rp, cp, self.research_points, self.community_points)
        self.research_points -= rp
        self.community_points -= cp
        _log.debug(f"Spent {rp} RP / {cp} CP -> {self.research_points} RP / {self.community_points} CP")

    def add(self, rp: int = 0, cp: int = 0):
        self.research_points = max(0, self.research_points + rp)
        self.community_points = max(0, self.community_points + cp)

    def set(self, rp: int, cp: int):
        self.research_points = max(0, rp)
        self.community_points = max(0, cp)

    def set_multipliers(self, rp_multiplier: float = 1.0, cp_multiplier: float = 1.0):
        self.settings.rp_multiplier = rp_multiplier
        self.settings.cp_multiplier = cp_multiplier

    def generate_weekly(self):
        rp = int(round(self.settings.rp_per_week * self.settings.rp_multiplier))
        cp = int(round(self.settings.cp_per_week * self.settings.cp_multiplier))
        self.add(rp, cp)
        _log.info(f"Weekly resources: +{rp} RP, +{cp} CP")
        return rp, cp

    def reset(self):
        self.__post_init__()

    def to_dict(self) -> dict:
        return {"rp": self.research_points, "cp": self.community_points}
