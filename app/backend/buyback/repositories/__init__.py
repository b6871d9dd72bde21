"""
Repositories for the buyback engine's persisted state.
"""

from dataclasses import dataclass

from buyback.core.database import Database

from .activity_repository import ActivityRepository
from .config_repository import ConfigRepository
from .cycle_repository import CycleRepository
from .distribution_repository import DistributionRepository
from .holder_repository import HolderRepository


@dataclass
class Repositories:
    """Bundle of repositories sharing one database."""

    config: ConfigRepository
    cycles: CycleRepository
    holders: HolderRepository
    distributions: DistributionRepository
    activity: ActivityRepository

    @classmethod
    def create(cls, database: Database) -> "Repositories":
        return cls(
            config=ConfigRepository(database),
            cycles=CycleRepository(database),
            holders=HolderRepository(database),
            distributions=DistributionRepository(database),
            activity=ActivityRepository(database),
        )


__all__ = [
    "Repositories",
    "ActivityRepository",
    "ConfigRepository",
    "CycleRepository",
    "DistributionRepository",
    "HolderRepository",
]
