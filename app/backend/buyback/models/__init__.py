"""
Database models for the buyback engine.

Cycles, the current holder snapshot, per-recipient distribution records,
the public activity feed and a small key/value configuration table.
"""

from .base import Base, BaseModel, TimestampMixin
from .cycle import Cycle, CycleStatus, FundsSourceKind
from .holder import HolderSnapshot
from .distribution import DistributionRecord, TransferOutcome
from .activity import ActivityEntry, ActivityKind, ActivityStatus
from .system_config import SystemConfig

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Cycle",
    "CycleStatus",
    "FundsSourceKind",
    "HolderSnapshot",
    "DistributionRecord",
    "TransferOutcome",
    "ActivityEntry",
    "ActivityKind",
    "ActivityStatus",
    "SystemConfig",
]
