"""
The buyback pipeline: funds acquisition, conversion, holder ranking,
distribution and the orchestrator that sequences them.
"""

from .distributor import Distributor, compute_shares
from .funds_source import FundsSource, derive_creator_vault
from .holder_ranker import HolderRanker, assign_dense_ranks
from .orchestrator import CycleOrchestrator
from .value_converter import ValueConverter

__all__ = [
    "Distributor",
    "compute_shares",
    "FundsSource",
    "derive_creator_vault",
    "HolderRanker",
    "assign_dense_ranks",
    "CycleOrchestrator",
    "ValueConverter",
]
