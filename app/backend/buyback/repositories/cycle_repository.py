"""
Repository for cycle records.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, func

from buyback.core.database import Database
from buyback.core.exceptions import DatabaseError
from buyback.models import Cycle, CycleStatus
from buyback.models.base import utcnow


logger = structlog.get_logger(__name__)


class CycleRepository:
    """Creates cycles and applies forward-only status updates."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="cycle_repository")

    async def create(self, trigger: str = "scheduler") -> Cycle:
        async with self.database.session() as db:
            cycle = Cycle(
                status=CycleStatus.PENDING,
                trigger=trigger,
                started_at=utcnow(),
            )
            db.add(cycle)
            await db.flush()
            self.logger.info("Cycle recorded", cycle_id=cycle.id, trigger=trigger)
            return cycle

    async def update(
        self,
        cycle_id: str,
        status: Optional[CycleStatus] = None,
        **fields: Any
    ) -> Cycle:
        """Apply field updates and, optionally, a status transition.

        Raises DatabaseError for an unknown cycle or a backwards transition.
        """
        async with self.database.session() as db:
            cycle = await db.get(Cycle, cycle_id)
            if cycle is None:
                raise DatabaseError("Cycle not found", {"cycle_id": cycle_id})

            if status is not None and status != cycle.status:
                if not cycle.can_transition_to(status):
                    raise DatabaseError(
                        f"Illegal cycle transition {cycle.status.value} -> {status.value}",
                        {"cycle_id": cycle_id}
                    )
                cycle.status = status
                if status in (CycleStatus.COMPLETED, CycleStatus.FAILED, CycleStatus.SKIPPED):
                    cycle.completed_at = utcnow()

            for name, value in fields.items():
                if not hasattr(Cycle, name):
                    raise DatabaseError(f"Unknown cycle field: {name}")
                setattr(cycle, name, value)

            return cycle

    async def get(self, cycle_id: str) -> Optional[Cycle]:
        async with self.database.session() as db:
            return await db.get(Cycle, cycle_id)

    async def recent(self, limit: int = 20) -> List[Cycle]:
        async with self.database.session() as db:
            result = await db.execute(
                select(Cycle).order_by(Cycle.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def totals(self) -> Dict[str, Any]:
        """Aggregate amounts over completed cycles."""
        async with self.database.session() as db:
            result = await db.execute(
                select(
                    func.count(Cycle.id),
                    func.coalesce(func.sum(Cycle.claimed_amount), 0),
                    func.coalesce(func.sum(Cycle.bought_amount), 0),
                    func.coalesce(func.sum(Cycle.distributed_amount), 0),
                ).where(Cycle.status == CycleStatus.COMPLETED)
            )
            count, claimed, bought, distributed = result.one()
            return {
                "completed_cycles": count,
                "total_acquired": claimed,
                "total_bought_back": bought,
                "total_distributed": distributed,
            }
