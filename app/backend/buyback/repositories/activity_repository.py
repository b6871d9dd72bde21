"""
Repository for the append-only activity feed.
"""

from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import select

from buyback.core.database import Database
from buyback.models import ActivityEntry, ActivityKind, ActivityStatus


logger = structlog.get_logger(__name__)


class ActivityRepository:
    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="activity_repository")

    async def append(
        self,
        kind: ActivityKind,
        status: ActivityStatus,
        amount: Decimal = Decimal("0"),
        token_symbol: str = "SOL",
        wallet_address: Optional[str] = None,
        tx_signature: Optional[str] = None,
        cycle_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            cycle_id=cycle_id,
            kind=kind,
            status=status,
            amount=amount,
            token_symbol=token_symbol,
            wallet_address=wallet_address,
            tx_signature=tx_signature,
            message=message,
        )
        async with self.database.session() as db:
            db.add(entry)
        return entry

    async def recent(self, limit: int = 50) -> List[ActivityEntry]:
        async with self.database.session() as db:
            result = await db.execute(
                select(ActivityEntry)
                .order_by(ActivityEntry.created_at.desc(), ActivityEntry.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
