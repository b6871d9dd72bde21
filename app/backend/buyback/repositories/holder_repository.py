"""
Repository for the holder snapshot.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import select, delete, update

from buyback.core.database import Database
from buyback.models import HolderSnapshot
from buyback.models.base import utcnow


logger = structlog.get_logger(__name__)


class HolderRepository:
    """
    The snapshot is replaced as a whole: readers either see the previous
    ranking or the new one, never a mix.
    """

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="holder_repository")

    async def get_current_snapshot(self) -> List[HolderSnapshot]:
        async with self.database.session() as db:
            result = await db.execute(
                select(HolderSnapshot).order_by(HolderSnapshot.rank)
            )
            return list(result.scalars().all())

    async def replace_snapshot(self, holders: Iterable) -> int:
        """
        Atomically swap the snapshot for `holders`.

        Each item needs `wallet_owner`, `balance` and `rank`. Reward fields
        start out null; they are filled in by `record_reward` only once a
        transfer has actually confirmed.
        """
        rows = [
            HolderSnapshot(
                wallet_address=h.wallet_owner,
                token_balance=Decimal(str(h.balance)),
                rank=h.rank,
                last_reward_amount=None,
                last_reward_at=None,
            )
            for h in holders
        ]

        async with self.database.session() as db:
            await db.execute(delete(HolderSnapshot))
            db.add_all(rows)

        self.logger.info("Holder snapshot replaced", holders=len(rows))
        return len(rows)

    async def record_reward(
        self,
        wallet_address: str,
        amount: Decimal,
        at: Optional[datetime] = None
    ) -> bool:
        async with self.database.session() as db:
            result = await db.execute(
                update(HolderSnapshot)
                .where(HolderSnapshot.wallet_address == wallet_address)
                .values(last_reward_amount=amount, last_reward_at=at or utcnow())
            )
            return result.rowcount > 0

    async def clear_rewards(self) -> int:
        """Null every holder's reward fields. Returns the number of rows touched."""
        async with self.database.session() as db:
            result = await db.execute(
                update(HolderSnapshot).values(
                    last_reward_amount=None,
                    last_reward_at=None
                )
            )
            cleared = result.rowcount

        self.logger.info("Holder rewards cleared", holders=cleared)
        return cleared
