"""
Repository for per-recipient distribution records.
"""

from decimal import Decimal
from typing import Iterable, List

import structlog
from sqlalchemy import select, func

from buyback.core.database import Database
from buyback.models import DistributionRecord, TransferOutcome


logger = structlog.get_logger(__name__)


class DistributionRepository:
    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="distribution_repository")

    async def record_many(self, cycle_id: str, results: Iterable) -> int:
        """Store one row per recipient result. Each item is a RecipientResult."""
        rows = [
            DistributionRecord(
                cycle_id=cycle_id,
                wallet_address=r.wallet_owner,
                amount=r.share,
                holder_rank=r.rank,
                outcome=TransferOutcome.SUCCESS if r.success else TransferOutcome.FAILURE,
                tx_signature=r.signature,
                error=r.error,
            )
            for r in results
        ]
        async with self.database.session() as db:
            db.add_all(rows)
        return len(rows)

    async def for_cycle(self, cycle_id: str) -> List[DistributionRecord]:
        async with self.database.session() as db:
            result = await db.execute(
                select(DistributionRecord)
                .where(DistributionRecord.cycle_id == cycle_id)
                .order_by(DistributionRecord.holder_rank)
            )
            return list(result.scalars().all())

    async def holders_rewarded(self) -> int:
        """Distinct wallets that have received at least one successful transfer."""
        async with self.database.session() as db:
            result = await db.execute(
                select(func.count(func.distinct(DistributionRecord.wallet_address)))
                .where(DistributionRecord.outcome == TransferOutcome.SUCCESS)
            )
            return result.scalar_one()

    async def total_sent(self) -> Decimal:
        async with self.database.session() as db:
            result = await db.execute(
                select(func.coalesce(func.sum(DistributionRecord.amount), 0))
                .where(DistributionRecord.outcome == TransferOutcome.SUCCESS)
            )
            return Decimal(str(result.scalar_one()))
