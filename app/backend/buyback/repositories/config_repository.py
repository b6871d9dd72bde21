"""
Repository for the system_config key/value table.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError

from buyback.core.database import Database
from buyback.models import SystemConfig


logger = structlog.get_logger(__name__)

CYCLE_ANCHOR_KEY = "countdown_start_time"


class ConfigRepository:
    """Reads and writes persisted process-wide values."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="config_repository")

    async def get(self, key: str) -> Optional[str]:
        async with self.database.session() as db:
            row = await db.get(SystemConfig, key)
            return row.value if row else None

    async def set(self, key: str, value: str) -> None:
        async with self.database.session() as db:
            row = await db.get(SystemConfig, key)
            if row is None:
                db.add(SystemConfig(key=key, value=value))
            else:
                row.value = value
        self.logger.debug("Config value stored", key=key)

    async def get_cycle_anchor(self) -> Optional[datetime]:
        """Reference time every cycle tick and the countdown are computed from."""
        raw = await self.get(CYCLE_ANCHOR_KEY)
        if raw is None:
            return None
        anchor = datetime.fromisoformat(raw)
        if anchor.tzinfo is None:
            anchor = anchor.replace(tzinfo=timezone.utc)
        return anchor

    async def ensure_cycle_anchor(self, now: Optional[datetime] = None) -> datetime:
        """Return the stored anchor, writing `now` first if none exists yet.

        Two callers racing on an empty table both try to insert; the loser
        hits the primary key and re-reads the winner's anchor.
        """
        stored = await self.get_cycle_anchor()
        if stored is not None:
            return stored

        anchor = now or datetime.now(timezone.utc)
        try:
            async with self.database.session() as db:
                db.add(SystemConfig(key=CYCLE_ANCHOR_KEY, value=anchor.isoformat()))
        except IntegrityError:
            stored = await self.get_cycle_anchor()
            if stored is None:
                raise
            self.logger.debug("Cycle anchor written concurrently", anchor=stored.isoformat())
            return stored

        self.logger.info("Cycle anchor initialised", anchor=anchor.isoformat())
        return anchor
