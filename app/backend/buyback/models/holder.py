"""
Current holder snapshot: the top-N owners as of the latest ranking.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class HolderSnapshot(BaseModel, TimestampMixin):
    """One ranked holder. The whole table is replaced on every ranking."""

    __tablename__ = "holders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(
        String(44),
        unique=True,
        comment="Owner wallet (never the token sub-account)"
    )

    token_balance: Mapped[Decimal] = mapped_column(
        Numeric(30, 9),
        comment="Token balance in UI units"
    )

    rank: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        comment="Dense rank starting at 1"
    )

    last_reward_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 9),
        nullable=True,
        comment="Last successfully paid share"
    )

    last_reward_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<HolderSnapshot(rank={self.rank}, wallet={self.wallet_address})>"
