"""
Per-recipient transfer records.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Integer, Numeric, Text, ForeignKey, UniqueConstraint, Index,
    Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin
from .cycle import _enum_values


class TransferOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class DistributionRecord(BaseModel, TimestampMixin):
    """Result of paying one holder in one cycle."""

    __tablename__ = "distributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    cycle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cycles.id", ondelete="CASCADE")
    )

    wallet_address: Mapped[str] = mapped_column(String(44))

    amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 9),
        comment="Share computed for this holder"
    )

    holder_rank: Mapped[int] = mapped_column(Integer)

    outcome: Mapped[TransferOutcome] = mapped_column(
        SQLEnum(TransferOutcome, values_callable=_enum_values, name="transfer_outcome")
    )

    tx_signature: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("cycle_id", "wallet_address", name="uq_distribution_cycle_wallet"),
        Index("idx_distributions_cycle", "cycle_id"),
    )
