"""
Buyback cycle model: one row per scheduled or manual run.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, Text, Index, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class CycleStatus(str, Enum):
    """Persisted status of a cycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FundsSourceKind(str, Enum):
    """Where the cycle's native funds came from."""
    CLAIM = "claim"
    WALLET_BALANCE = "wallet_balance"


# Status only ever moves forward
ALLOWED_TRANSITIONS = {
    CycleStatus.PENDING: {CycleStatus.PROCESSING, CycleStatus.SKIPPED},
    CycleStatus.PROCESSING: {CycleStatus.COMPLETED, CycleStatus.FAILED},
    CycleStatus.COMPLETED: set(),
    CycleStatus.FAILED: set(),
    CycleStatus.SKIPPED: set(),
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Cycle(BaseModel, TimestampMixin):
    """A single acquire/convert/rank/distribute run."""

    __tablename__ = "cycles"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Cycle identifier (UUID)"
    )

    status: Mapped[CycleStatus] = mapped_column(
        SQLEnum(CycleStatus, values_callable=_enum_values, name="cycle_status"),
        default=CycleStatus.PENDING,
        comment="Cycle status"
    )

    trigger: Mapped[str] = mapped_column(
        String(20),
        default="scheduler",
        comment="What started the cycle (scheduler, cron, admin, startup)"
    )

    # Funds acquisition
    funds_source: Mapped[Optional[FundsSourceKind]] = mapped_column(
        SQLEnum(FundsSourceKind, values_callable=_enum_values, name="funds_source"),
        nullable=True,
        comment="claim or wallet_balance"
    )

    claimed_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 9),
        nullable=True,
        comment="Native amount acquired for the cycle"
    )

    claim_signature: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Claim transaction signature"
    )

    # Buy stage
    bought_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 9),
        nullable=True,
        comment="Native amount spent buying the target token"
    )

    buy_signature: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Buy transaction signature"
    )

    # Conversion
    converted_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 9),
        nullable=True,
        comment="Wrapped-native amount available for distribution"
    )

    conversion_signature: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Wrap transaction signature"
    )

    conversion_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Distribution
    distributed_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 9),
        nullable=True,
        comment="Sum of successfully transferred shares"
    )

    recipients_count: Mapped[int] = mapped_column(default=0)
    failed_transfers: Mapped[int] = mapped_column(default=0)

    no_recipients: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Completed without any holder to pay"
    )

    # Outcome
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    __table_args__ = (
        Index("idx_cycles_status", "status"),
        Index("idx_cycles_created_at", "created_at"),
    )

    def can_transition_to(self, new_status: CycleStatus) -> bool:
        current = self.status or CycleStatus.PENDING
        return new_status in ALLOWED_TRANSITIONS[current]

    def __repr__(self) -> str:
        return f"<Cycle(id={self.id}, status={self.status})>"
