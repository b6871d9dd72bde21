"""
Append-only activity feed shown on the dashboard.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Numeric, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin
from .cycle import _enum_values


class ActivityKind(str, Enum):
    FUND_CLAIM = "fund_claim"
    BUYBACK = "buyback"
    CONVERSION = "conversion"
    DISTRIBUTION = "distribution"


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ActivityEntry(BaseModel, TimestampMixin):
    """One user-visible event. Rows are never updated."""

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    cycle_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    kind: Mapped[ActivityKind] = mapped_column(
        SQLEnum(ActivityKind, values_callable=_enum_values, name="activity_kind")
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), default=Decimal("0"))
    token_symbol: Mapped[str] = mapped_column(String(16))

    wallet_address: Mapped[Optional[str]] = mapped_column(String(44), nullable=True)
    tx_signature: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    status: Mapped[ActivityStatus] = mapped_column(
        SQLEnum(ActivityStatus, values_callable=_enum_values, name="activity_status")
    )

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_activity_created_at", "created_at"),
    )
