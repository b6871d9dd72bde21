"""
Response schemas for the dashboard and trigger routes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from buyback.models import ActivityKind, ActivityStatus, CycleStatus, FundsSourceKind


class HolderResponse(BaseModel):
    """One row of the current holder snapshot."""
    model_config = ConfigDict(from_attributes=True)

    rank: int
    wallet_address: str
    token_balance: Decimal
    last_reward_amount: Optional[Decimal] = None
    last_reward_at: Optional[datetime] = None


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: ActivityKind
    status: ActivityStatus
    amount: Decimal
    token_symbol: str
    wallet_address: Optional[str] = None
    tx_signature: Optional[str] = None
    cycle_id: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime


class CycleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: CycleStatus
    trigger: str
    funds_source: Optional[FundsSourceKind] = None
    claimed_amount: Optional[Decimal] = None
    bought_amount: Optional[Decimal] = None
    converted_amount: Optional[Decimal] = None
    distributed_amount: Optional[Decimal] = None
    recipients_count: int = 0
    failed_transfers: int = 0
    no_recipients: bool = False
    claim_signature: Optional[str] = None
    buy_signature: Optional[str] = None
    conversion_signature: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StatsResponse(BaseModel):
    total_bought_back: Decimal = Field(description="Native amount acquired by completed cycles")
    total_distributed: Decimal = Field(description="Sum of successfully sent shares")
    holders_rewarded: int = Field(description="Distinct wallets paid at least once")
    completed_cycles: int = 0


class CountdownResponse(BaseModel):
    next_cycle_at: datetime
    seconds_remaining: float
    cycle_duration: int
    cycle_in_progress: bool = False
