"""
Result types and collaborator interfaces for the buyback pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from buyback.core.config import SolanaConfig
from buyback.models import FundsSourceKind


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / Decimal(SolanaConfig.LAMPORTS_PER_SOL)


def sol_to_lamports(sol) -> int:
    """Round down to whole lamports."""
    return int(Decimal(str(sol)) * SolanaConfig.LAMPORTS_PER_SOL)


# Collaborators

class Ledger(Protocol):
    async def get_balance(self, pubkey: Pubkey) -> int: ...
    async def account_exists(self, pubkey: Pubkey) -> bool: ...
    async def send_instructions(self, instructions: Sequence[Instruction], signer: Keypair) -> str: ...
    async def send_prebuilt(self, serialized: bytes, signers: List[Keypair]) -> str: ...


class ClaimVenue(Protocol):
    async def build_claim_transaction(self, operator: str, mint: str) -> bytes: ...


class SwapVenue(Protocol):
    async def build_swap_transaction(
        self, operator: str, mint: str, amount_sol: float, slippage_percent: float
    ) -> bytes: ...


class ChainDataProvider(Protocol):
    def is_configured(self) -> bool: ...
    async def get_largest_holders(self, mint: str) -> list: ...
    async def resolve_owner(self, token_account: str) -> str: ...


# Funds acquisition

class FundsErrorKind(str, Enum):
    CLAIM_VENUE_UNREACHABLE = "claim_venue_unreachable"
    CLAIM_VENUE_REJECTED = "claim_venue_rejected"
    CLAIM_TRANSACTION_FAILED = "claim_transaction_failed"
    NOTHING_TO_CLAIM = "nothing_to_claim"
    BELOW_THRESHOLD = "below_threshold"
    LEDGER_UNREACHABLE = "ledger_unreachable"
    NO_FUNDS_AVAILABLE = "no_funds_available"


@dataclass
class FundsResult:
    amount_lamports: int
    source: Optional[FundsSourceKind] = None
    signature: Optional[str] = None
    vault_balance: int = 0
    wallet_balance: int = 0
    claim_error: Optional[FundsErrorKind] = None
    claim_error_message: Optional[str] = None
    error_kind: Optional[FundsErrorKind] = None

    @property
    def has_funds(self) -> bool:
        return self.amount_lamports > 0

    @property
    def amount(self) -> Decimal:
        return lamports_to_sol(self.amount_lamports)


# Conversion and buy

class ConversionErrorKind(str, Enum):
    VENUE_UNREACHABLE = "venue_unreachable"
    VENUE_REJECTED = "venue_rejected"
    TRANSACTION_FAILED = "transaction_failed"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    INSUFFICIENT_REMAINING_AMOUNT = "insufficient_remaining_amount"
    LEDGER_UNREACHABLE = "ledger_unreachable"


@dataclass
class ConversionResult:
    success: bool
    output_lamports: int = 0
    signature: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ConversionErrorKind] = None

    @property
    def output_amount(self) -> Decimal:
        return lamports_to_sol(self.output_lamports)


@dataclass
class BuyResult:
    success: bool
    spent_lamports: int = 0
    signature: Optional[str] = None
    attempts: int = 0
    slippage_percent: Optional[float] = None
    error: Optional[str] = None
    error_kind: Optional[ConversionErrorKind] = None

    @property
    def spent_amount(self) -> Decimal:
        return lamports_to_sol(self.spent_lamports)


# Ranking

class RankingErrorKind(str, Enum):
    PROVIDER_UNREACHABLE = "provider_unreachable"
    PROVIDER_RATE_LIMITED = "provider_rate_limited"
    NO_HOLDERS_FOUND = "no_holders_found"


@dataclass
class RankedHolder:
    wallet_owner: str
    balance: Decimal
    rank: int = 0
    token_accounts: List[str] = field(default_factory=list)


@dataclass
class RankingResult:
    holders: List[RankedHolder]
    error_kind: Optional[RankingErrorKind] = None
    error: Optional[str] = None
    unresolved_accounts: int = 0


# Distribution

class RecipientErrorKind(str, Enum):
    SHARE_TOO_SMALL = "share_too_small"
    ACCOUNT_CREATION_FAILED = "account_creation_failed"
    TRANSFER_TRANSACTION_FAILED = "transfer_transaction_failed"
    NETWORK_ERROR = "network_error"


@dataclass
class RecipientResult:
    wallet_owner: str
    rank: int
    share_lamports: int
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[RecipientErrorKind] = None

    @property
    def share(self) -> Decimal:
        return lamports_to_sol(self.share_lamports)

    @property
    def amount_sent(self) -> Decimal:
        return self.share if self.success else Decimal("0")


# Cycle

class CyclePhase(str, Enum):
    IDLE = "idle"
    ACQUIRING_FUNDS = "acquiring_funds"
    CONVERTING = "converting"
    RANKING_HOLDERS = "ranking_holders"
    DISTRIBUTING = "distributing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class CycleOutcome(str, Enum):
    DISTRIBUTED = "distributed"
    PARTIAL_DISTRIBUTION = "partial_distribution"
    NO_RECIPIENTS = "no_recipients"
    NO_DISTRIBUTION_FUNDS = "no_distribution_funds"
    NO_FUNDS = "no_funds"
    CONVERSION_FAILED = "conversion_failed"
    FAILED = "failed"


@dataclass
class CycleReport:
    cycle_id: str
    phase: CyclePhase
    outcome: Optional[CycleOutcome] = None
    trigger: str = "scheduler"
    funds: Optional[FundsResult] = None
    buy: Optional[BuyResult] = None
    conversion: Optional[ConversionResult] = None
    ranking: Optional[RankingResult] = None
    recipients: List[RecipientResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.phase in (CyclePhase.COMPLETED, CyclePhase.SKIPPED)

    @property
    def distributed_lamports(self) -> int:
        return sum(r.share_lamports for r in self.recipients if r.success)

    def to_dict(self) -> Dict[str, Any]:
        successful = [r for r in self.recipients if r.success]
        return {
            "cycle_id": self.cycle_id,
            "success": self.success,
            "phase": self.phase.value,
            "outcome": self.outcome.value if self.outcome else None,
            "trigger": self.trigger,
            "funds": {
                "amount": str(self.funds.amount),
                "source": self.funds.source.value if self.funds.source else None,
                "tx_signature": self.funds.signature,
                "claim_error": self.funds.claim_error.value if self.funds.claim_error else None,
            } if self.funds else None,
            "buy": {
                "success": self.buy.success,
                "spent": str(self.buy.spent_amount),
                "tx_signature": self.buy.signature,
                "attempts": self.buy.attempts,
                "slippage_percent": self.buy.slippage_percent,
                "error": self.buy.error,
            } if self.buy else None,
            "conversion": {
                "success": self.conversion.success,
                "output_amount": str(self.conversion.output_amount),
                "tx_signature": self.conversion.signature,
                "error": self.conversion.error,
            } if self.conversion else None,
            "holders_ranked": len(self.ranking.holders) if self.ranking else 0,
            "ranking_error": (
                self.ranking.error_kind.value
                if self.ranking and self.ranking.error_kind else None
            ),
            "distributions": len(successful),
            "failed_distributions": len(self.recipients) - len(successful),
            "total_distributed": str(lamports_to_sol(self.distributed_lamports)),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
        }
