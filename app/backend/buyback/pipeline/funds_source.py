"""
Funds acquisition: claim accumulated creator fees, or fall back to what
the operator wallet already holds.
"""

from typing import Optional

import structlog
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from buyback.core.config import Settings, SolanaConfig
from buyback.core.exceptions import (
    LedgerUnreachableError,
    TransactionFailedError,
    VenueRejectedError,
    VenueUnreachableError,
)
from buyback.models import FundsSourceKind

from .types import ClaimVenue, FundsErrorKind, FundsResult, Ledger, sol_to_lamports


logger = structlog.get_logger(__name__)


def derive_creator_vault(creator: Pubkey, program_id: Pubkey) -> Pubkey:
    """Per-creator fee vault shared by every token the creator launched."""
    vault, _bump = Pubkey.find_program_address(
        [SolanaConfig.CREATOR_VAULT_SEED, bytes(creator)],
        program_id
    )
    return vault


class FundsSource:
    """
    The claim is attempted whenever the vault holds anything; the
    configured threshold only blocks it when `claim_threshold_enforced`
    is set. Any claim problem falls back to the wallet balance minus a
    fee reserve.
    """

    def __init__(self, ledger: Ledger, venue: ClaimVenue, config: Settings):
        self.ledger = ledger
        self.venue = venue
        self.config = config
        self.program_id = Pubkey.from_string(config.pump_program_id)
        self.fee_reserve = sol_to_lamports(config.fee_reserve_sol)
        self.claim_threshold = sol_to_lamports(config.claim_threshold_sol)
        self.logger = logger.bind(service="funds_source")

    async def acquire_funds(self, signer: Keypair, vault_owner: Optional[Pubkey] = None) -> FundsResult:
        operator = signer.pubkey()
        vault = derive_creator_vault(vault_owner or operator, self.program_id)

        try:
            vault_balance = await self.ledger.get_balance(vault)
            wallet_balance = await self.ledger.get_balance(operator)
        except LedgerUnreachableError as e:
            self.logger.error("Could not read balances", error=e.message)
            return FundsResult(
                amount_lamports=0,
                error_kind=FundsErrorKind.LEDGER_UNREACHABLE,
                claim_error_message=e.message
            )

        self.logger.info(
            "Balances read",
            vault=str(vault),
            vault_balance=vault_balance,
            wallet_balance=wallet_balance
        )

        result = FundsResult(
            amount_lamports=0,
            vault_balance=vault_balance,
            wallet_balance=wallet_balance
        )

        if vault_balance <= 0:
            result.claim_error = FundsErrorKind.NOTHING_TO_CLAIM
        elif self.config.claim_threshold_enforced and vault_balance < self.claim_threshold:
            result.claim_error = FundsErrorKind.BELOW_THRESHOLD
        else:
            if vault_balance < self.claim_threshold:
                self.logger.info(
                    "Vault below advisory claim threshold, claiming anyway",
                    vault_balance=vault_balance,
                    threshold=self.claim_threshold
                )
            claimed = await self._claim(signer, vault, vault_balance, result)
            if claimed > 0:
                result.amount_lamports = claimed
                result.source = FundsSourceKind.CLAIM
                self.logger.info("Claim succeeded", amount=claimed, signature=result.signature)
                return result

        return await self._fall_back_to_wallet(operator, result)

    async def _claim(self, signer: Keypair, vault: Pubkey, vault_balance: int, result: FundsResult) -> int:
        """Run the claim and return the lamports it moved (0 on any failure)."""
        try:
            serialized = await self.venue.build_claim_transaction(
                str(signer.pubkey()),
                self.config.token_mint
            )
            result.signature = await self.ledger.send_prebuilt(serialized, [signer])
        except VenueUnreachableError as e:
            return self._claim_failed(result, FundsErrorKind.CLAIM_VENUE_UNREACHABLE, e.message)
        except VenueRejectedError as e:
            return self._claim_failed(result, FundsErrorKind.CLAIM_VENUE_REJECTED, e.message)
        except (TransactionFailedError, LedgerUnreachableError) as e:
            return self._claim_failed(result, FundsErrorKind.CLAIM_TRANSACTION_FAILED, e.message)

        try:
            remaining = await self.ledger.get_balance(vault)
        except LedgerUnreachableError:
            # Landed but unmeasurable: the whole pre-claim balance moved
            return vault_balance

        claimed = vault_balance - remaining
        if claimed <= 0:
            result.claim_error = FundsErrorKind.NOTHING_TO_CLAIM
            self.logger.warning("Claim confirmed but vault balance did not drop", signature=result.signature)
        return max(claimed, 0)

    def _claim_failed(self, result: FundsResult, kind: FundsErrorKind, message: str) -> int:
        result.claim_error = kind
        result.claim_error_message = message
        self.logger.warning("Claim failed, falling back to wallet balance", reason=kind.value, error=message)
        return 0

    async def _fall_back_to_wallet(self, operator: Pubkey, result: FundsResult) -> FundsResult:
        wallet_balance = result.wallet_balance
        if result.signature:
            # A claim landed, so the balance read earlier is stale
            try:
                wallet_balance = await self.ledger.get_balance(operator)
                result.wallet_balance = wallet_balance
            except LedgerUnreachableError as e:
                self.logger.warning("Could not refresh wallet balance", error=e.message)

        available = wallet_balance - self.fee_reserve
        if available <= 0:
            result.error_kind = FundsErrorKind.NO_FUNDS_AVAILABLE
            self.logger.info(
                "No funds available",
                vault_balance=result.vault_balance,
                wallet_balance=wallet_balance
            )
            return result

        result.amount_lamports = available
        result.source = FundsSourceKind.WALLET_BALANCE
        self.logger.info("Using wallet balance", amount=available, reserve=self.fee_reserve)
        return result
