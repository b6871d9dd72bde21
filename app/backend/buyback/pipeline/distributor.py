"""
Proportional WSOL distribution to ranked holders.
"""

import asyncio
from fractions import Fraction
from typing import Awaitable, Callable, List, Optional, Sequence

import structlog
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from buyback.core.config import Settings, SolanaConfig
from buyback.core.exceptions import LedgerUnreachableError, TransactionFailedError
from buyback.services.retry import SleepFn

from .types import Ledger, RankedHolder, RecipientErrorKind, RecipientResult


logger = structlog.get_logger(__name__)

ResultCallback = Callable[[RecipientResult], Awaitable[None]]

# Instruction index 0 is the account creation when one is prepended
CREATION_FAILURE_MARKER = "InstructionError((0,"


def compute_shares(total_lamports: int, holders: Sequence[RankedHolder]) -> List[int]:
    """
    total * balance / sum(balance) per holder, rounded down to whole lamports.

    Computed once, up front, with exact rational arithmetic so the shares
    never add up to more than `total_lamports`.
    """
    balances = [Fraction(h.balance) for h in holders]
    combined = sum(balances, Fraction(0))
    if combined <= 0 or total_lamports <= 0:
        return [0] * len(holders)
    return [int(total_lamports * b / combined) for b in balances]


class Distributor:
    def __init__(
        self,
        ledger: Ledger,
        config: Settings,
        sleep: SleepFn = asyncio.sleep
    ):
        self.ledger = ledger
        self.config = config
        self.sleep = sleep
        self.logger = logger.bind(service="distributor")

    async def distribute(
        self,
        signer: Keypair,
        total_lamports: int,
        holders: Sequence[RankedHolder],
        on_result: Optional[ResultCallback] = None
    ) -> List[RecipientResult]:
        """
        One result per holder, in input order. No failure stops the batch.

        `on_result` is awaited as soon as each transfer resolves, before
        the next one starts.
        """
        shares = compute_shares(total_lamports, holders)
        source = get_associated_token_address(signer.pubkey(), WRAPPED_SOL_MINT)
        results: List[RecipientResult] = []

        for index, (holder, share) in enumerate(zip(holders, shares)):
            if share <= 0:
                result = RecipientResult(
                    wallet_owner=holder.wallet_owner,
                    rank=holder.rank,
                    share_lamports=0,
                    success=False,
                    error="Share too small",
                    error_kind=RecipientErrorKind.SHARE_TOO_SMALL
                )
            else:
                if index > 0 and self.config.distribution_transfer_delay > 0:
                    await self.sleep(self.config.distribution_transfer_delay)
                result = await self._pay(signer, source, holder, share)

            results.append(result)
            if on_result is not None:
                await on_result(result)

        sent = sum(r.share_lamports for r in results if r.success)
        self.logger.info(
            "Distribution finished",
            recipients=len(holders),
            successful=sum(1 for r in results if r.success),
            total=total_lamports,
            sent=sent
        )
        return results

    async def _pay(
        self,
        signer: Keypair,
        source: Pubkey,
        holder: RankedHolder,
        share: int
    ) -> RecipientResult:
        result = RecipientResult(
            wallet_owner=holder.wallet_owner,
            rank=holder.rank,
            share_lamports=share,
            success=False
        )

        try:
            recipient = Pubkey.from_string(holder.wallet_owner)
        except ValueError:
            result.error = f"Invalid wallet address: {holder.wallet_owner}"
            result.error_kind = RecipientErrorKind.TRANSFER_TRANSACTION_FAILED
            self.logger.warning("Skipping recipient", wallet=holder.wallet_owner, error=result.error)
            return result

        destination = get_associated_token_address(recipient, WRAPPED_SOL_MINT)
        needs_account = False

        try:
            needs_account = not await self.ledger.account_exists(destination)

            instructions = []
            if needs_account:
                instructions.append(
                    create_associated_token_account(signer.pubkey(), recipient, WRAPPED_SOL_MINT)
                )
            instructions.append(transfer_checked(TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                mint=WRAPPED_SOL_MINT,
                dest=destination,
                owner=signer.pubkey(),
                amount=share,
                decimals=SolanaConfig.WRAPPED_SOL_DECIMALS,
            )))

            result.signature = await self.ledger.send_instructions(instructions, signer)
            result.success = True
        except LedgerUnreachableError as e:
            result.error = e.message
            result.error_kind = RecipientErrorKind.NETWORK_ERROR
        except TransactionFailedError as e:
            result.error = e.message
            if needs_account and CREATION_FAILURE_MARKER in e.message.replace(" ", ""):
                result.error_kind = RecipientErrorKind.ACCOUNT_CREATION_FAILED
            else:
                result.error_kind = RecipientErrorKind.TRANSFER_TRANSACTION_FAILED

        if result.success:
            self.logger.info(
                "Share sent",
                wallet=holder.wallet_owner,
                rank=holder.rank,
                amount=share,
                signature=result.signature
            )
        else:
            self.logger.warning(
                "Share transfer failed",
                wallet=holder.wallet_owner,
                rank=holder.rank,
                amount=share,
                reason=result.error_kind.value,
                error=result.error
            )
        return result
