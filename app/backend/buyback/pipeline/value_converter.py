"""
Turning acquired native currency into distributable value: wrap SOL into
WSOL and, optionally, buy back the target token first.
"""

import asyncio

import structlog
from solders.keypair import Keypair
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import (
    SyncNativeParams,
    create_associated_token_account,
    get_associated_token_address,
    sync_native,
)

from buyback.core.config import Settings
from buyback.core.exceptions import (
    LedgerUnreachableError,
    SlippageExceededError,
    TransactionFailedError,
    VenueRejectedError,
    VenueUnreachableError,
)
from buyback.services.retry import RetryPolicy, SleepFn

from .types import (
    BuyResult,
    ConversionErrorKind,
    ConversionResult,
    Ledger,
    SwapVenue,
    lamports_to_sol,
)


logger = structlog.get_logger(__name__)


def _error_kind(error: Exception) -> ConversionErrorKind:
    if isinstance(error, SlippageExceededError):
        return ConversionErrorKind.SLIPPAGE_EXCEEDED
    if isinstance(error, VenueUnreachableError):
        return ConversionErrorKind.VENUE_UNREACHABLE
    if isinstance(error, VenueRejectedError):
        return ConversionErrorKind.VENUE_REJECTED
    if isinstance(error, LedgerUnreachableError):
        return ConversionErrorKind.LEDGER_UNREACHABLE
    return ConversionErrorKind.TRANSACTION_FAILED


class ValueConverter:
    def __init__(
        self,
        ledger: Ledger,
        swap_venue: SwapVenue,
        config: Settings,
        sleep: SleepFn = asyncio.sleep
    ):
        self.ledger = ledger
        self.swap_venue = swap_venue
        self.config = config
        self.slippage_policy = RetryPolicy(
            max_attempts=config.slippage_max_attempts,
            base_delay=config.slippage_retry_base_delay,
            retry_on=(SlippageExceededError,),
            sleep=sleep,
        )
        self.logger = logger.bind(service="value_converter")

    def slippage_for_attempt(self, attempt_number: int) -> float:
        return self.config.slippage_initial_percent + (
            self.config.slippage_step_percent * (attempt_number - 1)
        )

    async def convert(self, signer: Keypair, lamports: int) -> ConversionResult:
        """
        Wrap `lamports` into the signer's WSOL account in one transaction:
        create the account if missing, move the lamports in, sync.
        """
        if lamports <= 0:
            return ConversionResult(
                success=False,
                error="Nothing to convert",
                error_kind=ConversionErrorKind.INSUFFICIENT_REMAINING_AMOUNT
            )

        owner = signer.pubkey()
        wsol_account = get_associated_token_address(owner, WRAPPED_SOL_MINT)

        try:
            instructions = []
            if not await self.ledger.account_exists(wsol_account):
                instructions.append(
                    create_associated_token_account(owner, owner, WRAPPED_SOL_MINT)
                )
            instructions.append(
                transfer(TransferParams(
                    from_pubkey=owner,
                    to_pubkey=wsol_account,
                    lamports=lamports
                ))
            )
            instructions.append(
                sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=wsol_account))
            )
            signature = await self.ledger.send_instructions(instructions, signer)
        except (TransactionFailedError, LedgerUnreachableError) as e:
            self.logger.error("Wrap failed", amount=lamports, error=e.message)
            return ConversionResult(success=False, error=e.message, error_kind=_error_kind(e))

        self.logger.info(
            "Wrapped SOL into WSOL",
            amount=str(lamports_to_sol(lamports)),
            signature=signature
        )
        return ConversionResult(success=True, output_lamports=lamports, signature=signature)

    async def buy_target_token(self, signer: Keypair, lamports: int) -> BuyResult:
        """
        Buy the target token through the swap venue.

        Only slippage failures are retried, each time with a wider
        tolerance; every other failure ends the stage immediately.
        """
        if lamports <= 0:
            return BuyResult(
                success=False,
                error="Nothing to buy with",
                error_kind=ConversionErrorKind.INSUFFICIENT_REMAINING_AMOUNT
            )

        operator = str(signer.pubkey())
        amount_sol = float(lamports_to_sol(lamports))
        result = BuyResult(success=False)

        try:
            async for attempt in self.slippage_policy.attempts("buy_target_token"):
                with attempt:
                    result.attempts = attempt.retry_state.attempt_number
                    result.slippage_percent = self.slippage_for_attempt(result.attempts)
                    self.logger.info(
                        "Submitting buy",
                        amount=amount_sol,
                        slippage=result.slippage_percent,
                        attempt=result.attempts
                    )
                    serialized = await self.swap_venue.build_swap_transaction(
                        operator,
                        self.config.token_mint,
                        amount_sol,
                        result.slippage_percent
                    )
                    result.signature = await self.ledger.send_prebuilt(serialized, [signer])
        except (
            TransactionFailedError,
            LedgerUnreachableError,
            VenueUnreachableError,
            VenueRejectedError,
        ) as e:
            result.error = e.message
            result.error_kind = _error_kind(e)
            self.logger.warning(
                "Buy failed",
                attempts=result.attempts,
                reason=result.error_kind.value,
                error=e.message
            )
            return result

        result.success = True
        result.spent_lamports = lamports
        self.logger.info(
            "Bought target token",
            symbol=self.config.target_token_symbol,
            spent=amount_sol,
            slippage=result.slippage_percent,
            signature=result.signature
        )
        return result
