"""
Solana ledger client: balances, account existence and
"sign, submit, await confirmation" for the buyback pipeline.
"""

import asyncio
from typing import List, Sequence

import httpx
import structlog
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from buyback.core.config import Settings, SolanaConfig
from buyback.core.exceptions import (
    LedgerUnreachableError,
    SlippageExceededError,
    TransactionFailedError,
)


logger = structlog.get_logger(__name__)

# Pump program custom errors raised when the bonding-curve price moved
# past the caller's bound (TooMuchSolRequired / TooLittleSolReceived).
SLIPPAGE_MARKERS = ("slippage", "0x1772", "0x1773", "toomuchsolrequired", "toolittlesolreceived")


def is_slippage_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in SLIPPAGE_MARKERS)


def _failure(message: str, details: dict) -> TransactionFailedError:
    if is_slippage_failure(message):
        return SlippageExceededError(message, details)
    return TransactionFailedError(message, details)


class SolanaLedger:
    """
    Thin async wrapper over the Solana RPC.

    Every network error is translated into LedgerUnreachableError and every
    rejected or failed transaction into TransactionFailedError (or its
    SlippageExceededError sub-case) so callers deal with one error family.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        confirmation_timeout: float = 60.0,
        client: AsyncClient = None
    ):
        self.commitment = Commitment(commitment)
        self.confirmation_timeout = confirmation_timeout
        self.client = client or AsyncClient(
            endpoint=rpc_url,
            commitment=self.commitment,
            timeout=confirmation_timeout
        )
        self.logger = logger.bind(service="solana_ledger")

    @classmethod
    def from_settings(cls, config: Settings) -> "SolanaLedger":
        rpc = SolanaConfig.get_rpc_config(config)
        return cls(
            rpc["endpoint"],
            commitment=rpc["commitment"],
            confirmation_timeout=rpc["timeout"]
        )

    async def close(self):
        await self.client.close()

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Balance in lamports."""
        try:
            response = await self.client.get_balance(pubkey, commitment=self.commitment)
            return response.value
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            raise LedgerUnreachableError(
                f"Failed to get balance: {e}",
                {"account": str(pubkey)}
            ) from e

    async def account_exists(self, pubkey: Pubkey) -> bool:
        try:
            response = await self.client.get_account_info(pubkey, commitment=self.commitment)
            return response.value is not None
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            raise LedgerUnreachableError(
                f"Failed to get account info: {e}",
                {"account": str(pubkey)}
            ) from e

    async def send_instructions(
        self,
        instructions: Sequence[Instruction],
        signer: Keypair
    ) -> str:
        """Build a transaction paid and signed by `signer`, submit and confirm it."""
        try:
            blockhash = await self.client.get_latest_blockhash(commitment=Commitment("finalized"))
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            raise LedgerUnreachableError(f"Failed to get blockhash: {e}") from e

        transaction = Transaction.new_signed_with_payer(
            list(instructions),
            signer.pubkey(),
            [signer],
            blockhash.value.blockhash
        )
        return await self._submit(transaction)

    async def send_prebuilt(self, serialized: bytes, signers: List[Keypair]) -> str:
        """Sign a venue-built, unsigned versioned transaction and submit it."""
        try:
            unsigned = VersionedTransaction.from_bytes(serialized)
        except ValueError as e:
            raise TransactionFailedError(
                "Venue returned an undecodable transaction",
                {"error": str(e)}
            ) from e

        transaction = VersionedTransaction(unsigned.message, signers)
        return await self._submit(transaction)

    async def _submit(self, transaction) -> str:
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        try:
            response = await self.client.send_transaction(transaction, opts=opts)
        except RPCException as e:
            raise _failure(f"Transaction rejected: {e}", {"stage": "send"}) from e
        except (SolanaRpcException, httpx.HTTPError) as e:
            raise LedgerUnreachableError(f"Failed to send transaction: {e}") from e

        signature: Signature = response.value
        await self._confirm(signature)
        return str(signature)

    async def _confirm(self, signature: Signature) -> None:
        try:
            confirmation = await asyncio.wait_for(
                self.client.confirm_transaction(signature, commitment=self.commitment),
                timeout=self.confirmation_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransactionFailedError(
                "Transaction not confirmed in time",
                {"signature": str(signature), "timeout": self.confirmation_timeout}
            ) from e
        except UnconfirmedTxError as e:
            raise TransactionFailedError(
                f"Transaction not confirmed: {e}",
                {"signature": str(signature)}
            ) from e
        except (SolanaRpcException, RPCException, httpx.HTTPError) as e:
            raise LedgerUnreachableError(
                f"Failed to confirm transaction: {e}",
                {"signature": str(signature)}
            ) from e

        status = confirmation.value[0] if confirmation.value else None
        if status is not None and status.err:
            raise _failure(
                f"Transaction failed: {status.err}",
                {"signature": str(signature)}
            )

        self.logger.debug("Transaction confirmed", signature=str(signature))
