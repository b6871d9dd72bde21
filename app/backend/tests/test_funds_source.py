"""
Test funds acquisition: claiming creator fees and the wallet fallback.
"""

import pytest
from solders.pubkey import Pubkey

from buyback.core.exceptions import TransactionFailedError, VenueRejectedError
from buyback.models import FundsSourceKind
from buyback.pipeline import FundsSource, derive_creator_vault
from buyback.pipeline.types import FundsErrorKind

from .fakes import CLAIM_TX

SOL = 1_000_000_000


def _vault(settings, signer):
    return derive_creator_vault(signer.pubkey(), Pubkey.from_string(settings.pump_program_id))


def _drain_vault_on_claim(ledger, vault, wallet):
    def on_prebuilt(serialized):
        if serialized == CLAIM_TX:
            ledger.balances[str(wallet)] = ledger.balances.get(str(wallet), 0) + ledger.balances[str(vault)]
            ledger.balances[str(vault)] = 0
    ledger.on_prebuilt = on_prebuilt


def test_creator_vault_is_deterministic(settings, signer):
    """The vault PDA depends only on the creator and the program."""
    assert _vault(settings, signer) == _vault(settings, signer)
    assert _vault(settings, signer) != signer.pubkey()


@pytest.mark.asyncio
async def test_claim_moves_vault_balance(settings, signer, ledger, venue):
    """A successful claim reports exactly what left the vault."""
    vault = _vault(settings, signer)
    ledger.set_balance(vault, SOL)
    ledger.set_balance(signer.pubkey(), SOL // 100)
    _drain_vault_on_claim(ledger, vault, signer.pubkey())

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert result.source == FundsSourceKind.CLAIM
    assert result.amount_lamports == SOL
    assert result.signature == "sig-pre-0"
    assert venue.claim_calls == [(str(signer.pubkey()), settings.token_mint)]


@pytest.mark.asyncio
async def test_rejected_claim_falls_back_to_wallet(settings, signer, ledger, venue):
    """Vault 0.05, wallet 0.05, claim rejected: 0.05 - 0.01 reserve is usable."""
    ledger.set_balance(_vault(settings, signer), 50_000_000)
    ledger.set_balance(signer.pubkey(), 50_000_000)
    venue.claim_error = VenueRejectedError("400 Bad Request")

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert result.source == FundsSourceKind.WALLET_BALANCE
    assert result.amount_lamports == 40_000_000
    assert result.claim_error == FundsErrorKind.CLAIM_VENUE_REJECTED
    assert result.signature is None


@pytest.mark.asyncio
async def test_failed_claim_transaction_falls_back(settings, signer, ledger, venue):
    """A claim that fails on chain is not fatal."""
    ledger.set_balance(_vault(settings, signer), SOL)
    ledger.set_balance(signer.pubkey(), SOL // 2)
    ledger.prebuilt_failures = [TransactionFailedError("custom program error")]

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert result.source == FundsSourceKind.WALLET_BALANCE
    assert result.claim_error == FundsErrorKind.CLAIM_TRANSACTION_FAILED
    assert result.amount_lamports == SOL // 2 - 10_000_000


@pytest.mark.asyncio
async def test_empty_vault_skips_claim(settings, signer, ledger, venue):
    """Nothing in the vault means no claim request at all."""
    ledger.set_balance(signer.pubkey(), SOL)

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert venue.claim_calls == []
    assert result.claim_error == FundsErrorKind.NOTHING_TO_CLAIM
    assert result.source == FundsSourceKind.WALLET_BALANCE


@pytest.mark.asyncio
async def test_threshold_is_advisory_by_default(settings, signer, ledger, venue):
    """A vault below the threshold is still claimed unless enforcement is on."""
    vault = _vault(settings, signer)
    ledger.set_balance(vault, 1_000_000)
    _drain_vault_on_claim(ledger, vault, signer.pubkey())

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)
    assert result.source == FundsSourceKind.CLAIM
    assert result.amount_lamports == 1_000_000


@pytest.mark.asyncio
async def test_enforced_threshold_blocks_claim(settings_factory, signer, ledger, venue):
    settings = settings_factory(claim_threshold_enforced=True)
    ledger.set_balance(_vault(settings, signer), 1_000_000)

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert venue.claim_calls == []
    assert result.claim_error == FundsErrorKind.BELOW_THRESHOLD
    assert result.has_funds is False
    assert result.error_kind == FundsErrorKind.NO_FUNDS_AVAILABLE


@pytest.mark.asyncio
async def test_wallet_below_reserve_means_no_funds(settings, signer, ledger, venue):
    """The reserve is never handed to later stages."""
    ledger.set_balance(signer.pubkey(), 5_000_000)

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert result.has_funds is False
    assert result.amount_lamports == 0
    assert result.error_kind == FundsErrorKind.NO_FUNDS_AVAILABLE


@pytest.mark.asyncio
async def test_ledger_down(settings, signer, ledger, venue):
    """Unreadable balances are reported, never guessed."""
    ledger.unreachable = True

    result = await FundsSource(ledger, venue, settings).acquire_funds(signer)

    assert result.has_funds is False
    assert result.error_kind == FundsErrorKind.LEDGER_UNREACHABLE
