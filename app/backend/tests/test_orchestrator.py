"""
Test full cycles end to end against the in-process fakes and a real database.
"""

import asyncio
from decimal import Decimal

import pytest
from solders.pubkey import Pubkey

from buyback.container import build_container
from buyback.core.exceptions import ConfigurationError, CycleInProgressError, TransactionFailedError, VenueRejectedError
from buyback.models import ActivityKind, ActivityStatus, CycleStatus, FundsSourceKind, TransferOutcome
from buyback.pipeline import derive_creator_vault
from buyback.pipeline.types import CycleOutcome, CyclePhase, RankedHolder

from .fakes import CLAIM_TX, FakeChainData, new_wallet, token_account

SOL = 1_000_000_000


def _fund_vault(ledger, settings, signer, lamports, wallet=20_000_000):
    vault = derive_creator_vault(signer.pubkey(), Pubkey.from_string(settings.pump_program_id))
    ledger.set_balance(vault, lamports)
    ledger.set_balance(signer.pubkey(), wallet)

    def on_prebuilt(serialized):
        if serialized == CLAIM_TX:
            ledger.balances[str(signer.pubkey())] += ledger.balances[str(vault)]
            ledger.balances[str(vault)] = 0
    ledger.on_prebuilt = on_prebuilt


def _holders_provider(*balances):
    accounts = [token_account(f"acct{i}", b) for i, b in enumerate(balances)]
    wallets = [new_wallet() for _ in accounts]
    provider = FakeChainData(accounts, {a.address: w for a, w in zip(accounts, wallets)})
    return provider, wallets


@pytest.fixture
def make_orchestrator(database, ledger, venue, signer, sleep):
    def factory(settings, chain_data, with_signer=True):
        container = build_container(
            settings,
            database=database,
            ledger=ledger,
            claim_venue=venue,
            swap_venue=venue,
            chain_data=chain_data,
            signer=signer if with_signer else None,
            sleep=sleep,
        )
        return container.orchestrator, container.repositories
    return factory


@pytest.mark.asyncio
async def test_full_cycle_distributes_remainder(settings, ledger, signer, make_orchestrator):
    """Claim 1 SOL, buy with 0.9, wrap 0.09 and split it 3:2:1."""
    _fund_vault(ledger, settings, signer, SOL)
    provider, wallets = _holders_provider(300, 200, 100)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle(trigger="admin")

    assert report.phase == CyclePhase.COMPLETED
    assert report.outcome == CycleOutcome.DISTRIBUTED
    assert report.funds.source == FundsSourceKind.CLAIM
    assert report.buy.spent_lamports == 900_000_000
    assert report.conversion.output_lamports == 90_000_000
    assert [r.share_lamports for r in report.recipients] == [45_000_000, 30_000_000, 15_000_000]
    assert report.to_dict()["total_distributed"] == "0.09"

    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.COMPLETED
    assert cycle.trigger == "admin"
    assert cycle.claimed_amount == Decimal("1")
    assert cycle.bought_amount == Decimal("0.9")
    assert cycle.converted_amount == Decimal("0.09")
    assert cycle.distributed_amount == Decimal("0.09")
    assert cycle.recipients_count == 3
    assert cycle.failed_transfers == 0
    assert cycle.completed_at is not None

    snapshot = await repos.holders.get_current_snapshot()
    assert [h.wallet_address for h in snapshot] == wallets
    assert [h.last_reward_amount for h in snapshot] == [Decimal("0.045"), Decimal("0.03"), Decimal("0.015")]

    kinds = [e.kind for e in reversed(await repos.activity.recent(limit=20))]
    assert kinds == [
        ActivityKind.FUND_CLAIM,
        ActivityKind.BUYBACK,
        ActivityKind.CONVERSION,
        ActivityKind.DISTRIBUTION,
        ActivityKind.DISTRIBUTION,
        ActivityKind.DISTRIBUTION,
    ]
    assert orchestrator.phase == CyclePhase.COMPLETED
    assert orchestrator.in_progress is False


@pytest.mark.asyncio
async def test_partial_distribution(settings, ledger, signer, make_orchestrator):
    """A failed transfer is recorded and the rest still get paid."""
    _fund_vault(ledger, settings, signer, SOL)
    provider, wallets = _holders_provider(300, 200, 100)
    # 0 is the wrap, 1..3 are the transfers
    ledger.instruction_failures[2] = TransactionFailedError("blockhash not found")
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.PARTIAL_DISTRIBUTION
    assert report.success

    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.COMPLETED
    assert cycle.recipients_count == 2
    assert cycle.failed_transfers == 1
    assert cycle.distributed_amount == Decimal("0.06")

    rows = await repos.distributions.for_cycle(report.cycle_id)
    assert [r.outcome for r in rows] == [TransferOutcome.SUCCESS, TransferOutcome.FAILURE, TransferOutcome.SUCCESS]

    snapshot = {h.wallet_address: h for h in await repos.holders.get_current_snapshot()}
    assert snapshot[wallets[1]].last_reward_amount is None
    assert snapshot[wallets[0]].last_reward_amount == Decimal("0.045")


@pytest.mark.asyncio
async def test_failed_buy_still_distributes(settings, ledger, venue, signer, make_orchestrator):
    """Without a buy the whole amount minus the fee buffer is wrapped."""
    _fund_vault(ledger, settings, signer, SOL)
    venue.swap_errors = [VenueRejectedError("pool not found")]
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert not report.buy.success
    assert report.conversion.output_lamports == 990_000_000
    assert report.outcome == CycleOutcome.DISTRIBUTED

    buyback = [e for e in await repos.activity.recent() if e.kind == ActivityKind.BUYBACK]
    assert buyback[0].status == ActivityStatus.FAILURE


@pytest.mark.asyncio
async def test_no_funds_skips_cycle(settings, ledger, venue, signer, make_orchestrator):
    """Nothing to claim and only the reserve in the wallet: skip quietly."""
    ledger.set_balance(signer.pubkey(), 5_000_000)
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert report.phase == CyclePhase.SKIPPED
    assert report.outcome == CycleOutcome.NO_FUNDS
    assert report.success
    assert venue.claim_calls == []
    assert venue.swap_calls == []
    assert provider.lookups == []

    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.SKIPPED
    entries = await repos.activity.recent()
    assert [(e.kind, e.status) for e in entries] == [(ActivityKind.FUND_CLAIM, ActivityStatus.SKIPPED)]


@pytest.mark.asyncio
async def test_conversion_failure_distributes_nothing(settings_factory, ledger, signer, repos, make_orchestrator):
    """A failed wrap ends the cycle before ranking; the snapshot is untouched."""
    settings = settings_factory(buyback_enabled=False)
    ledger.set_balance(signer.pubkey(), SOL // 2)
    ledger.instruction_failures[0] = TransactionFailedError("insufficient funds for rent")
    previous = RankedHolder(wallet_owner=new_wallet(), balance=Decimal(1), rank=1)
    await repos.holders.replace_snapshot([previous])
    provider, _ = _holders_provider(10, 5)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert report.phase == CyclePhase.FAILED
    assert report.outcome == CycleOutcome.CONVERSION_FAILED
    assert not report.success
    assert provider.lookups == []

    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.FAILED
    assert "insufficient funds" in cycle.error
    assert await repos.distributions.for_cycle(report.cycle_id) == []

    snapshot = await repos.holders.get_current_snapshot()
    assert [h.wallet_address for h in snapshot] == [previous.wallet_owner]


@pytest.mark.asyncio
async def test_buy_that_uses_everything_completes_without_distribution(
    settings_factory, ledger, signer, make_orchestrator
):
    settings = settings_factory(buyback_ratio=1.0)
    _fund_vault(ledger, settings, signer, SOL)
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert report.phase == CyclePhase.COMPLETED
    assert report.outcome == CycleOutcome.NO_DISTRIBUTION_FUNDS
    assert provider.lookups == []
    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.no_recipients is True


@pytest.mark.asyncio
async def test_no_holders_completes_with_no_recipients(settings, ledger, signer, make_orchestrator):
    _fund_vault(ledger, settings, signer, SOL)
    orchestrator, repos = make_orchestrator(settings, FakeChainData())

    report = await orchestrator.run_cycle()

    assert report.outcome == CycleOutcome.NO_RECIPIENTS
    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.COMPLETED
    assert cycle.no_recipients is True
    assert cycle.distributed_amount == Decimal("0")


@pytest.mark.asyncio
async def test_ledger_outage_fails_cycle(settings, ledger, make_orchestrator):
    ledger.unreachable = True
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert report.phase == CyclePhase.FAILED
    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.FAILED


@pytest.mark.asyncio
async def test_overlapping_trigger_is_refused(settings, ledger, venue, signer, make_orchestrator):
    """While a cycle runs, a second trigger raises instead of queueing."""
    _fund_vault(ledger, settings, signer, SOL)
    venue.gate = asyncio.Event()
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    running = asyncio.create_task(orchestrator.run_cycle())
    while not venue.claim_calls:
        await asyncio.sleep(0.01)

    assert orchestrator.in_progress
    with pytest.raises(CycleInProgressError):
        await orchestrator.run_cycle(trigger="cron")

    venue.gate.set()
    report = await running

    assert report.success
    assert orchestrator.in_progress is False
    assert len(await repos.cycles.recent()) == 1


@pytest.mark.asyncio
async def test_missing_signing_key_aborts_before_any_record(settings, ledger, make_orchestrator):
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider, with_signer=False)

    with pytest.raises(ConfigurationError):
        await orchestrator.run_cycle()

    assert await repos.cycles.recent() == []
    assert orchestrator.in_progress is False


@pytest.mark.asyncio
async def test_missing_mint_aborts(settings_factory, make_orchestrator):
    settings = settings_factory(token_mint="")
    provider, _ = _holders_provider(1)
    orchestrator, repos = make_orchestrator(settings, provider)

    with pytest.raises(ConfigurationError):
        await orchestrator.run_cycle()


@pytest.mark.asyncio
async def test_unconfigured_provider_aborts(settings, make_orchestrator):
    provider, _ = _holders_provider(1)
    provider.configured = False
    orchestrator, repos = make_orchestrator(settings, provider)

    with pytest.raises(ConfigurationError):
        await orchestrator.run_cycle()


@pytest.mark.asyncio
async def test_cancelled_distribution_keeps_confirmed_transfers(settings, ledger, signer, make_orchestrator):
    """Transfers confirmed before a cancellation stay recorded and the cycle fails."""
    _fund_vault(ledger, settings, signer, SOL)
    provider, wallets = _holders_provider(300, 200, 100)
    ledger.instruction_failures[3] = asyncio.CancelledError()
    orchestrator, repos = make_orchestrator(settings, provider)

    with pytest.raises(asyncio.CancelledError):
        await orchestrator.run_cycle()

    assert orchestrator.in_progress is False
    cycle = (await repos.cycles.recent())[0]
    assert cycle.status == CycleStatus.FAILED
    assert cycle.error == "Cycle cancelled"

    rows = await repos.distributions.for_cycle(cycle.id)
    assert [r.wallet_address for r in rows] == wallets[:2]
    assert all(r.outcome == TransferOutcome.SUCCESS for r in rows)

    snapshot = {h.wallet_address: h for h in await repos.holders.get_current_snapshot()}
    assert snapshot[wallets[0]].last_reward_amount == Decimal("0.045")
    assert snapshot[wallets[1]].last_reward_amount == Decimal("0.03")
    assert snapshot[wallets[2]].last_reward_amount is None

    paid = [e for e in await repos.activity.recent(limit=20) if e.kind == ActivityKind.DISTRIBUTION]
    assert len(paid) == 2


@pytest.mark.asyncio
async def test_rejected_claim_runs_on_wallet_balance(settings_factory, ledger, venue, signer, make_orchestrator):
    """A rejected claim falls back to the wallet minus its reserve and the cycle goes on."""
    settings = settings_factory(buyback_enabled=False)
    _fund_vault(ledger, settings, signer, 50_000_000, wallet=50_000_000)
    venue.claim_error = VenueRejectedError("creator fee claim rejected")
    provider, _ = _holders_provider(2, 1)
    orchestrator, repos = make_orchestrator(settings, provider)

    report = await orchestrator.run_cycle()

    assert venue.claim_calls
    assert report.funds.source == FundsSourceKind.WALLET_BALANCE
    assert report.funds.amount_lamports == 40_000_000
    assert report.conversion.output_lamports == 30_000_000
    assert report.outcome == CycleOutcome.DISTRIBUTED
    assert [r.share_lamports for r in report.recipients] == [20_000_000, 10_000_000]

    cycle = await repos.cycles.get(report.cycle_id)
    assert cycle.status == CycleStatus.COMPLETED
    assert cycle.funds_source == FundsSourceKind.WALLET_BALANCE
    assert cycle.claimed_amount == Decimal("0.04")
