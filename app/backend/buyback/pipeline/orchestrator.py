"""
The buyback cycle: acquire funds, convert, rank holders, distribute.

    idle -> acquiring_funds -> converting -> ranking_holders -> distributing -> completed
                   |               |
                   +-> skipped     +-> failed

Every step is persisted before the next one starts, and each transfer is
recorded as soon as it resolves, so a crash leaves a cycle record
describing exactly how far it got.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import structlog
from solders.keypair import Keypair

from buyback.core.config import Settings
from buyback.core.exceptions import ConfigurationError, CycleInProgressError
from buyback.models import ActivityKind, ActivityStatus, CycleStatus
from buyback.models.base import utcnow
from buyback.repositories import Repositories

from .distributor import Distributor
from .funds_source import FundsSource
from .holder_ranker import HolderRanker
from .types import (
    ConversionErrorKind,
    ConversionResult,
    CycleOutcome,
    CyclePhase,
    CycleReport,
    FundsErrorKind,
    RankingErrorKind,
    RecipientResult,
    lamports_to_sol,
    sol_to_lamports,
)
from .value_converter import ValueConverter


logger = structlog.get_logger(__name__)


class CycleOrchestrator:
    """Runs one cycle at a time; overlapping triggers are refused."""

    def __init__(
        self,
        funds_source: FundsSource,
        converter: ValueConverter,
        ranker: HolderRanker,
        distributor: Distributor,
        repositories: Repositories,
        config: Settings,
        signer: Optional[Keypair],
        signer_error: Optional[str] = None
    ):
        self.funds_source = funds_source
        self.converter = converter
        self.ranker = ranker
        self.distributor = distributor
        self.repos = repositories
        self.config = config
        self.signer = signer
        self.signer_error = signer_error

        self.phase = CyclePhase.IDLE
        self.current_cycle_id: Optional[str] = None
        self.last_report: Optional[CycleReport] = None
        self._in_progress = False
        self.logger = logger.bind(service="cycle_orchestrator")

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def validate_configuration(self) -> Keypair:
        """Everything a cycle needs before it may touch any funds."""
        if self.signer is None:
            raise ConfigurationError(
                self.signer_error or "DEV_WALLET_PRIVATE_KEY is not configured"
            )
        if not self.config.token_mint:
            raise ConfigurationError("TOKEN_MINT is not configured")
        if not self.ranker.provider_configured():
            raise ConfigurationError("Chain-data provider is not configured")
        return self.signer

    def status(self) -> dict:
        return {
            "phase": self.phase.value,
            "in_progress": self._in_progress,
            "current_cycle_id": self.current_cycle_id,
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    async def run_cycle(self, trigger: str = "scheduler") -> CycleReport:
        """
        Run one full cycle.

        Raises:
            CycleInProgressError: another cycle is running
            ConfigurationError: required configuration is missing
        """
        if self._in_progress:
            raise CycleInProgressError(self.current_cycle_id)

        self._in_progress = True
        try:
            signer = self.validate_configuration()
            report = await self._run(signer, trigger)
            self.last_report = report
            return report
        except ConfigurationError as e:
            self.phase = CyclePhase.FAILED
            self.logger.error("Cycle aborted: configuration error", error=e.message)
            raise
        finally:
            self._in_progress = False
            self.current_cycle_id = None

    async def _run(self, signer: Keypair, trigger: str) -> CycleReport:
        cycle = await self.repos.cycles.create(trigger=trigger)
        self.current_cycle_id = cycle.id
        log = self.logger.bind(cycle_id=cycle.id, trigger=trigger)
        report = CycleReport(
            cycle_id=cycle.id,
            phase=CyclePhase.ACQUIRING_FUNDS,
            trigger=trigger,
            started_at=cycle.started_at or utcnow()
        )
        log.info("Cycle started")

        try:
            await self._execute(signer, report, log)
        except ConfigurationError as e:
            await self._fail(report, e.message, log)
            raise
        except asyncio.CancelledError:
            log.warning("Cycle cancelled", phase=report.phase.value)
            await self._fail(report, "Cycle cancelled", log)
            raise
        except Exception as e:
            log.exception("Cycle crashed", phase=report.phase.value)
            await self._fail(report, f"Unexpected error: {e}", log)
            raise

        report.finished_at = utcnow()
        self.phase = report.phase
        log.info(
            "Cycle finished",
            phase=report.phase.value,
            outcome=report.outcome.value if report.outcome else None
        )
        return report

    async def _execute(self, signer: Keypair, report: CycleReport, log) -> None:
        cycles = self.repos.cycles
        activity = self.repos.activity
        cycle_id = report.cycle_id
        native = self.config.native_symbol
        payout = self.config.payout_symbol

        # Acquire funds
        self.phase = report.phase = CyclePhase.ACQUIRING_FUNDS
        funds = await self.funds_source.acquire_funds(signer)
        report.funds = funds

        if not funds.has_funds:
            if funds.error_kind == FundsErrorKind.LEDGER_UNREACHABLE:
                await cycles.update(cycle_id, CycleStatus.PROCESSING)
                await activity.append(
                    ActivityKind.FUND_CLAIM, ActivityStatus.FAILURE,
                    token_symbol=native, cycle_id=cycle_id,
                    message=funds.claim_error_message
                )
                report.outcome = CycleOutcome.FAILED
                await self._fail(report, funds.claim_error_message or "Ledger unreachable", log)
                return

            await cycles.update(cycle_id, CycleStatus.SKIPPED, error="No funds available")
            await activity.append(
                ActivityKind.FUND_CLAIM, ActivityStatus.SKIPPED,
                token_symbol=native, cycle_id=cycle_id,
                message="No funds available"
            )
            self.phase = report.phase = CyclePhase.SKIPPED
            report.outcome = CycleOutcome.NO_FUNDS
            log.info(
                "Cycle skipped: no funds",
                vault_balance=funds.vault_balance,
                wallet_balance=funds.wallet_balance
            )
            return

        await cycles.update(
            cycle_id,
            CycleStatus.PROCESSING,
            funds_source=funds.source,
            claimed_amount=funds.amount,
            claim_signature=funds.signature,
        )
        await activity.append(
            ActivityKind.FUND_CLAIM, ActivityStatus.SUCCESS,
            amount=funds.amount, token_symbol=native,
            tx_signature=funds.signature, cycle_id=cycle_id,
            message=f"Funds from {funds.source.value}"
        )

        # Buy and convert
        self.phase = report.phase = CyclePhase.CONVERTING
        acquired = funds.amount_lamports
        spent = 0

        if self.config.buyback_enabled and self.config.buyback_ratio > 0:
            buy_amount = int(Decimal(acquired) * Decimal(str(self.config.buyback_ratio)))
            buy = await self.converter.buy_target_token(signer, buy_amount)
            report.buy = buy
            if buy.success:
                spent = buy.spent_lamports
                await cycles.update(
                    cycle_id,
                    bought_amount=buy.spent_amount,
                    buy_signature=buy.signature
                )
            await activity.append(
                ActivityKind.BUYBACK,
                ActivityStatus.SUCCESS if buy.success else ActivityStatus.FAILURE,
                amount=buy.spent_amount if buy.success else lamports_to_sol(buy_amount),
                token_symbol=self.config.target_token_symbol,
                tx_signature=buy.signature if buy.success else None,
                cycle_id=cycle_id,
                message=None if buy.success else buy.error
            )

        remaining = acquired - spent - sol_to_lamports(self.config.conversion_fee_buffer_sol)
        minimum = sol_to_lamports(self.config.min_conversion_sol)

        if remaining <= minimum:
            if report.buy is not None and report.buy.success:
                await cycles.update(
                    cycle_id, CycleStatus.COMPLETED,
                    converted_amount=Decimal("0"), no_recipients=True
                )
                await activity.append(
                    ActivityKind.CONVERSION, ActivityStatus.SKIPPED,
                    token_symbol=payout, cycle_id=cycle_id,
                    message="Nothing left to distribute after buyback"
                )
                self.phase = report.phase = CyclePhase.COMPLETED
                report.outcome = CycleOutcome.NO_DISTRIBUTION_FUNDS
                log.info("Cycle completed without distribution", remaining=remaining)
                return

            conversion = ConversionResult(
                success=False,
                error=f"Remaining amount {lamports_to_sol(max(remaining, 0))} is below the minimum",
                error_kind=ConversionErrorKind.INSUFFICIENT_REMAINING_AMOUNT
            )
        else:
            conversion = await self.converter.convert(signer, remaining)
        report.conversion = conversion

        if not conversion.success:
            await activity.append(
                ActivityKind.CONVERSION, ActivityStatus.FAILURE,
                amount=lamports_to_sol(max(remaining, 0)), token_symbol=payout,
                cycle_id=cycle_id, message=conversion.error
            )
            report.outcome = CycleOutcome.CONVERSION_FAILED
            log.error(
                "Conversion failed",
                reason=conversion.error_kind.value if conversion.error_kind else None,
                error=conversion.error
            )
            await self._fail(report, conversion.error or "Conversion failed", log)
            return

        await cycles.update(
            cycle_id,
            converted_amount=conversion.output_amount,
            conversion_signature=conversion.signature,
            conversion_completed_at=utcnow()
        )
        await activity.append(
            ActivityKind.CONVERSION, ActivityStatus.SUCCESS,
            amount=conversion.output_amount, token_symbol=payout,
            tx_signature=conversion.signature, cycle_id=cycle_id
        )

        # Rank holders
        self.phase = report.phase = CyclePhase.RANKING_HOLDERS
        ranking = await self.ranker.get_top_holders(
            self.config.token_mint,
            self.config.top_holders_count
        )
        report.ranking = ranking

        if ranking.error_kind in (None, RankingErrorKind.NO_HOLDERS_FOUND):
            await self.repos.holders.replace_snapshot(ranking.holders)

        if not ranking.holders:
            await cycles.update(
                cycle_id, CycleStatus.COMPLETED,
                no_recipients=True,
                distributed_amount=Decimal("0"),
                error=ranking.error if ranking.error_kind != RankingErrorKind.NO_HOLDERS_FOUND else None
            )
            await activity.append(
                ActivityKind.DISTRIBUTION, ActivityStatus.SKIPPED,
                token_symbol=payout, cycle_id=cycle_id,
                message=ranking.error or "No holders to distribute to"
            )
            self.phase = report.phase = CyclePhase.COMPLETED
            report.outcome = CycleOutcome.NO_RECIPIENTS
            log.info(
                "Cycle completed with no recipients",
                reason=ranking.error_kind.value if ranking.error_kind else None
            )
            return

        # Distribute
        self.phase = report.phase = CyclePhase.DISTRIBUTING

        async def record(result: RecipientResult) -> None:
            report.recipients.append(result)
            await self.repos.distributions.record_many(cycle_id, [result])
            if result.success:
                await self.repos.holders.record_reward(result.wallet_owner, result.share, utcnow())
            await activity.append(
                ActivityKind.DISTRIBUTION,
                ActivityStatus.SUCCESS if result.success else ActivityStatus.FAILURE,
                amount=result.share,
                token_symbol=payout,
                wallet_address=result.wallet_owner,
                tx_signature=result.signature,
                cycle_id=cycle_id,
                message=result.error
            )

        results = await self.distributor.distribute(
            signer,
            conversion.output_lamports,
            ranking.holders,
            on_result=record
        )

        failed = sum(1 for r in results if not r.success)
        await cycles.update(
            cycle_id,
            CycleStatus.COMPLETED,
            distributed_amount=lamports_to_sol(report.distributed_lamports),
            recipients_count=len(results) - failed,
            failed_transfers=failed
        )
        self.phase = report.phase = CyclePhase.COMPLETED
        report.outcome = (
            CycleOutcome.PARTIAL_DISTRIBUTION if failed else CycleOutcome.DISTRIBUTED
        )
        if failed:
            log.warning("Some transfers failed", failed=failed, recipients=len(results))

    async def _fail(self, report: CycleReport, error: str, log) -> None:
        self.phase = report.phase = CyclePhase.FAILED
        report.error = error
        report.finished_at = utcnow()
        if report.outcome is None:
            report.outcome = CycleOutcome.FAILED

        cycle = await self.repos.cycles.get(report.cycle_id)
        if cycle is None or cycle.status in (
            CycleStatus.COMPLETED, CycleStatus.FAILED, CycleStatus.SKIPPED
        ):
            return
        if cycle.status == CycleStatus.PENDING:
            await self.repos.cycles.update(report.cycle_id, CycleStatus.PROCESSING)
        await self.repos.cycles.update(report.cycle_id, CycleStatus.FAILED, error=error)
        log.error("Cycle failed", error=error)
