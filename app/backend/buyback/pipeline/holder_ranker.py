"""
Ranking the top token holders by owner wallet.

The provider reports custodial token accounts; each one is resolved to
the wallet that owns it, since that wallet is what gets stored and paid.
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from buyback.core.config import Settings
from buyback.core.exceptions import (
    ConfigurationError,
    OwnerResolutionError,
    ProviderUnreachableError,
    RateLimitError,
)
from buyback.services.retry import RetryPolicy, SleepFn

from .types import ChainDataProvider, RankedHolder, RankingErrorKind, RankingResult


logger = structlog.get_logger(__name__)


def assign_dense_ranks(holders: List[RankedHolder]) -> List[RankedHolder]:
    """Sort by balance descending and number 1..k with no gaps."""
    ordered = sorted(holders, key=lambda h: (-h.balance, h.wallet_owner))
    for index, holder in enumerate(ordered, start=1):
        holder.rank = index
    return ordered


class HolderRanker:
    def __init__(
        self,
        provider: ChainDataProvider,
        config: Settings,
        sleep: SleepFn = asyncio.sleep
    ):
        self.provider = provider
        self.config = config
        self.sleep = sleep
        self.lookup_policy = RetryPolicy(
            max_attempts=config.owner_lookup_max_attempts,
            base_delay=config.owner_lookup_base_delay,
            retry_on=(RateLimitError,),
            sleep=sleep,
        )
        self.logger = logger.bind(service="holder_ranker")

    def provider_configured(self) -> bool:
        return self.provider.is_configured()

    async def get_top_holders(self, mint: Optional[str], n: int) -> RankingResult:
        """
        Up to `n` owners ranked by balance.

        Raises:
            ConfigurationError: when no mint is configured
        """
        if not mint:
            raise ConfigurationError("TOKEN_MINT is not configured")

        try:
            accounts = await self.lookup_policy.call(
                "get_largest_holders",
                self.provider.get_largest_holders,
                mint
            )
        except RateLimitError as e:
            return self._empty(RankingErrorKind.PROVIDER_RATE_LIMITED, e.message)
        except ProviderUnreachableError as e:
            return self._empty(RankingErrorKind.PROVIDER_UNREACHABLE, e.message)

        # Over-fetch so that skipped lookups can be backfilled
        wanted = n + self.config.holder_candidate_headroom
        candidates = [a for a in accounts if a.balance > 0][:wanted]
        if not candidates:
            self.logger.info("No holders found", mint=mint)
            return self._empty(RankingErrorKind.NO_HOLDERS_FOUND, "No token accounts with a balance")

        owners: Dict[str, RankedHolder] = {}
        unresolved = 0
        batch_size = max(1, self.config.owner_lookup_batch_size)

        for start in range(0, len(candidates), batch_size):
            if len(owners) >= n:
                break
            if start > 0:
                await self.sleep(self.config.owner_batch_delay)

            for index, account in enumerate(candidates[start:start + batch_size]):
                if len(owners) >= n:
                    break
                if index > 0:
                    await self.sleep(self.config.owner_lookup_delay)

                owner = await self._resolve(account.address)
                if owner is None:
                    unresolved += 1
                    continue

                holder = owners.get(owner)
                if holder is None:
                    owners[owner] = RankedHolder(
                        wallet_owner=owner,
                        balance=Decimal(account.balance),
                        token_accounts=[account.address]
                    )
                else:
                    holder.balance += Decimal(account.balance)
                    holder.token_accounts.append(account.address)

        ranked = assign_dense_ranks(list(owners.values()))[:n]

        self.logger.info(
            "Holders ranked",
            mint=mint,
            candidates=len(candidates),
            holders=len(ranked),
            unresolved=unresolved
        )

        if not ranked:
            return RankingResult(
                holders=[],
                error_kind=RankingErrorKind.NO_HOLDERS_FOUND,
                error="No owner could be resolved",
                unresolved_accounts=unresolved
            )
        return RankingResult(holders=ranked, unresolved_accounts=unresolved)

    async def _resolve(self, token_account: str) -> Optional[str]:
        try:
            return await self.lookup_policy.call(
                "resolve_owner",
                self.provider.resolve_owner,
                token_account
            )
        except RateLimitError:
            self.logger.warning("Owner lookup rate limited, skipping account", account=token_account)
        except (OwnerResolutionError, ProviderUnreachableError) as e:
            self.logger.warning("Owner lookup failed, skipping account", account=token_account, error=e.message)
        return None

    def _empty(self, kind: RankingErrorKind, message: str) -> RankingResult:
        level = self.logger.info if kind == RankingErrorKind.NO_HOLDERS_FOUND else self.logger.warning
        level("Ranking produced no holders", reason=kind.value, error=message)
        return RankingResult(holders=[], error_kind=kind, error=message)
