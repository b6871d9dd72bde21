"""
PumpPortal local-trade client.

Both the creator-fee claim and the buy are built remotely and returned as
serialized, unsigned versioned transactions; signing and submission stay
with the ledger client.
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog

from buyback.core.config import Settings
from buyback.core.exceptions import VenueRejectedError, VenueUnreachableError


logger = structlog.get_logger(__name__)


class PumpPortalClient:
    """Claim venue and swap venue in one HTTP client."""

    def __init__(
        self,
        base_url: str,
        pool: str = "pump",
        priority_fee: float = 0.0001,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = base_url
        self.pool = pool
        self.priority_fee = priority_fee
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="pumpportal")

    @classmethod
    def from_settings(cls, config: Settings) -> "PumpPortalClient":
        return cls(
            config.pumpportal_url,
            pool=config.pump_pool,
            priority_fee=config.priority_fee_sol,
            timeout=config.venue_timeout
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def build_claim_transaction(self, operator: str, mint: str) -> bytes:
        """Unsigned transaction collecting the creator fees owed to `operator`."""
        return await self._trade_local({
            "publicKey": operator,
            "action": "collectCreatorFee",
            "mint": mint,
            "priorityFee": self.priority_fee,
            "pool": self.pool,
        })

    async def build_swap_transaction(
        self,
        operator: str,
        mint: str,
        amount_sol: float,
        slippage_percent: float
    ) -> bytes:
        """Unsigned transaction buying `mint` with `amount_sol` native currency."""
        return await self._trade_local({
            "publicKey": operator,
            "action": "buy",
            "mint": mint,
            "denominatedInSol": "true",
            "amount": amount_sol,
            "slippage": slippage_percent,
            "priorityFee": self.priority_fee,
            "pool": self.pool,
        })

    async def _trade_local(self, body: Dict[str, Any]) -> bytes:
        session = await self._get_session()
        action = body["action"]

        try:
            async with session.post(self.base_url, json=body) as response:
                if response.status != 200:
                    text = await response.text()
                    self.logger.warning(
                        "Venue refused request",
                        action=action,
                        status=response.status,
                        body=text[:200]
                    )
                    raise VenueRejectedError(
                        f"PumpPortal {action} returned {response.status}",
                        {"status": response.status, "body": text[:500]}
                    )
                payload = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VenueUnreachableError(
                f"PumpPortal {action} request failed: {e}",
                {"action": action}
            ) from e

        if not payload:
            raise VenueRejectedError(f"PumpPortal {action} returned an empty transaction")

        self.logger.debug("Venue built transaction", action=action, size=len(payload))
        return payload
