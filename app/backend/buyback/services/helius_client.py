"""
Helius JSON-RPC client for holder data.
"""

import asyncio
from decimal import Decimal
from typing import Any, List, Optional

import aiohttp
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from buyback.core.config import Settings
from buyback.core.exceptions import (
    ConfigurationError,
    OwnerResolutionError,
    ProviderUnreachableError,
    RateLimitError,
)


logger = structlog.get_logger(__name__)


class TokenLargestAccount(BaseModel):
    """One entry of getTokenLargestAccounts."""

    model_config = ConfigDict(populate_by_name=True)

    address: str
    amount: str
    decimals: int
    ui_amount: Optional[Decimal] = Field(default=None, alias="uiAmount")
    ui_amount_string: Optional[str] = Field(default=None, alias="uiAmountString")

    @property
    def balance(self) -> Decimal:
        if self.ui_amount_string:
            return Decimal(self.ui_amount_string)
        if self.ui_amount is not None:
            return self.ui_amount
        return Decimal(self.amount) / (Decimal(10) ** self.decimals)


def _is_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return "429" in lowered or "rate limit" in lowered or "too many requests" in lowered


class HeliusClient:
    """Largest token accounts and token-account owner lookups."""

    def __init__(
        self,
        rpc_url: Optional[str],
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.rpc_url = rpc_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(service="helius")

    @classmethod
    def from_settings(cls, config: Settings) -> "HeliusClient":
        return cls(config.chain_data_url, timeout=config.provider_timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def is_configured(self) -> bool:
        return bool(self.rpc_url)

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()

    async def get_largest_holders(self, mint: str) -> List[TokenLargestAccount]:
        """Largest token accounts for `mint`, descending. The RPC caps this at 20."""
        result = await self._call("getTokenLargestAccounts", [mint])
        try:
            entries = (result or {}).get("value") or []
            return [TokenLargestAccount.model_validate(entry) for entry in entries]
        except (AttributeError, ValidationError) as e:
            raise ProviderUnreachableError(
                "Malformed getTokenLargestAccounts response",
                {"error": str(e)}
            ) from e

    async def resolve_owner(self, token_account: str) -> str:
        """Wallet that owns `token_account`."""
        result = await self._call(
            "getAccountInfo",
            [token_account, {"encoding": "jsonParsed"}]
        )
        value = (result or {}).get("value") if isinstance(result, dict) else None
        if not value:
            raise OwnerResolutionError(token_account, "account not found")

        data = value.get("data")
        owner = None
        if isinstance(data, dict):
            owner = data.get("parsed", {}).get("info", {}).get("owner")
        if not owner:
            raise OwnerResolutionError(token_account, "account is not a parsed token account")
        return owner

    async def _call(self, method: str, params: List[Any]) -> Any:
        if not self.rpc_url:
            raise ConfigurationError("HELIUS_API_KEY or HELIUS_RPC_URL is not configured")

        session = await self._get_session()
        body = {"jsonrpc": "2.0", "id": method, "method": method, "params": params}

        try:
            async with session.post(self.rpc_url, json=body) as response:
                if response.status == 429:
                    raise RateLimitError(f"{method} rate limited", {"status": 429})
                if response.status != 200:
                    raise ProviderUnreachableError(
                        f"{method} returned HTTP {response.status}",
                        {"status": response.status}
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderUnreachableError(f"{method} request failed: {e}") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = str(error.get("message", error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if code == 429 or _is_rate_limited(message):
                raise RateLimitError(f"{method} rate limited: {message}")
            raise ProviderUnreachableError(f"{method} error: {message}", {"code": code})

        return data.get("result") if isinstance(data, dict) else None
