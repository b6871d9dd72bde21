"""
Loading the operator's signing keypair from configuration.
"""

import json
from typing import Optional

import base58
import structlog
from solders.keypair import Keypair

from buyback.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

SECRET_KEY_LENGTH = 64


def _from_base58(raw: str) -> Optional[bytes]:
    try:
        return base58.b58decode(raw)
    except ValueError:
        return None


def _from_json_array(raw: str) -> Optional[bytes]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, list):
        return None
    try:
        return bytes(parsed)
    except (TypeError, ValueError):
        return None


def load_signing_keypair(raw: Optional[str]) -> Keypair:
    """
    Decode a 64-byte secret key given either as base58 or as a JSON array
    of byte values (the Solana CLI keyfile format).

    Raises:
        ConfigurationError: if the key is missing or in neither format
    """
    if not raw or not raw.strip():
        raise ConfigurationError("DEV_WALLET_PRIVATE_KEY is not configured")

    raw = raw.strip()
    secret = _from_json_array(raw) if raw.startswith("[") else _from_base58(raw)

    if secret is None or len(secret) != SECRET_KEY_LENGTH:
        raise ConfigurationError(
            "DEV_WALLET_PRIVATE_KEY must be a base58 string or JSON byte array "
            f"encoding a {SECRET_KEY_LENGTH}-byte secret key"
        )

    try:
        keypair = Keypair.from_bytes(secret)
    except ValueError as e:
        raise ConfigurationError(f"Invalid signing key: {e}") from e

    logger.info("Signing keypair loaded", operator=str(keypair.pubkey()))
    return keypair
