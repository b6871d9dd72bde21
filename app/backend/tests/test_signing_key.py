"""
Test loading the operator keypair in both supported formats.
"""

import json

import base58
import pytest
from solders.keypair import Keypair

from buyback.auth.cron_auth import is_valid_secret
from buyback.auth.signing_key import load_signing_keypair
from buyback.core.exceptions import ConfigurationError


def test_base58_key():
    keypair = Keypair()
    encoded = base58.b58encode(bytes(keypair)).decode()

    assert load_signing_keypair(encoded).pubkey() == keypair.pubkey()


def test_json_array_key():
    """The Solana CLI keyfile format."""
    keypair = Keypair()

    loaded = load_signing_keypair(json.dumps(list(bytes(keypair))))

    assert loaded.pubkey() == keypair.pubkey()


@pytest.mark.parametrize("raw", [None, "", "   ", "not-base58-0OIl", "[1, 2, 3]", "[\"a\"]", "3yZe7d"])
def test_invalid_keys(raw):
    with pytest.raises(ConfigurationError):
        load_signing_keypair(raw)


def test_cron_secret_comparison():
    assert is_valid_secret(None, None)
    assert is_valid_secret("s3cret", "s3cret")
    assert not is_valid_secret("s3cret", "wrong")
    assert not is_valid_secret("s3cret", None)
