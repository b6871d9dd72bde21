"""
Shared fixtures: a throwaway SQLite database per test, settings tuned for
fast runs, and the in-process fakes from `fakes.py`.
"""

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from buyback.core.config import Settings
from buyback.core.database import Database
from buyback.repositories import Repositories

from .fakes import FakeChainData, FakeLedger, FakeVenue, RecordingSleep


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        _env_file=None,
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path}/buyback.db",
        token_mint=str(Pubkey.new_unique()),
        helius_api_key="test-key",
        scheduler_enabled=False,
        distribution_transfer_delay=0.0,
        owner_lookup_delay=0.0,
        owner_batch_delay=0.0,
        owner_lookup_base_delay=0.5,
        slippage_retry_base_delay=2.0,
        top_holders_count=3,
        holder_candidate_headroom=2,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def settings_factory(tmp_path):
    """Settings with per-test overrides."""
    return lambda **overrides: make_settings(tmp_path, **overrides)


@pytest.fixture
async def database(settings):
    """Fresh schema for every test."""
    db = Database.from_settings(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def repos(database):
    return Repositories.create(database)


@pytest.fixture
def signer():
    return Keypair()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def venue():
    return FakeVenue()


@pytest.fixture
def chain_data():
    return FakeChainData()


@pytest.fixture
def sleep():
    return RecordingSleep()
