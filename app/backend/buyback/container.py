"""
Explicitly constructed service graph.

Everything a cycle touches (database, RPC and HTTP clients, the signing
keypair) is built here once and passed down; nothing creates connections
lazily on first use.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from solders.keypair import Keypair

from buyback.auth.signing_key import load_signing_keypair
from buyback.core.config import Settings
from buyback.core.database import Database
from buyback.core.exceptions import ConfigurationError
from buyback.pipeline import (
    CycleOrchestrator,
    Distributor,
    FundsSource,
    HolderRanker,
    ValueConverter,
)
from buyback.pipeline.types import ChainDataProvider, ClaimVenue, Ledger, SwapVenue
from buyback.repositories import Repositories
from buyback.scheduler import CycleScheduler
from buyback.services.helius_client import HeliusClient
from buyback.services.pumpportal_client import PumpPortalClient
from buyback.services.retry import SleepFn
from buyback.services.solana_ledger import SolanaLedger


logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    repositories: Repositories
    ledger: Ledger
    claim_venue: ClaimVenue
    swap_venue: SwapVenue
    chain_data: ChainDataProvider
    orchestrator: CycleOrchestrator
    scheduler: CycleScheduler
    signer: Optional[Keypair] = None

    async def aclose(self) -> None:
        await self.scheduler.stop()
        seen = set()
        for client in (self.ledger, self.claim_venue, self.swap_venue, self.chain_data):
            if id(client) in seen:
                continue
            seen.add(id(client))
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        await self.database.close()


def build_container(
    config: Settings,
    database: Optional[Database] = None,
    ledger: Optional[Ledger] = None,
    claim_venue: Optional[ClaimVenue] = None,
    swap_venue: Optional[SwapVenue] = None,
    chain_data: Optional[ChainDataProvider] = None,
    signer: Optional[Keypair] = None,
    sleep: SleepFn = asyncio.sleep,
) -> ServiceContainer:
    """
    Wire the whole service graph. Collaborators that are not given are
    built from `config`; tests pass fakes instead.

    A missing or malformed signing key does not stop the app from serving
    read routes; it surfaces as a ConfigurationError when a cycle runs.
    """
    database = database or Database.from_settings(config)
    repositories = Repositories.create(database)

    ledger = ledger or SolanaLedger.from_settings(config)
    if claim_venue is None or swap_venue is None:
        venue = PumpPortalClient.from_settings(config)
        claim_venue = claim_venue or venue
        swap_venue = swap_venue or venue
    chain_data = chain_data or HeliusClient.from_settings(config)

    signer_error = None
    if signer is None:
        try:
            signer = load_signing_keypair(config.dev_wallet_private_key)
        except ConfigurationError as e:
            signer_error = e.message
            logger.warning("Signing key unavailable, cycles will not run", error=e.message)

    orchestrator = CycleOrchestrator(
        funds_source=FundsSource(ledger, claim_venue, config),
        converter=ValueConverter(ledger, swap_venue, config, sleep=sleep),
        ranker=HolderRanker(chain_data, config, sleep=sleep),
        distributor=Distributor(ledger, config, sleep=sleep),
        repositories=repositories,
        config=config,
        signer=signer,
        signer_error=signer_error,
    )
    scheduler = CycleScheduler(orchestrator, repositories.config, config)

    return ServiceContainer(
        settings=config,
        database=database,
        repositories=repositories,
        ledger=ledger,
        claim_venue=claim_venue,
        swap_venue=swap_venue,
        chain_data=chain_data,
        orchestrator=orchestrator,
        scheduler=scheduler,
        signer=signer,
    )
