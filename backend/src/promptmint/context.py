"""Application context: the object graph shared by the API, CLI and tests.

Built once at start-up and handed to every consumer; nothing here is a
module-level singleton, so tests construct isolated contexts freely.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from promptmint.core.config import Settings
from promptmint.core.controller import AppStateController
from promptmint.core.persistence import StatePersistence
from promptmint.errors import now_ms
from promptmint.interfaces import (
    DurableStorage,
    ImageGenerationService,
    NetworkMonitor,
    WalletProvider,
)
from promptmint.orchestrators.generation import GenerationOrchestrator
from promptmint.orchestrators.minting import MintingOrchestrator
from promptmint.services.blockchain.transactions import TransactionInfoReader
from promptmint.services.blockchain.wallet import LocalKeyWallet
from promptmint.services.generation_api import HttpGenerationClient
from promptmint.services.image_generation.pipeline import ImageGenerationPipeline
from promptmint.services.image_generation.replicate_client import ReplicateClient
from promptmint.services.ipfs.pinata_client import PinataClient
from promptmint.services.network import HttpNetworkMonitor, StaticNetworkMonitor
from promptmint.storage import SqlStorage

logger = structlog.get_logger(__name__)


def build_pipeline(settings: Settings) -> ImageGenerationPipeline:
    """Server-side generation pipeline from settings."""
    return ImageGenerationPipeline(
        ReplicateClient(settings.replicate_api_token, settings.replicate_model_version),
        PinataClient(settings.pinata_jwt, settings.pinata_gateway),
    )


def build_generation_service(settings: Settings) -> ImageGenerationService:
    """In-process pipeline when provider secrets are present, else the HTTP API."""
    if settings.replicate_api_token and settings.pinata_jwt:
        return build_pipeline(settings)
    return HttpGenerationClient(settings.api_base_url, settings.generation_timeout_seconds)


def build_network_monitor(settings: Settings) -> NetworkMonitor:
    if not settings.health_check_url:
        return StaticNetworkMonitor(True)
    return HttpNetworkMonitor(settings.health_check_url, settings.network_check_timeout_seconds)


def build_wallet(settings: Settings) -> LocalKeyWallet:
    return LocalKeyWallet(
        private_key=settings.wallet_private_key or None,
        rpc_urls={settings.chain_id: settings.rpc_url},
        default_chain_id=settings.chain_id,
        gas_buffer=settings.gas_buffer,
        transaction_timeout=settings.transaction_timeout_seconds,
    )


@dataclass
class AppContext:
    settings: Settings
    controller: AppStateController
    persistence: StatePersistence
    generation: GenerationOrchestrator
    minting: MintingOrchestrator
    wallet: WalletProvider
    transactions: TransactionInfoReader
    _detach: Optional[Callable[[], None]] = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        settings: Settings,
        storage: Optional[DurableStorage] = None,
        service: Optional[ImageGenerationService] = None,
        wallet: Optional[WalletProvider] = None,
        network: Optional[NetworkMonitor] = None,
        transactions: Optional[TransactionInfoReader] = None,
        clock: Callable[[], int] = now_ms,
    ) -> "AppContext":
        """Wire the controller, persistence and orchestrators.

        Any collaborator left as None is built from ``settings``. The stored
        snapshot is restored before the context is returned.
        """
        storage = storage if storage is not None else SqlStorage(settings.state_storage_url)
        service = service if service is not None else build_generation_service(settings)
        wallet = wallet if wallet is not None else build_wallet(settings)
        network = network if network is not None else build_network_monitor(settings)
        if transactions is None:
            transactions = TransactionInfoReader(settings.rpc_url)

        controller = AppStateController(clock=clock, history_limit=settings.history_limit)
        persistence = StatePersistence(
            storage,
            key=settings.state_storage_key,
            max_age_ms=settings.state_max_age_seconds * 1000,
            clock=clock,
        )
        detach = persistence.attach(controller)

        generation = GenerationOrchestrator(
            controller,
            service,
            network,
            retry_config=settings.generation_retry,
            progress_interval=settings.progress_tick_seconds,
        )
        minting = MintingOrchestrator(
            controller,
            wallet,
            network,
            contract_address=settings.promptmint_contract_address,
            expected_chain_id=settings.chain_id,
            explorer_url=settings.explorer_url,
            retry_config=settings.minting_retry,
        )

        logger.debug(
            "context.built",
            service=type(service).__name__,
            wallet=type(wallet).__name__,
            chain_id=settings.chain_id,
        )

        return cls(
            settings=settings,
            controller=controller,
            persistence=persistence,
            generation=generation,
            minting=minting,
            wallet=wallet,
            transactions=transactions,
            _detach=detach,
        )

    def close(self) -> None:
        """Stop mirroring state into storage."""
        if self._detach is not None:
            self._detach()
            self._detach = None
