"""Collaborator contracts consumed by the orchestration core."""

from typing import Any, Optional, Protocol, Sequence

from promptmint.models import GenerationResult, TransactionReceipt, WalletConnector


class ImageGenerationService(Protocol):
    """Submit a prompt, get an image URL and token URI.

    Failures are raised as ``ServiceError`` carrying a structured ``code``.
    """

    async def generate(self, prompt: str) -> GenerationResult: ...


class WalletProvider(Protocol):
    """Wallet and chain capability surface."""

    @property
    def address(self) -> Optional[str]: ...

    @property
    def is_connected(self) -> bool: ...

    @property
    def chain_id(self) -> Optional[int]: ...

    @property
    def connectors(self) -> Sequence[WalletConnector]: ...

    async def connect(self, connector_id: Optional[str] = None) -> str: ...

    async def disconnect(self) -> None: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    async def submit_transaction(
        self, contract_address: str, function_name: str, args: Sequence[Any]
    ) -> str: ...

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt: ...


class DurableStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class NetworkMonitor(Protocol):
    async def is_online(self) -> bool: ...
