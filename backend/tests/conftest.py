"""pytest fixtures for PromptMint tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- clock: Controllable epoch-millisecond clock
- controller: Fresh AppStateController on the test clock
- fast_retry: Zero-delay retry policies
- generation_service / wallet / network: In-memory collaborator doubles
- sql_storage: SqlStorage over an in-memory SQLite database
"""

import os

os.environ.setdefault("APP_ENV", "test")

from typing import Any, Optional, Sequence, Union  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import create_engine  # noqa: E402

from promptmint.core.controller import AppStateController  # noqa: E402
from promptmint.core.retry import RetryConfig  # noqa: E402
from promptmint.models import (  # noqa: E402
    GenerationResult,
    TransactionReceipt,
    WalletConnector,
)
from promptmint.services.exceptions import WalletNotConnectedError  # noqa: E402
from promptmint.services.network import StaticNetworkMonitor  # noqa: E402
from promptmint.storage import SqlStorage  # noqa: E402

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CHAIN_ID = 10143
EXPLORER_URL = "https://testnet.monadexplorer.com"


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeGenerationService:
    """Returns or raises the scripted outcomes in order, one per call."""

    def __init__(self, outcomes: Sequence[Union[GenerationResult, BaseException]] = ()):
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    async def generate(self, prompt: str) -> GenerationResult:
        self.calls.append(prompt)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeWallet:
    """WalletProvider double with scripted submission and receipt outcomes."""

    def __init__(
        self,
        connected: bool = True,
        chain_id: int = CHAIN_ID,
        tx_hash: str = "0xabc",
        receipt: Optional[TransactionReceipt] = None,
    ):
        self._connected = connected
        self._chain_id = chain_id
        self.tx_hash = tx_hash
        self.receipt = receipt or TransactionReceipt(
            tx_hash=tx_hash, success=True, block_number=1, confirmations=1
        )
        self.submit_errors: list[BaseException] = []
        self.receipt_error: Optional[BaseException] = None
        self.submissions: list[tuple[str, str, list[Any]]] = []
        self.on_submit = None

    @property
    def address(self) -> Optional[str]:
        return "0x000000000000000000000000000000000000dEaD" if self._connected else None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id if self._connected else None

    @property
    def connectors(self) -> Sequence[WalletConnector]:
        return (WalletConnector(id="fake", name="Fake wallet"),)

    async def connect(self, connector_id: Optional[str] = None) -> str:
        self._connected = True
        return self.address

    async def disconnect(self) -> None:
        self._connected = False

    async def switch_chain(self, chain_id: int) -> None:
        self._chain_id = chain_id

    async def submit_transaction(
        self, contract_address: str, function_name: str, args: Sequence[Any]
    ) -> str:
        if not self._connected:
            raise WalletNotConnectedError("Please connect your wallet first.")
        self.submissions.append((contract_address, function_name, list(args)))
        if self.on_submit is not None:
            self.on_submit()
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        return self.tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        if self.receipt_error is not None:
            raise self.receipt_error
        return self.receipt


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller(clock) -> AppStateController:
    return AppStateController(clock=clock)


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Generation-shaped policy without any waiting."""
    return RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def fast_mint_retry() -> RetryConfig:
    return RetryConfig(max_retries=1, base_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def generation_result() -> GenerationResult:
    return GenerationResult(image_url="https://x/img.jpg", token_uri="ipfs://h/metadata.json")


@pytest.fixture
def generation_service(generation_result) -> FakeGenerationService:
    return FakeGenerationService([generation_result])


@pytest.fixture
def make_generation_service():
    """Factory for services with scripted outcomes."""
    return FakeGenerationService


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def make_wallet():
    return FakeWallet


@pytest.fixture
def network() -> StaticNetworkMonitor:
    return StaticNetworkMonitor(True)


@pytest.fixture
def sql_storage() -> SqlStorage:
    """SqlStorage over a single shared in-memory SQLite connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlStorage(engine=engine)
