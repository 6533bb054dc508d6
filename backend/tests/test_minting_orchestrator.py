"""Minting orchestrator tests.

Covers precondition aborts, the preparing → signing → mining → completed
flow, idempotent transaction event handlers and retry semantics.
"""

import asyncio

import pytest
from web3 import Web3

from promptmint.models import (
    MINTING_RUNNING,
    ErrorKind,
    GenerationResult,
    MintingStatus,
    OperationStatus,
    OperationType,
    TransactionReceipt,
)
from promptmint.orchestrators import GenerationOrchestrator, MintingOrchestrator, prompt_hash
from promptmint.orchestrators.minting import PROMPT_ALREADY_MINTED_MESSAGE
from promptmint.services.blockchain.receipts import TRANSFER_TOPIC
from promptmint.services.exceptions import (
    TransactionRevertError,
    TransactionSubmissionError,
    TransactionTimeoutError,
)
from promptmint.services.network import StaticNetworkMonitor

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CHAIN_ID = 10143
EXPLORER_URL = "https://testnet.monadexplorer.com"

PROMPT = "A cat on a windowsill"
IMAGE_URL = "https://x/img.jpg"
TOKEN_URI = "ipfs://h/metadata.json"


def transfer_receipt(tx_hash: str = "0xabc", token_id: int = 7) -> TransactionReceipt:
    return TransactionReceipt(
        tx_hash=tx_hash,
        success=True,
        block_number=12,
        confirmations=1,
        logs=(
            {
                "address": CONTRACT_ADDRESS,
                "topics": [
                    TRANSFER_TOPIC,
                    "0x" + "00" * 32,
                    "0x" + "00" * 12 + "de" * 20,
                    "0x" + format(token_id, "064x"),
                ],
                "data": "0x",
            },
        ),
    )


@pytest.fixture
def generated(controller):
    """Controller holding a completed generation."""
    controller.set_prompt(PROMPT)
    controller.start_generation()
    controller.complete_generation(IMAGE_URL, TOKEN_URI)
    return controller


@pytest.fixture
def make_orchestrator(fast_mint_retry):
    def factory(controller, wallet, network=None):
        return MintingOrchestrator(
            controller,
            wallet,
            network or StaticNetworkMonitor(True),
            contract_address=CONTRACT_ADDRESS,
            expected_chain_id=CHAIN_ID,
            explorer_url=EXPLORER_URL,
            retry_config=fast_mint_retry,
        )

    return factory


def minting_entries(controller):
    return [
        item for item in controller.state.operation_history if item.type == OperationType.MINTING
    ]


@pytest.mark.asyncio
async def test_successful_mint(generated, make_wallet, make_orchestrator):
    """preparing → signing → mining → completed with tx hash 0xabc."""
    wallet = make_wallet(tx_hash="0xabc", receipt=transfer_receipt("0xabc", token_id=7))
    orchestrator = make_orchestrator(generated, wallet)
    statuses = []

    def record(state):
        status = state.minting_state.status
        if not statuses or statuses[-1] != status:
            statuses.append(status)

    generated.subscribe(record)

    tx_hash = await orchestrator.mint()

    assert tx_hash == "0xabc"
    assert statuses == [
        MintingStatus.IDLE,
        MintingStatus.PREPARING,
        MintingStatus.SIGNING,
        MintingStatus.MINING,
        MintingStatus.COMPLETED,
    ]
    minting = generated.state.minting_state
    assert minting.status == MintingStatus.COMPLETED
    assert minting.tx_hash == "0xabc"
    assert generated.state.error is None
    assert not generated.can_mint

    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.SUCCESS
    assert entry.prompt == PROMPT
    assert entry.result.tx_hash == "0xabc"
    assert entry.result.explorer_url == f"{EXPLORER_URL}/tx/0xabc"
    assert entry.result.token_id == "7"
    assert entry.result.image_url == IMAGE_URL
    assert entry.result.token_uri == TOKEN_URI

    assert wallet.submissions == [
        (CONTRACT_ADDRESS, "mint", [prompt_hash(PROMPT), TOKEN_URI]),
    ]


@pytest.mark.asyncio
async def test_mint_completes_without_token_id(generated, make_wallet, make_orchestrator):
    receipt = TransactionReceipt(tx_hash="0xabc", success=True, block_number=3, confirmations=1)
    orchestrator = make_orchestrator(generated, make_wallet(receipt=receipt))

    assert await orchestrator.mint() == "0xabc"

    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.SUCCESS
    assert entry.result.token_id is None


@pytest.mark.asyncio
async def test_disconnected_wallet_aborts_before_ledger_write(
    generated, make_wallet, make_orchestrator
):
    wallet = make_wallet(connected=False)
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() is None

    state = generated.state
    assert state.error.kind == ErrorKind.WALLET_CONNECTION
    assert state.error.retryable is False
    assert state.minting_state.status == MintingStatus.ERROR
    assert minting_entries(generated) == []
    assert wallet.submissions == []


@pytest.mark.asyncio
async def test_wrong_chain_aborts(generated, make_wallet, make_orchestrator):
    orchestrator = make_orchestrator(generated, make_wallet(chain_id=1))

    assert await orchestrator.mint() is None

    assert generated.state.error.kind == ErrorKind.NETWORK_MISMATCH
    assert str(CHAIN_ID) in generated.state.error.message
    assert minting_entries(generated) == []


@pytest.mark.asyncio
async def test_mint_requires_completed_generation(controller, wallet, make_orchestrator):
    controller.set_prompt(PROMPT)
    orchestrator = make_orchestrator(controller, wallet)

    assert await orchestrator.mint() is None

    assert controller.state.error.kind == ErrorKind.VALIDATION_ERROR
    assert minting_entries(controller) == []
    assert wallet.submissions == []


@pytest.mark.asyncio
async def test_offline_aborts_as_retryable(generated, wallet, make_orchestrator):
    orchestrator = make_orchestrator(generated, wallet, network=StaticNetworkMonitor(False))

    assert await orchestrator.mint() is None

    assert generated.state.error.kind == ErrorKind.NETWORK_ERROR
    assert generated.state.error.retryable is True
    assert minting_entries(generated) == []


@pytest.mark.asyncio
async def test_prompt_already_used_revert(generated, wallet, make_orchestrator):
    wallet.submit_errors = [TransactionRevertError("Execution reverted: PromptAlreadyUsed")]
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() is None

    state = generated.state
    assert state.error.kind == ErrorKind.PROMPT_ALREADY_USED
    assert state.error.message == PROMPT_ALREADY_MINTED_MESSAGE
    assert state.minting_state.status == MintingStatus.ERROR
    assert len(wallet.submissions) == 1

    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.ERROR
    assert entry.error == PROMPT_ALREADY_MINTED_MESSAGE


@pytest.mark.asyncio
async def test_user_rejection_is_not_retried(generated, wallet, make_orchestrator):
    wallet.submit_errors = [RuntimeError("User rejected the request.")]
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() is None

    assert generated.state.error.kind == ErrorKind.USER_REJECTED
    assert len(wallet.submissions) == 1


@pytest.mark.asyncio
async def test_transient_submission_failure_retried_once(generated, wallet, make_orchestrator):
    wallet.submit_errors = [TransactionSubmissionError("Failed to fetch")]
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() == "0xabc"

    assert len(wallet.submissions) == 2
    assert generated.state.minting_state.status == MintingStatus.COMPLETED


@pytest.mark.asyncio
async def test_transient_submission_failure_budget_is_one_retry(
    generated, wallet, make_orchestrator
):
    wallet.submit_errors = [TransactionSubmissionError("Failed to fetch")] * 3
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() is None

    assert len(wallet.submissions) == 2
    assert generated.state.error.kind == ErrorKind.NETWORK_ERROR


@pytest.mark.asyncio
async def test_reverted_receipt_fails_mint(generated, make_wallet, make_orchestrator):
    receipt = TransactionReceipt(tx_hash="0xabc", success=False, block_number=5)
    orchestrator = make_orchestrator(generated, make_wallet(receipt=receipt))

    assert await orchestrator.mint() is None

    state = generated.state
    assert state.error.kind == ErrorKind.MINTING_FAILED
    assert state.minting_state.status == MintingStatus.ERROR

    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.ERROR
    assert entry.result.tx_hash == "0xabc"


@pytest.mark.asyncio
async def test_receipt_timeout_fails_mint(generated, wallet, make_orchestrator):
    wallet.receipt_error = TransactionTimeoutError("Transaction confirmation timeout")
    orchestrator = make_orchestrator(generated, wallet)

    assert await orchestrator.mint() is None

    assert generated.state.error.kind == ErrorKind.TIMEOUT_ERROR
    assert minting_entries(generated)[0].status == OperationStatus.ERROR


@pytest.mark.asyncio
async def test_duplicate_events_after_completion_are_ignored(
    generated, make_wallet, make_orchestrator
):
    orchestrator = make_orchestrator(generated, make_wallet(receipt=transfer_receipt()))
    await orchestrator.mint()
    settled = generated.state

    orchestrator.on_transaction_submitted("0xdef")
    orchestrator.on_transaction_settled(transfer_receipt("0xdef", token_id=99))
    orchestrator.on_transaction_failed(RuntimeError("late failure"))

    assert generated.state == settled


@pytest.mark.asyncio
async def test_early_external_submission_signal(generated, wallet, make_orchestrator):
    """A watcher reporting the tx id first leaves a single mining transition."""
    orchestrator = make_orchestrator(generated, wallet)
    wallet.on_submit = lambda: orchestrator.on_transaction_submitted("0xabc")

    assert await orchestrator.mint() == "0xabc"

    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.SUCCESS
    assert entry.result.tx_hash == "0xabc"


@pytest.mark.asyncio
async def test_second_mint_of_same_image_is_ignored(generated, wallet, make_orchestrator):
    orchestrator = make_orchestrator(generated, wallet)
    await orchestrator.mint()

    assert await orchestrator.mint() is None

    assert len(wallet.submissions) == 1
    assert len(minting_entries(generated)) == 1


@pytest.mark.asyncio
async def test_mint_ignored_while_generating(controller, wallet, make_orchestrator):
    controller.set_prompt(PROMPT)
    controller.start_generation()
    orchestrator = make_orchestrator(controller, wallet)

    assert await orchestrator.mint() is None

    assert controller.state.error is None
    assert wallet.submissions == []


@pytest.mark.asyncio
async def test_retry_restarts_from_preparing(generated, wallet, make_orchestrator):
    wallet.submit_errors = [RuntimeError("User denied transaction signature")]
    orchestrator = make_orchestrator(generated, wallet)
    await orchestrator.mint()
    assert generated.state.minting_state.status == MintingStatus.ERROR

    statuses = []
    generated.subscribe(lambda state: statuses.append(state.minting_state.status))

    assert await orchestrator.retry() == "0xabc"

    running = [status for status in statuses if status in MINTING_RUNNING]
    assert running[0] == MintingStatus.PREPARING
    assert generated.state.error is None
    assert [entry.status for entry in minting_entries(generated)] == [
        OperationStatus.SUCCESS,
        OperationStatus.ERROR,
    ]


def test_settlement_from_fresh_orchestrator_updates_pending_entry(
    generated, wallet, make_orchestrator
):
    operation_id = generated.add_operation(OperationType.MINTING, PROMPT)
    generated.start_minting()
    generated.update_minting_status(MintingStatus.SIGNING)
    generated.update_minting_status(MintingStatus.MINING, "0xabc")

    make_orchestrator(generated, wallet).on_transaction_settled(transfer_receipt())

    entry = next(item for item in generated.state.operation_history if item.id == operation_id)
    assert entry.status == OperationStatus.SUCCESS
    assert entry.result.token_id == "7"


class TestPromptHash:
    def test_stable_and_trimmed(self):
        assert prompt_hash(PROMPT) == prompt_hash(f"  {PROMPT}\n")

    def test_is_bytes32_hex(self):
        value = prompt_hash(PROMPT)

        assert value.startswith("0x")
        assert len(value) == 66

    def test_keccak_of_utf8_text(self):
        assert prompt_hash("café") == Web3.to_hex(Web3.keccak("café".encode("utf-8")))

    def test_distinct_prompts_differ(self):
        assert prompt_hash("A cat") != prompt_hash("A dog")


class YieldingNetworkMonitor:
    """Online, but suspends the caller like a real reachability check."""

    async def is_online(self) -> bool:
        await asyncio.sleep(0)
        return True


@pytest.mark.asyncio
async def test_concurrent_mint_calls_submit_once(generated, wallet, make_orchestrator):
    orchestrator = make_orchestrator(generated, wallet, network=YieldingNetworkMonitor())

    results = await asyncio.gather(orchestrator.mint(), orchestrator.mint())

    assert results.count(None) == 1
    assert "0xabc" in results
    assert len(wallet.submissions) == 1
    [entry] = minting_entries(generated)
    assert entry.status == OperationStatus.SUCCESS


@pytest.mark.asyncio
async def test_each_new_image_can_be_minted(
    generated, make_wallet, make_orchestrator, make_generation_service
):
    wallet = make_wallet()
    minting = make_orchestrator(generated, wallet)
    second = GenerationResult(image_url="https://x/dog.jpg", token_uri="ipfs://dog/metadata.json")
    generation = GenerationOrchestrator(
        generated,
        make_generation_service([second]),
        StaticNetworkMonitor(True),
        progress_interval=60.0,
    )
    assert await minting.mint() == "0xabc"

    generated.set_prompt("A dog on a skateboard")
    assert await generation.generate() == second
    assert generated.can_mint is True

    assert await minting.mint() == "0xabc"

    assert wallet.submissions[-1] == (
        CONTRACT_ADDRESS,
        "mint",
        [prompt_hash("A dog on a skateboard"), "ipfs://dog/metadata.json"],
    )
    entries = minting_entries(generated)
    assert [entry.status for entry in entries] == [OperationStatus.SUCCESS] * 2
    assert entries[0].prompt == "A dog on a skateboard"
