"""NFT minting orchestrator.

Drives idle → preparing → signing → mining → completed | error.

Preconditions (wallet connected, expected chain, completed generation,
network reachable) are checked before any ledger write. After submission the
workflow is driven by two externally signalled events, each checked against
the current status so duplicates are ignored:

- ``on_transaction_submitted(tx_hash)`` while signing → mining
- ``on_transaction_settled(receipt)`` while mining → completed
- ``on_transaction_failed(error)`` while signing/mining → error

A retry always restarts from preparing; a previous attempt's signing or
mining context is never resumed.
"""

import asyncio
import time
from typing import Any, Optional

import structlog
from web3 import Web3

from promptmint.core.controller import AppStateController
from promptmint.core.ledger import find_pending
from promptmint.core.retry import MINTING_RETRY_CONFIG, RetryConfig, with_retry
from promptmint.errors import AppError, classify
from promptmint.interfaces import NetworkMonitor, WalletProvider
from promptmint.models import (
    ErrorKind,
    MintingStatus,
    OperationResult,
    OperationStatus,
    OperationType,
    TransactionReceipt,
)
from promptmint.services.blockchain.receipts import explorer_tx_url, extract_token_id

logger = structlog.get_logger(__name__)

MINT_FUNCTION = "mint"

PROMPT_ALREADY_MINTED_MESSAGE = (
    "This prompt has already been used to mint an NFT. Please try a different prompt."
)


def prompt_hash(prompt: str) -> str:
    """De-duplication key for a prompt: keccak-256 of the trimmed UTF-8 text.

    The contract rejects a second mint with the same hash, so this must stay
    stable for a given prompt.
    """
    return Web3.to_hex(Web3.keccak(text=prompt.strip()))


class MintingOrchestrator:
    """Runs the minting workflow against an AppStateController."""

    def __init__(
        self,
        controller: AppStateController,
        wallet: WalletProvider,
        network: NetworkMonitor,
        contract_address: str,
        expected_chain_id: int,
        explorer_url: str,
        retry_config: RetryConfig = MINTING_RETRY_CONFIG,
    ):
        self.controller = controller
        self.wallet = wallet
        self.network = network
        self.contract_address = contract_address
        self.expected_chain_id = expected_chain_id
        self.explorer_url = explorer_url
        self.retry_config = retry_config
        self._operation_id: Optional[str] = None

    def _check_preconditions(self) -> Optional[AppError]:
        if not self.wallet.is_connected:
            return AppError(
                ErrorKind.WALLET_CONNECTION, "Please connect your wallet to mint.", False
            )

        if self.wallet.chain_id != self.expected_chain_id:
            return AppError(
                ErrorKind.NETWORK_MISMATCH,
                f"Please switch your wallet to chain {self.expected_chain_id}.",
                False,
                {"current_chain_id": self.wallet.chain_id},
            )

        state = self.controller.state
        if not state.token_uri or not state.generated_image or not state.prompt.strip():
            return AppError(
                ErrorKind.VALIDATION_ERROR, "Generate an image before minting.", False
            )

        return None

    def _ready_to_mint(self) -> bool:
        controller = self.controller

        if controller.is_minting or controller.is_generating:
            logger.info(
                "minting.ignored",
                reason="operation_in_progress",
                minting_status=controller.state.minting_state.status.value,
            )
            return False

        if controller.state.minting_state.status == MintingStatus.COMPLETED:
            logger.info("minting.ignored", reason="already_minted")
            return False

        precondition_error = self._check_preconditions()
        if precondition_error is not None:
            controller.fail_minting(precondition_error)
            return False

        return True

    async def mint(self) -> Optional[str]:
        """Mint the current generated image.

        Returns:
            Transaction hash if the mint completed, otherwise None
        """
        controller = self.controller

        if not self._ready_to_mint():
            return None

        if not await self.network.is_online():
            controller.fail_minting(
                AppError(
                    ErrorKind.NETWORK_ERROR,
                    "No internet connection. Please check your network and try again.",
                    retryable=True,
                )
            )
            return None

        # Another call may have started while the network check was pending
        if not self._ready_to_mint():
            return None

        prompt = controller.state.prompt.strip()
        token_uri = controller.state.token_uri

        self._operation_id = controller.add_operation(OperationType.MINTING, prompt)
        controller.start_minting()

        start_time = time.time()
        logger.info("minting.started", operation_id=self._operation_id)

        try:
            promptmint_hash = prompt_hash(prompt)
            logger.debug("minting.prompt_hashed", prompt_hash=promptmint_hash)

            controller.update_minting_status(MintingStatus.SIGNING)

            tx_hash = await with_retry(
                lambda: self.wallet.submit_transaction(
                    self.contract_address, MINT_FUNCTION, [promptmint_hash, token_uri]
                ),
                self.retry_config,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.on_transaction_failed(e)
            return None

        self.on_transaction_submitted(tx_hash)

        try:
            receipt = await self.wallet.wait_for_receipt(tx_hash)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.on_transaction_failed(e)
            return None

        self.on_transaction_settled(receipt)

        if controller.state.minting_state.status != MintingStatus.COMPLETED:
            return None

        logger.info(
            "minting.succeeded",
            operation_id=self._operation_id,
            tx_hash=tx_hash,
            duration_seconds=time.time() - start_time,
        )
        return tx_hash

    async def retry(self) -> Optional[str]:
        """Clear the previous error and mint again from preparing."""
        self.controller.clear_error()
        if self.controller.state.minting_state.status == MintingStatus.ERROR:
            self.controller.reset_minting()
        return await self.mint()

    def _ledger_id(self) -> Optional[str]:
        if self._operation_id is not None:
            return self._operation_id
        pending = find_pending(self.controller.state.operation_history, OperationType.MINTING)
        return pending.id if pending else None

    def on_transaction_submitted(self, tx_hash: str) -> None:
        """Transaction id received: signing → mining."""
        if self.controller.state.minting_state.status != MintingStatus.SIGNING:
            logger.debug(
                "minting.tx_submitted_ignored",
                tx_hash=tx_hash,
                status=self.controller.state.minting_state.status.value,
            )
            return

        explorer = explorer_tx_url(self.explorer_url, tx_hash)
        self.controller.update_minting_status(MintingStatus.MINING, tx_hash)

        operation_id = self._ledger_id()
        if operation_id:
            self.controller.update_operation(
                operation_id, result=OperationResult(tx_hash=tx_hash, explorer_url=explorer)
            )

        logger.info("minting.tx_submitted", tx_hash=tx_hash, explorer_url=explorer)

    def on_transaction_settled(self, receipt: TransactionReceipt) -> None:
        """Receipt received while mining: completed, or failed on revert."""
        state = self.controller.state.minting_state
        if state.status != MintingStatus.MINING:
            logger.debug(
                "minting.tx_settled_ignored", tx_hash=receipt.tx_hash, status=state.status.value
            )
            return

        if not receipt.success:
            self.on_transaction_failed(
                AppError(
                    ErrorKind.MINTING_FAILED,
                    "Transaction reverted on-chain.",
                    False,
                    {"tx_hash": receipt.tx_hash, "block_number": receipt.block_number},
                )
            )
            return

        tx_hash = state.tx_hash or receipt.tx_hash
        token_id = extract_token_id(receipt)

        self.controller.complete_minting(tx_hash)

        operation_id = self._ledger_id()
        if operation_id:
            self.controller.update_operation(
                operation_id,
                status=OperationStatus.SUCCESS,
                result=OperationResult(
                    image_url=self.controller.state.generated_image,
                    token_uri=self.controller.state.token_uri,
                    tx_hash=tx_hash,
                    explorer_url=explorer_tx_url(self.explorer_url, tx_hash),
                    token_id=token_id,
                ),
            )
        self._operation_id = None

        logger.info(
            "minting.tx_confirmed",
            tx_hash=tx_hash,
            block_number=receipt.block_number,
            confirmations=receipt.confirmations,
            token_id=token_id,
        )

    def on_transaction_failed(self, failure: Any) -> None:
        """Wallet rejection, revert or submission error while signing/mining."""
        status = self.controller.state.minting_state.status
        if status not in (MintingStatus.PREPARING, MintingStatus.SIGNING, MintingStatus.MINING):
            logger.debug("minting.tx_failed_ignored", status=status.value)
            return

        error = classify(failure)
        if error.kind == ErrorKind.PROMPT_ALREADY_USED:
            error = AppError(
                ErrorKind.PROMPT_ALREADY_USED, PROMPT_ALREADY_MINTED_MESSAGE, False, error.details
            )

        error_state = self.controller.fail_minting(error, operation_id=self._operation_id)

        operation_id = self._ledger_id()
        if operation_id:
            self.controller.update_operation(
                operation_id, status=OperationStatus.ERROR, error=error_state.message
            )
        self._operation_id = None

        logger.error(
            "minting.failed",
            operation_id=operation_id,
            error_kind=error.kind.value,
            error_message=error.message,
            previous_status=status.value,
        )
