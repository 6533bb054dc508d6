"""Local private-key wallet for minting from a server or CLI."""

import asyncio
from typing import Any, Callable, Mapping, Optional, Sequence

import structlog
from eth_account import Account
from eth_utils.abi import function_signature_to_4byte_selector
from web3 import Web3
from web3.exceptions import ContractCustomError, TimeExhausted

from promptmint.abi import get_contract_abi
from promptmint.models import TransactionReceipt, WalletConnector
from promptmint.services.blockchain.receipts import hex_string
from promptmint.services.exceptions import (
    ChainSwitchError,
    TransactionRevertError,
    TransactionSubmissionError,
    TransactionTimeoutError,
    WalletNotConnectedError,
)

logger = structlog.get_logger(__name__)

LOCAL_KEY_CONNECTOR = WalletConnector(id="local-key", name="Local private key")

# Custom errors declared by the PromptMint contract, keyed by 4-byte selector
CONTRACT_ERRORS = {
    "0x" + function_signature_to_4byte_selector(f"{name}()").hex(): name
    for name in ("PromptAlreadyUsed", "ZeroPromptHash", "EmptyTokenURI")
}


def default_web3_factory(rpc_url: str) -> Web3:
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))


def _decode_contract_error(error: Exception) -> Optional[str]:
    text = str(error).lower()
    for selector, name in CONTRACT_ERRORS.items():
        if selector in text or name.lower() in text:
            return name
    return None


class LocalKeyWallet:
    """WalletProvider that signs with a locally held private key.

    Exposes a single ``local-key`` connector. Chains are switched by picking
    another RPC endpoint from ``rpc_urls``.
    """

    def __init__(
        self,
        private_key: Optional[str],
        rpc_urls: Mapping[int, str],
        default_chain_id: int,
        gas_buffer: float = 1.2,
        transaction_timeout: int = 180,
        web3_factory: Callable[[str], Web3] = default_web3_factory,
    ):
        """
        Args:
            private_key: Signing key (0x-prefixed hex), or None if not configured
            rpc_urls: RPC endpoint per supported chain id
            default_chain_id: Chain selected on connect
            gas_buffer: Multiplier applied to gas and priority fee estimates
            transaction_timeout: Max wait time for a receipt in seconds
            web3_factory: Builds a Web3 instance for an RPC url
        """
        self._private_key = private_key
        self.rpc_urls = dict(rpc_urls)
        self.default_chain_id = default_chain_id
        self.gas_buffer = gas_buffer
        self.transaction_timeout = transaction_timeout
        self._web3_factory = web3_factory

        self._account: Optional[Any] = None
        self._chain_id: Optional[int] = None
        self._w3: Optional[Web3] = None
        self.contract_abi = get_contract_abi()

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    @property
    def is_connected(self) -> bool:
        return self._account is not None

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id if self.is_connected else None

    @property
    def connectors(self) -> Sequence[WalletConnector]:
        return (LOCAL_KEY_CONNECTOR,)

    async def connect(self, connector_id: Optional[str] = None) -> str:
        """Connect the local key and select the default chain.

        Returns:
            Checksummed account address

        Raises:
            WalletNotConnectedError: Unknown connector or no key configured
        """
        if connector_id is not None and connector_id != LOCAL_KEY_CONNECTOR.id:
            raise WalletNotConnectedError(f"Unknown wallet connector: {connector_id}")

        if not self._private_key:
            raise WalletNotConnectedError(
                "No wallet key configured. Set WALLET_PRIVATE_KEY to mint."
            )

        try:
            account = Account.from_key(self._private_key)
        except Exception as e:
            raise WalletNotConnectedError(f"Invalid wallet key: {e}") from e

        self._account = account
        self._select_chain(self.default_chain_id)

        logger.info(
            "wallet.connected",
            address=account.address,
            chain_id=self._chain_id,
            connector=LOCAL_KEY_CONNECTOR.id,
        )
        return account.address

    async def disconnect(self) -> None:
        address = self.address
        self._account = None
        self._w3 = None
        self._chain_id = None
        logger.info("wallet.disconnected", address=address)

    async def switch_chain(self, chain_id: int) -> None:
        """Point the wallet at another configured chain.

        Raises:
            WalletNotConnectedError: Wallet not connected
            ChainSwitchError: Chain has no configured RPC endpoint
        """
        if not self.is_connected:
            raise WalletNotConnectedError("Please connect your wallet first.")
        self._select_chain(chain_id)
        logger.info("wallet.chain_switched", chain_id=chain_id)

    def _select_chain(self, chain_id: int) -> None:
        rpc_url = self.rpc_urls.get(chain_id)
        if rpc_url is None:
            raise ChainSwitchError(
                f"Chain {chain_id} is not supported. "
                f"Configured chains: {sorted(self.rpc_urls)}"
            )
        self._w3 = self._web3_factory(rpc_url)
        self._chain_id = chain_id

    def _require_web3(self) -> Web3:
        if self._account is None or self._w3 is None:
            raise WalletNotConnectedError("Please connect your wallet first.")
        return self._w3

    async def submit_transaction(
        self, contract_address: str, function_name: str, args: Sequence[Any]
    ) -> str:
        """Estimate, sign and send a contract call.

        Returns:
            Transaction hash (0x-prefixed hex string)

        Raises:
            WalletNotConnectedError: Wallet not connected
            TransactionRevertError: Simulation reverted with a contract error
            TransactionSubmissionError: Estimation or submission failed
        """
        w3 = self._require_web3()
        return await asyncio.to_thread(
            self._submit_sync, w3, contract_address, function_name, list(args)
        )

    def _submit_sync(
        self, w3: Web3, contract_address: str, function_name: str, args: list[Any]
    ) -> str:
        sender = self._account.address
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=self.contract_abi
        )
        call = getattr(contract.functions, function_name)(*args)

        try:
            estimated_gas = call.estimate_gas({"from": sender})
            gas_limit = int(estimated_gas * self.gas_buffer)

            max_priority_fee = w3.eth.max_priority_fee
            latest_block = w3.eth.get_block("latest")
            base_fee = latest_block.get("baseFeePerGas", 0)  # type: ignore[arg-type]
            max_priority_fee_buffered = int(max_priority_fee * self.gas_buffer)
            max_fee_per_gas = int((base_fee * 2) + max_priority_fee_buffered)
        except Exception as e:
            raise self._submission_error(e, function_name, stage="estimate") from e

        logger.debug(
            "wallet.gas_estimated",
            function=function_name,
            estimated_gas=estimated_gas,
            gas_limit=gas_limit,
            base_fee=base_fee,
            max_fee_per_gas=max_fee_per_gas,
        )

        try:
            nonce = w3.eth.get_transaction_count(sender, "pending")
            transaction = call.build_transaction(
                {
                    "from": sender,
                    "nonce": nonce,
                    "gas": gas_limit,
                    "maxFeePerGas": max_fee_per_gas,
                    "maxPriorityFeePerGas": max_priority_fee_buffered,
                    "chainId": self._chain_id,
                }  # type: ignore[arg-type]
            )
            signed_txn = w3.eth.account.sign_transaction(transaction, private_key=self._private_key)
            tx_hash = w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except Exception as e:
            raise self._submission_error(e, function_name, stage="send") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(
            "wallet.transaction_submitted",
            tx_hash=tx_hash_hex,
            function=function_name,
            nonce=nonce,
            gas_limit=gas_limit,
        )
        return tx_hash_hex

    def _submission_error(self, error: Exception, function_name: str, stage: str) -> Exception:
        contract_error = _decode_contract_error(error)
        logger.error(
            "wallet.transaction_submission_failed",
            function=function_name,
            stage=stage,
            contract_error=contract_error,
            error=str(error),
        )

        if contract_error is not None or isinstance(error, ContractCustomError):
            return TransactionRevertError(
                f"Execution reverted: {contract_error or error}", details=str(error)
            )

        return TransactionSubmissionError(
            f"Transaction submission failed: {error}", details=str(error)
        )

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Wait until ``tx_hash`` is included in a block.

        Raises:
            TransactionTimeoutError: No receipt within the transaction timeout
        """
        w3 = self._require_web3()

        try:
            receipt = await asyncio.to_thread(
                w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.transaction_timeout
            )
        except TimeExhausted as e:
            logger.warning(
                "wallet.transaction_timeout", tx_hash=tx_hash, timeout=self.transaction_timeout
            )
            raise TransactionTimeoutError(
                f"Transaction confirmation timeout: {tx_hash}"
            ) from e

        block_number = receipt["blockNumber"]
        try:
            confirmations = max(w3.eth.block_number - block_number + 1, 1)
        except Exception as e:
            logger.debug("wallet.block_number_unavailable", error=str(e))
            confirmations = 1

        result = TransactionReceipt(
            tx_hash=tx_hash,
            success=receipt["status"] == 1,
            block_number=block_number,
            confirmations=confirmations,
            logs=tuple(
                {
                    "address": log.get("address"),
                    "topics": [hex_string(topic) for topic in log.get("topics", [])],
                    "data": hex_string(log.get("data", b"")),
                }
                for log in receipt.get("logs", [])
            ),
        )

        logger.info(
            "wallet.transaction_settled",
            tx_hash=tx_hash,
            success=result.success,
            block_number=block_number,
            gas_used=receipt.get("gasUsed"),
        )
        return result
