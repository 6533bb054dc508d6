"""Read-only lookups of minted transactions over JSON-RPC."""

import asyncio
from typing import Callable, Optional

import structlog
from web3 import Web3
from web3.exceptions import TransactionNotFound

from promptmint.models import TransactionInfo
from promptmint.services.blockchain.wallet import default_web3_factory

logger = structlog.get_logger(__name__)


def format_gas_price(gas_price_wei: int) -> str:
    return f"{Web3.from_wei(gas_price_wei, 'gwei'):.2f} Gwei"


def format_gas_used(gas_used: int) -> str:
    return f"{gas_used:,}"


def format_fee(fee_wei: int, symbol: str = "MON") -> str:
    return f"{Web3.from_wei(fee_wei, 'ether'):.6f} {symbol}"


def format_address(address: Optional[str]) -> str:
    """Shorten ``0x1234...abcd`` style for listings."""
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


class TransactionInfoReader:
    """Looks up block, gas and fee details for transaction hashes."""

    def __init__(
        self, rpc_url: str, web3_factory: Callable[[str], Web3] = default_web3_factory
    ):
        self.rpc_url = rpc_url
        self._web3_factory = web3_factory
        self._w3: Optional[Web3] = None

    def _web3(self) -> Web3:
        if self._w3 is None:
            self._w3 = self._web3_factory(self.rpc_url)
        return self._w3

    async def get(self, tx_hash: str) -> Optional[TransactionInfo]:
        """Fetch details for ``tx_hash``.

        Returns:
            Transaction details, or None if the node does not know the transaction

        Raises:
            Exception: RPC failures other than an unknown transaction propagate
        """
        return await asyncio.to_thread(self._get_sync, tx_hash)

    def _get_sync(self, tx_hash: str) -> Optional[TransactionInfo]:
        w3 = self._web3()

        try:
            tx = w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            logger.info("transactions.not_found", tx_hash=tx_hash)
            return None

        try:
            receipt = w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            receipt = None

        block_number = tx.get("blockNumber")
        confirmations = 0
        if block_number is not None:
            confirmations = max(w3.eth.block_number - block_number, 0)

        gas_price = tx.get("gasPrice") or 0
        if receipt is not None and receipt.get("effectiveGasPrice"):
            gas_price = receipt["effectiveGasPrice"]

        info = TransactionInfo(
            tx_hash=tx_hash,
            block_number=block_number,
            confirmations=confirmations,
            from_address=tx.get("from"),
            to_address=tx.get("to"),
            nonce=tx.get("nonce", 0),
            value_wei=tx.get("value", 0),
            gas_used=receipt.get("gasUsed", 0) if receipt is not None else 0,
            gas_price_wei=gas_price,
        )
        logger.debug(
            "transactions.fetched",
            tx_hash=tx_hash,
            block_number=block_number,
            gas_used=info.gas_used,
        )
        return info
