"""Tests for minted-transaction lookups against a mocked Web3 instance."""

from unittest.mock import MagicMock

import pytest
from web3.exceptions import TransactionNotFound

from promptmint.models import TransactionInfo
from promptmint.services.blockchain.transactions import (
    TransactionInfoReader,
    format_address,
    format_fee,
    format_gas_price,
    format_gas_used,
)

SENDER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.get_transaction.return_value = {
        "blockNumber": 10,
        "from": SENDER,
        "to": CONTRACT_ADDRESS,
        "nonce": 3,
        "value": 0,
        "gasPrice": 2_000_000_000,
    }
    mock.eth.get_transaction_receipt.return_value = {
        "gasUsed": 150_000,
        "effectiveGasPrice": 1_500_000_000,
    }
    mock.eth.block_number = 15
    return mock


@pytest.fixture
def reader(w3):
    return TransactionInfoReader("https://rpc.test", web3_factory=lambda rpc_url: w3)


@pytest.mark.asyncio
async def test_get_transaction_info(reader, w3):
    info = await reader.get(TX_HASH)

    assert info == TransactionInfo(
        tx_hash=TX_HASH,
        block_number=10,
        confirmations=5,
        from_address=SENDER,
        to_address=CONTRACT_ADDRESS,
        nonce=3,
        value_wei=0,
        gas_used=150_000,
        gas_price_wei=1_500_000_000,
    )
    assert info.fee_wei == 150_000 * 1_500_000_000
    w3.eth.get_transaction.assert_called_once_with(TX_HASH)
    w3.eth.get_transaction_receipt.assert_called_once_with(TX_HASH)


@pytest.mark.asyncio
async def test_legacy_gas_price_without_effective_price(reader, w3):
    w3.eth.get_transaction_receipt.return_value = {"gasUsed": 21_000}

    info = await reader.get(TX_HASH)

    assert info.gas_price_wei == 2_000_000_000


@pytest.mark.asyncio
async def test_unknown_transaction(reader, w3):
    w3.eth.get_transaction.side_effect = TransactionNotFound("unknown")

    assert await reader.get(TX_HASH) is None
    w3.eth.get_transaction_receipt.assert_not_called()


@pytest.mark.asyncio
async def test_pending_transaction_has_no_receipt(reader, w3):
    w3.eth.get_transaction.return_value = {"blockNumber": None, "from": SENDER, "nonce": 4}
    w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")

    info = await reader.get(TX_HASH)

    assert info.block_number is None
    assert info.confirmations == 0
    assert info.gas_used == 0
    assert info.fee_wei == 0


@pytest.mark.asyncio
async def test_rpc_failure_propagates(reader, w3):
    w3.eth.get_transaction.side_effect = ConnectionError("rpc down")

    with pytest.raises(ConnectionError):
        await reader.get(TX_HASH)


def test_web3_built_once(w3):
    calls = []

    def factory(rpc_url):
        calls.append(rpc_url)
        return w3

    reader = TransactionInfoReader("https://rpc.test", web3_factory=factory)
    reader._get_sync(TX_HASH)
    reader._get_sync(TX_HASH)

    assert calls == ["https://rpc.test"]


def test_info_accepts_rpc_field_names():
    info = TransactionInfo.model_validate(
        {"txHash": TX_HASH, "from": SENDER, "value": 5, "gasPrice": 7, "gasUsed": 2}
    )

    assert info.from_address == SENDER
    assert info.value_wei == 5
    assert info.fee_wei == 14


class TestFormatting:
    def test_gas_price(self):
        assert format_gas_price(1_500_000_000) == "1.50 Gwei"

    def test_gas_used(self):
        assert format_gas_used(150_000) == "150,000"

    def test_fee(self):
        assert format_fee(225_000_000_000_000) == "0.000225 MON"
        assert format_fee(10**18, symbol="ETH") == "1.000000 ETH"

    def test_address(self):
        assert format_address(SENDER) == "0xf39F...2266"
        assert format_address(None) == ""
