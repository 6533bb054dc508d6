"""Helpers for reading mint results out of transaction receipts."""

from typing import Any, Optional

import structlog
from eth_utils.abi import event_signature_to_log_topic

from promptmint.models import TransactionReceipt

logger = structlog.get_logger(__name__)

# event Transfer(address indexed from, address indexed to, uint256 indexed tokenId)
TRANSFER_TOPIC = "0x" + event_signature_to_log_topic("Transfer(address,address,uint256)").hex()

# tokenId is the third indexed argument
TOKEN_ID_TOPIC_INDEX = 3


def hex_string(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def extract_token_id(receipt: TransactionReceipt) -> Optional[str]:
    """Best-effort token id extraction from receipt logs.

    Prefers ERC-721 ``Transfer`` logs; otherwise falls back to the first log
    carrying enough indexed topics. The log schema belongs to the contract, so
    any parse failure yields None instead of failing the mint.

    Args:
        receipt: Confirmed transaction receipt

    Returns:
        Decimal token id string, or None if it could not be determined
    """
    try:
        candidates = [
            log
            for log in receipt.logs
            if len(log.get("topics") or ()) > TOKEN_ID_TOPIC_INDEX
        ]
        transfers = [
            log for log in candidates if hex_string(log["topics"][0]) == TRANSFER_TOPIC
        ]
        matches = transfers or candidates
        if not matches:
            return None
        return str(int(hex_string(matches[0]["topics"][TOKEN_ID_TOPIC_INDEX]), 16))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.debug("receipt.token_id_unparsed", tx_hash=receipt.tx_hash, error=str(e))
        return None


def explorer_tx_url(explorer_url: str, tx_hash: str) -> str:
    """Block explorer link for a transaction."""
    return f"{explorer_url.rstrip('/')}/tx/{tx_hash}"
