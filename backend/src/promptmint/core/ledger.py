"""Operation history ledger.

Most-recent-first, capped list of generation/minting attempts. Entries are
created ``pending`` and updated in place; only capacity eviction removes them.
"""

import random
import string
from typing import Iterable, Optional

from promptmint.models import OperationHistoryItem, OperationStatus, OperationType

DEFAULT_HISTORY_LIMIT = 50

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_operation_id(operation_type: OperationType, timestamp: int) -> str:
    """Build a unique id like ``minting_1700000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{operation_type.value}_{timestamp}_{suffix}"


def append_entry(
    history: tuple[OperationHistoryItem, ...],
    item: OperationHistoryItem,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> tuple[OperationHistoryItem, ...]:
    """Prepend ``item`` and evict the oldest entries beyond ``limit``."""
    return ((item,) + history)[:limit]


def update_entry(
    history: tuple[OperationHistoryItem, ...],
    operation_id: str,
    updates: dict,
) -> tuple[OperationHistoryItem, ...]:
    """Apply ``updates`` to the entry with ``operation_id``.

    ``result`` updates are merged into the existing result rather than
    replacing it, so a tx hash recorded while mining survives completion.
    Unknown ids leave the ledger unchanged.
    """
    updated = []
    for item in history:
        if item.id != operation_id:
            updated.append(item)
            continue

        changes = dict(updates)
        if "result" in changes and item.result is not None:
            changes["result"] = item.result.merged(changes["result"])
        updated.append(item.model_copy(update=changes))
    return tuple(updated)


def find_entry(
    history: Iterable[OperationHistoryItem], operation_id: str
) -> Optional[OperationHistoryItem]:
    return next((item for item in history if item.id == operation_id), None)


def find_pending(
    history: Iterable[OperationHistoryItem], operation_type: OperationType
) -> Optional[OperationHistoryItem]:
    """Newest pending entry of the given type."""
    return next(
        (
            item
            for item in history
            if item.type == operation_type and item.status == OperationStatus.PENDING
        ),
        None,
    )
