"""Mirror AppState into durable storage and rehydrate it at start-up.

Only the safety-filtered snapshot is written (no loading flag, no active
error). Reads reject payloads that are malformed or older than the staleness
window. Persistence is best-effort: failures are logged and never raised.
"""

import json
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from promptmint.core.controller import AppStateController
from promptmint.errors import now_ms
from promptmint.interfaces import DurableStorage
from promptmint.models import AppState, PersistedSnapshot

logger = structlog.get_logger(__name__)

STORAGE_KEY = "promptmint_app_state"
MAX_AGE_MS = 24 * 60 * 60 * 1000


class StatePersistence:
    """Persistent state store over a DurableStorage slot."""

    def __init__(
        self,
        storage: DurableStorage,
        key: str = STORAGE_KEY,
        max_age_ms: int = MAX_AGE_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.key = key
        self.max_age_ms = max_age_ms
        self._clock = clock

    def save(self, state: AppState) -> None:
        """Write the snapshot for ``state``. Never raises."""
        try:
            payload = json.dumps(PersistedSnapshot.from_state(state).to_json_dict())
            self.storage.set(self.key, payload)
        except Exception as e:
            logger.warning(
                "persistence.save_failed",
                key=self.key,
                error=str(e),
                error_type=type(e).__name__,
            )

    def load(self) -> Optional[PersistedSnapshot]:
        """Read and validate the stored snapshot.

        Returns:
            The snapshot, or None when missing, malformed, or stale
        """
        try:
            raw = self.storage.get(self.key)
        except Exception as e:
            logger.warning("persistence.load_failed", key=self.key, error=str(e))
            return None

        if not raw:
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("persistence.invalid_json", key=self.key, error=str(e))
            return None

        if not isinstance(data, dict) or not data.get("lastUpdated"):
            logger.warning("persistence.invalid_shape", key=self.key)
            return None

        try:
            snapshot = PersistedSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "persistence.invalid_shape", key=self.key, error_count=e.error_count()
            )
            return None

        age = self._clock() - snapshot.last_updated
        if age > self.max_age_ms:
            logger.info("persistence.stale_snapshot_ignored", key=self.key, age_ms=age)
            return None

        return snapshot

    def restore(self, controller: AppStateController) -> bool:
        """Load the stored snapshot into ``controller``.

        Returns:
            True if a snapshot was restored
        """
        snapshot = self.load()
        if snapshot is None:
            return False
        controller.load_persisted_state(snapshot)
        logger.info(
            "persistence.restored",
            key=self.key,
            history_entries=len(snapshot.operation_history),
        )
        return True

    def attach(self, controller: AppStateController) -> Callable[[], None]:
        """Restore into ``controller`` and then mirror every change.

        Returns:
            Function that stops mirroring
        """
        self.restore(controller)
        return controller.subscribe(self.save)
