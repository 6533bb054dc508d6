"""Application state controller.

Owns the canonical AppState. Every change goes through ``dispatch``, which
applies the pure reducer atomically and then notifies subscribers (the
persistence layer is one of them). Orchestrators never touch state directly;
they call the intent methods below.
"""

from typing import Any, Callable, Optional, Union

import structlog

from promptmint.core import ledger
from promptmint.core.reducer import (
    Action,
    AddOperationHistory,
    ClearError,
    GenerationFailed,
    GenerationSucceeded,
    LoadPersistedState,
    MintingFailed,
    MintingSucceeded,
    ResetGeneration,
    ResetMinting,
    SetPrompt,
    StartGeneration,
    StartMinting,
    UpdateGenerationProgress,
    UpdateMintingStatus,
    UpdateOperationHistory,
    reduce,
)
from promptmint.errors import AppError, classify, now_ms, report_error
from promptmint.models import (
    GENERATION_RUNNING,
    MINTING_RUNNING,
    AppState,
    ErrorState,
    GenerationStatus,
    MintingStatus,
    OperationHistoryItem,
    OperationResult,
    OperationStatus,
    OperationType,
    PersistedSnapshot,
)

logger = structlog.get_logger(__name__)

Listener = Callable[[AppState], None]
Failure = Union[str, BaseException, ErrorState, AppError]


class AppStateController:
    """Single writer for AppState.

    Example:
        controller = AppStateController()
        controller.set_prompt("A cat on a windowsill")
        assert controller.can_generate
    """

    def __init__(
        self,
        initial_state: Optional[AppState] = None,
        clock: Callable[[], int] = now_ms,
        history_limit: int = ledger.DEFAULT_HISTORY_LIMIT,
    ):
        self._clock = clock
        self._history_limit = history_limit
        self._state = initial_state or AppState(last_updated=clock())
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def now(self) -> int:
        return self._clock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every state change.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> AppState:
        """Apply ``action`` and notify listeners with the new state."""
        self._state = reduce(self._state, action, self._clock())
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(
                    "controller.listener_failed",
                    action=type(action).__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return self._state

    # Capability flags

    @property
    def is_generating(self) -> bool:
        return self._state.generation_state.status in GENERATION_RUNNING

    @property
    def is_minting(self) -> bool:
        return self._state.minting_state.status in MINTING_RUNNING

    @property
    def can_generate(self) -> bool:
        # Minting and generation are mutually exclusive: both touch the same prompt/image pair
        return bool(self._state.prompt.strip()) and not self.is_generating and not self.is_minting

    @property
    def can_mint(self) -> bool:
        return (
            self._state.token_uri is not None
            and self._state.generated_image is not None
            and not self.is_minting
            and self._state.minting_state.status != MintingStatus.COMPLETED
        )

    # Intents

    def set_prompt(self, prompt: str) -> None:
        self.dispatch(SetPrompt(prompt))

    def start_generation(self) -> None:
        self.dispatch(StartGeneration())

    def update_generation_progress(self, progress: int, status: GenerationStatus) -> None:
        self.dispatch(UpdateGenerationProgress(progress, status))

    def complete_generation(self, image_url: str, token_uri: str) -> None:
        self.dispatch(GenerationSucceeded(image_url, token_uri))

    def fail_generation(self, failure: Failure, **context: Any) -> ErrorState:
        error_state = self._to_error_state(failure)
        report_error(error_state, operation="generation", prompt=self._state.prompt, **context)
        self.dispatch(GenerationFailed(error_state))
        return error_state

    def start_minting(self) -> None:
        self.dispatch(StartMinting())

    def update_minting_status(self, status: MintingStatus, tx_hash: Optional[str] = None) -> None:
        self.dispatch(UpdateMintingStatus(status, tx_hash))

    def complete_minting(self, tx_hash: str) -> None:
        self.dispatch(MintingSucceeded(tx_hash))

    def fail_minting(self, failure: Failure, **context: Any) -> ErrorState:
        error_state = self._to_error_state(failure)
        report_error(error_state, operation="minting", prompt=self._state.prompt, **context)
        self.dispatch(MintingFailed(error_state))
        return error_state

    def clear_error(self) -> None:
        self.dispatch(ClearError())

    def reset_generation(self) -> None:
        self.dispatch(ResetGeneration())

    def reset_minting(self) -> None:
        self.dispatch(ResetMinting())

    def add_operation(
        self,
        operation_type: OperationType,
        prompt: str,
        status: OperationStatus = OperationStatus.PENDING,
        result: Optional[OperationResult] = None,
        error: Optional[str] = None,
    ) -> str:
        """Append a ledger entry and return its id."""
        timestamp = self._clock()
        item = OperationHistoryItem(
            id=ledger.new_operation_id(operation_type, timestamp),
            type=operation_type,
            prompt=prompt,
            status=status,
            timestamp=timestamp,
            result=result,
            error=error,
        )
        self.dispatch(AddOperationHistory(item, self._history_limit))
        return item.id

    def update_operation(self, operation_id: str, **updates: Any) -> None:
        """Update a ledger entry in place (``status``, ``result``, ``error``)."""
        self.dispatch(UpdateOperationHistory(operation_id, updates))

    def load_persisted_state(self, snapshot: PersistedSnapshot) -> None:
        self.dispatch(LoadPersistedState(snapshot))

    def _to_error_state(self, failure: Failure) -> ErrorState:
        if isinstance(failure, ErrorState):
            return failure
        if isinstance(failure, str):
            failure = RuntimeError(failure)
        return classify(failure).to_error_state()
