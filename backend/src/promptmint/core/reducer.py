"""Actions and the pure reducer that applies them to AppState.

The reducer never performs I/O. Classification and error reporting happen in
the controller before a failure action is dispatched.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from promptmint.core import ledger
from promptmint.models import (
    GENERATION_RUNNING,
    MINTING_RUNNING,
    AppState,
    ErrorState,
    GenerationState,
    GenerationStatus,
    MintingState,
    MintingStatus,
    OperationHistoryItem,
    PersistedSnapshot,
)


class InvalidStateTransition(Exception):
    """Raised when an action is not allowed from the current status."""

    pass


@dataclass(frozen=True)
class SetPrompt:
    prompt: str


@dataclass(frozen=True)
class StartGeneration:
    pass


@dataclass(frozen=True)
class UpdateGenerationProgress:
    progress: int
    status: GenerationStatus


@dataclass(frozen=True)
class GenerationSucceeded:
    image_url: str
    token_uri: str


@dataclass(frozen=True)
class GenerationFailed:
    error: ErrorState


@dataclass(frozen=True)
class StartMinting:
    pass


@dataclass(frozen=True)
class UpdateMintingStatus:
    status: MintingStatus
    tx_hash: Optional[str] = None


@dataclass(frozen=True)
class MintingSucceeded:
    tx_hash: str


@dataclass(frozen=True)
class MintingFailed:
    error: ErrorState


@dataclass(frozen=True)
class ClearError:
    pass


@dataclass(frozen=True)
class ResetGeneration:
    pass


@dataclass(frozen=True)
class ResetMinting:
    pass


@dataclass(frozen=True)
class LoadPersistedState:
    snapshot: PersistedSnapshot


@dataclass(frozen=True)
class AddOperationHistory:
    item: OperationHistoryItem
    limit: int = ledger.DEFAULT_HISTORY_LIMIT


@dataclass(frozen=True)
class UpdateOperationHistory:
    operation_id: str
    updates: dict = field(default_factory=dict)


Action = Union[
    SetPrompt,
    StartGeneration,
    UpdateGenerationProgress,
    GenerationSucceeded,
    GenerationFailed,
    StartMinting,
    UpdateMintingStatus,
    MintingSucceeded,
    MintingFailed,
    ClearError,
    ResetGeneration,
    ResetMinting,
    LoadPersistedState,
    AddOperationHistory,
    UpdateOperationHistory,
]

# Statuses each minting status may be entered from via UpdateMintingStatus
_MINTING_PREDECESSORS: dict[MintingStatus, frozenset[MintingStatus]] = {
    MintingStatus.PREPARING: frozenset({MintingStatus.PREPARING}),
    MintingStatus.SIGNING: frozenset({MintingStatus.PREPARING, MintingStatus.SIGNING}),
    MintingStatus.MINING: frozenset({MintingStatus.SIGNING, MintingStatus.MINING}),
}


def reduce(state: AppState, action: Action, now: int) -> AppState:
    """Return the state that results from applying ``action``.

    Args:
        state: Current state (never mutated)
        action: Action to apply
        now: Current time in epoch milliseconds, stamped into last_updated

    Raises:
        InvalidStateTransition: If the action is not allowed from the current status
        ValueError: If a completion action is missing required data
    """
    if isinstance(action, SetPrompt):
        # Typing is treated as acknowledging the active error
        changes = {"prompt": action.prompt, "error": None}

    elif isinstance(action, StartGeneration):
        if state.generation_state.status in GENERATION_RUNNING:
            raise InvalidStateTransition("Cannot start generation while one is already running.")
        changes = {
            "generation_state": GenerationState(status=GenerationStatus.GENERATING, progress=10),
            "generated_image": None,
            "token_uri": None,
            "error": None,
            "is_loading": True,
        }

    elif isinstance(action, UpdateGenerationProgress):
        if action.status not in GENERATION_RUNNING:
            raise InvalidStateTransition(
                f"Progress updates only apply to running generations, got {action.status.value}."
            )
        if state.generation_state.status not in GENERATION_RUNNING:
            raise InvalidStateTransition(
                f"Cannot update progress from {state.generation_state.status.value}. "
                "Generation must be running."
            )
        progress = max(0, min(int(action.progress), 99))
        changes = {
            "generation_state": state.generation_state.model_copy(
                update={"progress": progress, "status": action.status}
            )
        }

    elif isinstance(action, GenerationSucceeded):
        if not action.image_url or not action.token_uri:
            raise ValueError("Both image_url and token_uri are required to complete generation")
        minting = state.minting_state
        if minting.status not in MINTING_RUNNING:
            # A new image starts unminted
            minting = MintingState()
        changes = {
            "generated_image": action.image_url,
            "minting_state": minting,
            "token_uri": action.token_uri,
            "generation_state": GenerationState(status=GenerationStatus.COMPLETED, progress=100),
            "is_loading": False,
            "error": None,
        }

    elif isinstance(action, GenerationFailed):
        changes = {
            "generation_state": GenerationState(
                status=GenerationStatus.ERROR, progress=0, error=action.error.message
            ),
            "error": action.error,
            "is_loading": False,
        }

    elif isinstance(action, StartMinting):
        if state.minting_state.status in MINTING_RUNNING:
            raise InvalidStateTransition("Cannot start minting while a mint is in progress.")
        changes = {
            "minting_state": MintingState(status=MintingStatus.PREPARING),
            "error": None,
            "is_loading": True,
        }

    elif isinstance(action, UpdateMintingStatus):
        allowed = _MINTING_PREDECESSORS.get(action.status)
        if allowed is None:
            raise InvalidStateTransition(
                f"Use the completion or failure intents to enter {action.status.value}."
            )
        if state.minting_state.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot mark {action.status.value} from {state.minting_state.status.value}."
            )
        if action.tx_hash and action.status != MintingStatus.MINING:
            raise ValueError("tx_hash can only be recorded once the transaction is mining")
        changes = {
            "minting_state": state.minting_state.model_copy(
                update={
                    "status": action.status,
                    "tx_hash": action.tx_hash or state.minting_state.tx_hash,
                }
            )
        }

    elif isinstance(action, MintingSucceeded):
        if not action.tx_hash:
            raise ValueError("tx_hash is required to complete minting")
        if state.minting_state.status != MintingStatus.MINING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {state.minting_state.status.value}. "
                "Transaction must be mining."
            )
        changes = {
            "minting_state": MintingState(status=MintingStatus.COMPLETED, tx_hash=action.tx_hash),
            "is_loading": False,
            "error": None,
        }

    elif isinstance(action, MintingFailed):
        changes = {
            "minting_state": MintingState(status=MintingStatus.ERROR, error=action.error.message),
            "error": action.error,
            "is_loading": False,
        }

    elif isinstance(action, ClearError):
        changes = {"error": None}

    elif isinstance(action, ResetGeneration):
        changes = {
            "generation_state": GenerationState(),
            "generated_image": None,
            "token_uri": None,
            "error": None,
            "is_loading": False,
        }

    elif isinstance(action, ResetMinting):
        changes = {"minting_state": MintingState(), "error": None, "is_loading": False}

    elif isinstance(action, LoadPersistedState):
        changes = _restore(action.snapshot)

    elif isinstance(action, AddOperationHistory):
        changes = {
            "operation_history": ledger.append_entry(
                state.operation_history, action.item, action.limit
            )
        }

    elif isinstance(action, UpdateOperationHistory):
        changes = {
            "operation_history": ledger.update_entry(
                state.operation_history, action.operation_id, action.updates
            )
        }

    else:
        raise TypeError(f"Unknown action: {type(action).__name__}")

    changes["last_updated"] = now
    return state.model_copy(update=changes)


def _restore(snapshot: PersistedSnapshot) -> dict:
    """State changes for a rehydrated snapshot.

    In-flight statuses cannot survive a restart: the upstream call or the
    transaction context is gone, so they come back as idle.
    """
    generation = snapshot.generation_state
    if generation.status in GENERATION_RUNNING:
        generation = generation.model_copy(update={"status": GenerationStatus.IDLE, "progress": 0})

    minting = snapshot.minting_state
    if minting.status in MINTING_RUNNING:
        minting = minting.model_copy(update={"status": MintingStatus.IDLE, "tx_hash": None})

    generated_image = snapshot.generated_image
    token_uri = snapshot.token_uri
    if not (generated_image and token_uri):
        generated_image = token_uri = None

    return {
        "prompt": snapshot.prompt,
        "generated_image": generated_image,
        "token_uri": token_uri,
        "generation_state": generation,
        "minting_state": minting,
        "operation_history": snapshot.operation_history,
        "error": None,
        "is_loading": False,
    }
