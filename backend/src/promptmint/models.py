"""State and value models shared by the orchestrators, controller and adapters.

Field names follow Python conventions; the JSON form (persisted snapshot and
HTTP payloads) uses the camelCase names the browser client has always stored.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=False,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)


class GenerationStatus(str, Enum):
    """Image generation lifecycle status."""

    IDLE = "idle"
    GENERATING = "generating"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


class MintingStatus(str, Enum):
    """NFT minting lifecycle status."""

    IDLE = "idle"
    PREPARING = "preparing"
    SIGNING = "signing"
    MINING = "mining"
    COMPLETED = "completed"
    ERROR = "error"


GENERATION_RUNNING = frozenset({GenerationStatus.GENERATING, GenerationStatus.UPLOADING})
MINTING_RUNNING = frozenset(
    {MintingStatus.PREPARING, MintingStatus.SIGNING, MintingStatus.MINING}
)


class ErrorKind(str, Enum):
    """Closed error taxonomy."""

    WALLET_CONNECTION = "WALLET_CONNECTION"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"
    GENERATION_FAILED = "GENERATION_FAILED"
    IPFS_UPLOAD_FAILED = "IPFS_UPLOAD_FAILED"
    MINTING_FAILED = "MINTING_FAILED"
    PROMPT_ALREADY_USED = "PROMPT_ALREADY_USED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONTENT_POLICY_ERROR = "CONTENT_POLICY_ERROR"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    USER_REJECTED = "USER_REJECTED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class OperationType(str, Enum):
    GENERATION = "generation"
    MINTING = "minting"


class OperationStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class GenerationState(_Model):
    status: GenerationStatus = GenerationStatus.IDLE
    progress: int = Field(default=0, ge=0, le=100)
    error: Optional[str] = None


class MintingState(_Model):
    status: MintingStatus = MintingStatus.IDLE
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class ErrorState(_Model):
    """Active, user-facing error produced by the classifier."""

    kind: ErrorKind
    message: str
    retryable: bool
    details: Any = None
    timestamp: int
    retry_count: Optional[int] = None
    max_retries: Optional[int] = None


class OperationResult(_Model):
    image_url: Optional[str] = None
    token_uri: Optional[str] = Field(default=None, alias="tokenURI")
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    token_id: Optional[str] = None

    def merged(self, other: Optional["OperationResult"]) -> "OperationResult":
        """Overlay the non-empty fields of ``other`` onto this result."""
        if other is None:
            return self
        return self.model_copy(update=other.model_dump(exclude_none=True))


class OperationHistoryItem(_Model):
    """One ledger entry: a generation or minting attempt."""

    id: str
    type: OperationType
    prompt: str
    status: OperationStatus
    timestamp: int
    result: Optional[OperationResult] = None
    error: Optional[str] = None


class AppState(_Model):
    """Canonical application state owned by the controller."""

    prompt: str = ""
    generated_image: Optional[str] = None
    token_uri: Optional[str] = Field(default=None, alias="tokenURI")
    generation_state: GenerationState = GenerationState()
    minting_state: MintingState = MintingState()
    error: Optional[ErrorState] = None
    operation_history: tuple[OperationHistoryItem, ...] = ()
    is_loading: bool = False
    last_updated: int = 0


class PersistedSnapshot(_Model):
    """Safety-filtered subset of AppState written to durable storage."""

    prompt: str = ""
    generated_image: Optional[str] = None
    token_uri: Optional[str] = Field(default=None, alias="tokenURI")
    generation_state: GenerationState = GenerationState()
    minting_state: MintingState = MintingState()
    operation_history: tuple[OperationHistoryItem, ...] = ()
    last_updated: int

    @classmethod
    def from_state(cls, state: AppState) -> "PersistedSnapshot":
        return cls(
            prompt=state.prompt,
            generated_image=state.generated_image,
            token_uri=state.token_uri,
            generation_state=state.generation_state,
            minting_state=state.minting_state,
            operation_history=state.operation_history,
            last_updated=state.last_updated,
        )


class RawFailure(_Model):
    """Normalized failure shape every adapter produces before classification."""

    message: str = ""
    status: Optional[int] = None
    code: Optional[str] = None
    details: Any = None


class GenerationResult(_Model):
    image_url: str = Field(alias="previewURL")
    token_uri: str = Field(alias="tokenURI")


class WalletConnector(_Model):
    id: str
    name: str


class TransactionReceipt(_Model):
    tx_hash: str
    success: bool
    block_number: Optional[int] = None
    confirmations: int = 0
    logs: tuple[dict[str, Any], ...] = ()


class TransactionInfo(_Model):
    """On-chain details of a mined transaction."""

    tx_hash: str
    block_number: Optional[int] = None
    confirmations: int = 0
    from_address: Optional[str] = Field(default=None, alias="from")
    to_address: Optional[str] = Field(default=None, alias="to")
    nonce: int = 0
    value_wei: int = Field(default=0, alias="value")
    gas_used: int = 0
    gas_price_wei: int = Field(default=0, alias="gasPrice")

    @property
    def fee_wei(self) -> int:
        return self.gas_used * self.gas_price_wei
