"""Error taxonomy, classification and presentation helpers.

Every failure that reaches an orchestrator is turned into an ``AppError``:

- ``AppError`` instances pass through unchanged (classification is idempotent)
- adapters normalize their exceptions into a ``RawFailure``
- upstream structured codes are mapped first, then message/status rules apply
  in a fixed order, first match wins
- anything unrecognised is ``UNKNOWN_ERROR`` and optimistically retryable
"""

import time
from typing import Any, Optional

import structlog

from promptmint.models import ErrorKind, ErrorState, RawFailure
from promptmint.services.exceptions import ServiceError

logger = structlog.get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class AppError(Exception):
    """Classified application error."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        retryable: bool = False,
        details: Any = None,
        timestamp: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retryable = retryable
        self.details = details
        self.timestamp = timestamp if timestamp is not None else now_ms()

    def to_error_state(
        self, retry_count: Optional[int] = None, max_retries: Optional[int] = None
    ) -> ErrorState:
        return ErrorState(
            kind=self.kind,
            message=self.message,
            retryable=self.retryable,
            details=self.details,
            timestamp=self.timestamp,
            retry_count=retry_count,
            max_retries=max_retries,
        )

    @classmethod
    def from_error_state(cls, state: ErrorState) -> "AppError":
        return cls(state.kind, state.message, state.retryable, state.details, state.timestamp)

    def __repr__(self) -> str:
        return f"AppError({self.kind.value}, {self.message!r}, retryable={self.retryable})"


# Upstream structured codes (generation API, wallet adapter) -> (kind, message, retryable)
CODE_KINDS: dict[str, tuple[ErrorKind, str, bool]] = {
    "RATE_LIMITED": (
        ErrorKind.RATE_LIMIT_ERROR,
        "Too many requests. Please wait a moment before trying again.",
        True,
    ),
    "TIMEOUT": (ErrorKind.TIMEOUT_ERROR, "Request timed out. Please try again.", True),
    "AUTH_FAILED": (
        ErrorKind.AUTHENTICATION_ERROR,
        "Authentication failed. Please check your configuration.",
        False,
    ),
    "MISSING_API_TOKEN": (
        ErrorKind.AUTHENTICATION_ERROR,
        "Image generation service is not configured.",
        False,
    ),
    "CONFIG_ERROR": (
        ErrorKind.AUTHENTICATION_ERROR,
        "Image generation service is not configured.",
        False,
    ),
    "CONTENT_POLICY_VIOLATION": (
        ErrorKind.CONTENT_POLICY_ERROR,
        "Content policy violation. Please modify your prompt and try again.",
        False,
    ),
    "INVALID_PROMPT": (ErrorKind.VALIDATION_ERROR, "", False),
    "GENERATION_FAILED": (ErrorKind.GENERATION_FAILED, "Failed to generate image.", True),
    "INVALID_IMAGE_URL": (ErrorKind.GENERATION_FAILED, "Failed to generate image.", True),
    "IPFS_UPLOAD_FAILED": (ErrorKind.IPFS_UPLOAD_FAILED, "Failed to upload to IPFS.", True),
    "WALLET_CONNECTION": (
        ErrorKind.WALLET_CONNECTION,
        "Please connect your wallet to mint.",
        False,
    ),
    "NETWORK_MISMATCH": (
        ErrorKind.NETWORK_MISMATCH,
        "Please switch to the expected network in your wallet.",
        False,
    ),
}

# Ordered message/status rules: (kind, needles, statuses, message, retryable)
_RULES: tuple[tuple[ErrorKind, tuple[str, ...], tuple[int, ...], str, bool], ...] = (
    (
        ErrorKind.NETWORK_ERROR,
        ("network", "fetch", "connection"),
        (),
        "Network connection failed. Please check your internet connection.",
        True,
    ),
    (
        ErrorKind.TIMEOUT_ERROR,
        ("timeout", "408"),
        (408,),
        "Request timed out. Please try again.",
        True,
    ),
    (
        ErrorKind.RATE_LIMIT_ERROR,
        ("rate limit", "429"),
        (429,),
        "Too many requests. Please wait a moment before trying again.",
        True,
    ),
    (
        ErrorKind.AUTHENTICATION_ERROR,
        ("authentication", "401", "unauthorized"),
        (401,),
        "Authentication failed. Please check your configuration.",
        False,
    ),
    (
        ErrorKind.CONTENT_POLICY_ERROR,
        ("content_policy_violation", "inappropriate"),
        (),
        "Content policy violation. Please modify your prompt and try again.",
        False,
    ),
    (
        ErrorKind.USER_REJECTED,
        ("user rejected", "user denied"),
        (),
        "Transaction was rejected by user.",
        False,
    ),
    (
        ErrorKind.INSUFFICIENT_FUNDS,
        ("insufficient funds", "insufficient balance"),
        (),
        "Insufficient funds to complete the transaction.",
        False,
    ),
    (
        ErrorKind.PROMPT_ALREADY_USED,
        ("promptalreadyused", "already been used"),
        (),
        "This prompt has already been used to mint an NFT. Please try a different prompt.",
        False,
    ),
)


def to_raw_failure(exc: BaseException) -> RawFailure:
    """Normalize an arbitrary exception into a RawFailure."""
    if isinstance(exc, ServiceError):
        return exc.to_raw_failure()

    status = getattr(exc, "status", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)

    return RawFailure(
        message=str(exc),
        status=status if isinstance(status, int) else None,
        code=code if isinstance(code, str) else None,
        details=str(exc),
    )


def classify_raw(failure: RawFailure) -> AppError:
    """Classify a normalized failure."""
    if failure.code and failure.code in CODE_KINDS:
        kind, message, retryable = CODE_KINDS[failure.code]
        return AppError(kind, message or failure.message, retryable, failure.details)

    text = failure.message.lower()
    for kind, needles, statuses, message, retryable in _RULES:
        if any(needle in text for needle in needles) or (
            failure.status is not None and failure.status in statuses
        ):
            return AppError(kind, message, retryable, failure.message or failure.details)

    return AppError(
        ErrorKind.UNKNOWN_ERROR,
        failure.message or "An unexpected error occurred.",
        True,
        failure.details if failure.details is not None else failure.message,
    )


def classify(failure: Any) -> AppError:
    """Map any failure into the closed error taxonomy.

    Args:
        failure: AppError, RawFailure, exception, or any other raised value

    Returns:
        Classified AppError (the same instance when already classified)
    """
    if isinstance(failure, AppError):
        return failure
    if isinstance(failure, ErrorState):
        return AppError.from_error_state(failure)
    if isinstance(failure, RawFailure):
        return classify_raw(failure)
    if isinstance(failure, BaseException):
        return classify_raw(to_raw_failure(failure))

    return AppError(ErrorKind.UNKNOWN_ERROR, "An unexpected error occurred.", True, failure)


def validation_error(message: str) -> AppError:
    return AppError(ErrorKind.VALIDATION_ERROR, message, False)


_FRIENDLY_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK_ERROR: (
        "Connection failed. Please check your internet connection and try again."
    ),
    ErrorKind.TIMEOUT_ERROR: "The request took too long to complete. Please try again.",
    ErrorKind.RATE_LIMIT_ERROR: "Too many requests. Please wait a moment before trying again.",
    ErrorKind.AUTHENTICATION_ERROR: "Authentication failed. Please check your configuration.",
    ErrorKind.CONTENT_POLICY_ERROR: (
        "Your prompt violates content policy. Please modify it and try again."
    ),
    ErrorKind.WALLET_CONNECTION: (
        "Failed to connect to wallet. Please make sure your wallet is installed and unlocked."
    ),
    ErrorKind.NETWORK_MISMATCH: "Please switch to Monad Testnet in your wallet.",
    ErrorKind.USER_REJECTED: "Transaction was cancelled. You can try again when ready.",
    ErrorKind.INSUFFICIENT_FUNDS: (
        "Insufficient funds for gas fees. Please add more MON to your wallet."
    ),
    ErrorKind.PROMPT_ALREADY_USED: (
        "This prompt has already been used. Please try a different prompt."
    ),
    ErrorKind.GENERATION_FAILED: (
        "Failed to generate image. Please try again with a different prompt."
    ),
    ErrorKind.IPFS_UPLOAD_FAILED: "Failed to upload to IPFS. Please try again.",
    ErrorKind.MINTING_FAILED: "Failed to mint NFT. Please try again.",
}


def user_friendly_message(error: ErrorState) -> str:
    """Message to show for an active error."""
    if error.kind == ErrorKind.VALIDATION_ERROR:
        return error.message or "Invalid input. Please check your input and try again."
    if error.kind in _FRIENDLY_MESSAGES:
        return _FRIENDLY_MESSAGES[error.kind]
    return error.message or "An unexpected error occurred. Please try again."


def should_show_retry(error: ErrorState) -> bool:
    """Retry is offered only for retryable errors with budget left."""
    if not error.retryable:
        return False
    if not error.max_retries or not error.retry_count:
        return True
    return error.retry_count < error.max_retries


def retry_button_text(error: ErrorState) -> str:
    if error.retry_count:
        return f"Retry ({error.retry_count}/{error.max_retries or 3})"
    return "Try Again"


def report_error(error: ErrorState, **context: Any) -> None:
    """Report an error to the monitoring channel. Never raises."""
    try:
        logger.error(
            "error.reported",
            error_kind=error.kind.value,
            error_message=error.message,
            retryable=error.retryable,
            timestamp=error.timestamp,
            retry_count=error.retry_count,
            details=repr(error.details),
            **context,
        )
    except Exception:  # noqa: BLE001
        pass
