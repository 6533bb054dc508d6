"""Service error hierarchy for generation, IPFS upload and blockchain operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors, carries a structured ``code``
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, validation)

Every ServiceError can be normalized into a RawFailure so the error
classifier never has to inspect adapter-specific exception types.
"""

from typing import Any, Optional

from promptmint.models import RawFailure


class ServiceError(Exception):
    """Base exception for all service errors."""

    code: Optional[str] = "INTERNAL_ERROR"
    status: Optional[int] = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details

    def to_raw_failure(self) -> RawFailure:
        return RawFailure(
            message=self.message,
            status=self.status,
            code=self.code,
            details=self.details if self.details is not None else self.message,
        )


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    - Transaction submission failures
    """


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Transaction reverts
    - Configuration errors
    """


# Image generation errors
class PromptRejectedError(PermanentError):
    """Prompt failed server-side validation (400)."""

    code = "INVALID_PROMPT"
    status = 400


class ConfigurationError(PermanentError):
    """Generation service is missing its API token."""

    code = "MISSING_API_TOKEN"
    status = 500


class GenerationRateLimitError(TransientError):
    code = "RATE_LIMITED"
    status = 429


class GenerationTimeoutError(TransientError):
    code = "TIMEOUT"
    status = 408


class GenerationAuthError(PermanentError):
    code = "AUTH_FAILED"
    status = 401


class ContentPolicyError(PermanentError):
    """Content policy violation reported by the model provider."""

    code = "CONTENT_POLICY_VIOLATION"
    status = 400


class GenerationFailedError(TransientError):
    code = "GENERATION_FAILED"
    status = 500


# IPFS-specific errors
class IPFSUploadError(TransientError):
    """Base exception for IPFS upload errors."""

    code = "IPFS_UPLOAD_FAILED"
    status = 500


class IPFSRateLimitError(IPFSUploadError):
    """Rate limit exceeded (429)."""

    status = 429


class IPFSNetworkError(IPFSUploadError):
    """Network timeout or service unavailable."""


class IPFSAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    code = "IPFS_UPLOAD_FAILED"
    status = 401


class IPFSValidationError(PermanentError):
    """Bad request (400)."""

    code = "IPFS_UPLOAD_FAILED"
    status = 400


# Blockchain-specific errors
class WalletNotConnectedError(PermanentError):
    code = "WALLET_CONNECTION"
    status = None


class ChainSwitchError(PermanentError):
    code = "NETWORK_MISMATCH"
    status = None


class TransactionSubmissionError(TransientError):
    """Transaction submission failed."""

    code = None
    status = None


class TransactionTimeoutError(TransientError):
    """Transaction confirmation timeout."""

    code = None
    status = 408


class TransactionRevertError(PermanentError):
    """Transaction reverted on-chain."""

    code = None
    status = None
