"""Replicate API client for image generation with error classification."""

import asyncio
from typing import Any, Optional

import replicate
import structlog
from replicate.exceptions import ReplicateError as ReplicateAPIError

from promptmint.services.exceptions import (
    ConfigurationError,
    ContentPolicyError,
    GenerationAuthError,
    GenerationFailedError,
    GenerationRateLimitError,
    GenerationTimeoutError,
    ServiceError,
)

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "black-forest-labs/flux-schnell"


def classify_error(exception: Exception) -> ServiceError:
    """Map a Replicate SDK or network exception to a coded ServiceError.

    Classification rules:
        - Timeout errors → TIMEOUT
        - 429 / rate limit → RATE_LIMITED
        - 401/403 / authentication → AUTH_FAILED
        - Content policy / nsfw / safety → CONTENT_POLICY_VIOLATION
        - 503, connection errors and everything else → GENERATION_FAILED
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if isinstance(exception, TimeoutError) or "timeout" in error_message_lower:
        return GenerationTimeoutError(
            "Image generation timed out. Please try again", details=error_message
        )

    if "429" in error_message or "rate limit" in error_message_lower:
        return GenerationRateLimitError(
            "Rate limit exceeded. Please try again later", details=error_message
        )

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return GenerationAuthError(
            "Authentication failed with image generation service", details=error_message
        )

    if (
        "content policy" in error_message_lower
        or "content_policy_violation" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return ContentPolicyError(
            "Content policy violation. Please modify your prompt", details=error_message
        )

    if "503" in error_message or "service unavailable" in error_message_lower:
        return GenerationFailedError(
            "Image generation service unavailable", details=error_message
        )

    return GenerationFailedError("Failed to generate image", details=error_message)


class ReplicateClient:
    """Text-to-image client over the Replicate SDK."""

    def __init__(self, api_token: str, model_version: Optional[str] = None):
        self.api_token = api_token
        self.model = model_version or DEFAULT_MODEL

    async def generate_image(self, prompt: str) -> str:
        """Generate an image using the Replicate API.

        Args:
            prompt: Text prompt for image generation

        Returns:
            Image URL from Replicate CDN (expires after a few days)

        Raises:
            ConfigurationError: REPLICATE_API_TOKEN not configured
            ServiceError: Coded failure (see ``classify_error``)
        """
        if not self.api_token:
            raise ConfigurationError("Image generation service is not configured")

        client = replicate.Client(api_token=self.api_token)

        def _run_replicate() -> Any:
            # SDK is synchronous
            return client.run(self.model, input={"prompt": prompt})

        try:
            output = await asyncio.to_thread(_run_replicate)
        except (ReplicateAPIError, ConnectionError, OSError, TimeoutError) as e:
            classified = classify_error(e)
            logger.warning(
                "replicate.request_failed",
                model=self.model,
                code=classified.code,
                error=str(e),
            )
            raise classified from e

        # Output format varies by model
        if isinstance(output, list) and len(output) > 0:
            image_url = str(output[0])
        elif isinstance(output, str):
            image_url = output
        else:
            image_url = str(output) if output is not None else ""

        if not image_url.startswith(("http://", "https://")):
            raise ServiceError(
                "Invalid image URL received",
                code="INVALID_IMAGE_URL",
                status=500,
                details={"imageUrl": image_url},
            )

        return image_url
