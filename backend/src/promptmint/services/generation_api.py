"""HTTP client for the ``POST /api/generate`` endpoint."""

from typing import Any, Optional

import httpx
import structlog

from promptmint.models import GenerationResult
from promptmint.services.exceptions import (
    GenerationFailedError,
    GenerationTimeoutError,
    ServiceError,
    TransientError,
)

logger = structlog.get_logger(__name__)


class HttpGenerationClient:
    """ImageGenerationService talking to a PromptMint API server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def generate(self, prompt: str) -> GenerationResult:
        """Request an image for ``prompt``.

        Raises:
            ServiceError: Error body from the server, carrying its status and code
            GenerationTimeoutError: Request timed out
            TransientError: Connection-level failure
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/api/generate", json={"prompt": prompt}
                )
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError("Request timeout", details=str(e)) from e
        except httpx.HTTPError as e:
            raise TransientError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationFailedError("Invalid response from generation service") from e

        logger.debug("generation_api.response", status_code=response.status_code)

        image_url = data.get("previewURL") if isinstance(data, dict) else None
        token_uri = data.get("tokenURI") if isinstance(data, dict) else None
        if not image_url or not token_uri:
            raise GenerationFailedError("Invalid response: missing image URL or token URI")

        return GenerationResult(image_url=image_url, token_uri=token_uri)

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ServiceError:
        body: Any
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
            code = body.get("code")
            details = body.get("details")
        else:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            code = None
            details = response.text or None

        logger.warning(
            "generation_api.error_response",
            status_code=response.status_code,
            code=code,
            error_message=message,
        )
        return ServiceError(message, code=code, status=response.status_code, details=details)
