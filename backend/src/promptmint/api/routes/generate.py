"""Image generation API endpoint.

- POST /api/generate - Generate an image for a prompt, pin it and its ERC-721
  metadata to IPFS, and return ``{success, previewURL, tokenURI}``

Failures use a uniform body ``{error, code, details, timestamp}`` with the
HTTP status carried by the service error (400/401/408/429/500).
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from promptmint.api.dependencies import get_generation_service
from promptmint.interfaces import ImageGenerationService
from promptmint.services.exceptions import ServiceError
from promptmint.services.image_generation.prompt_validator import validate_prompt

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["generate"])


class GenerateResponse(BaseModel):
    """Successful generation."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    preview_url: str = Field(..., alias="previewURL", description="Gateway URL of the image")
    token_uri: str = Field(..., alias="tokenURI", description="ipfs:// URI of the metadata")


class APIErrorResponse(BaseModel):
    error: str
    code: str
    details: Optional[Any] = None
    timestamp: str


def error_response(
    message: str, code: str, status_code: int, details: Any = None
) -> JSONResponse:
    body = APIErrorResponse(
        error=message,
        code=code,
        details=details,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={
        400: {"model": APIErrorResponse},
        401: {"model": APIErrorResponse},
        408: {"model": APIErrorResponse},
        429: {"model": APIErrorResponse},
        500: {"model": APIErrorResponse},
    },
)
async def generate(
    request: Request,
    service: Optional[ImageGenerationService] = Depends(get_generation_service),
):
    """Generate an NFT-ready image for a prompt.

    Returns:
        GenerateResponse with the preview URL and token URI

    Error codes:
        400: INVALID_JSON, INVALID_PROMPT, CONTENT_POLICY_VIOLATION
        401: AUTH_FAILED
        408: TIMEOUT
        429: RATE_LIMITED
        500: MISSING_API_TOKEN, GENERATION_FAILED, IPFS_UPLOAD_FAILED, INTERNAL_ERROR
    """
    if service is None:
        logger.error("generate.not_configured")
        return error_response(
            "Image generation service is not configured",
            "MISSING_API_TOKEN",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        body = await request.json()
    except ValueError as e:
        return error_response(
            "Invalid JSON in request body", "INVALID_JSON", status.HTTP_400_BAD_REQUEST, str(e)
        )

    prompt = body.get("prompt") if isinstance(body, dict) else None

    try:
        validate_prompt(prompt)
    except ServiceError as e:
        logger.info("generate.prompt_rejected", reason=e.message)
        return error_response(e.message, "INVALID_PROMPT", status.HTTP_400_BAD_REQUEST)

    logger.info("generate.started", prompt_length=len(prompt))

    try:
        result = await service.generate(prompt)
    except ServiceError as e:
        logger.warning(
            "generate.failed",
            code=e.code,
            status=e.status,
            error=e.message,
            error_type=type(e).__name__,
        )
        return error_response(
            e.message,
            e.code or "INTERNAL_ERROR",
            e.status or status.HTTP_500_INTERNAL_SERVER_ERROR,
            e.details,
        )
    except Exception as e:
        logger.error("generate.unexpected_error", error=str(e), error_type=type(e).__name__)
        return error_response(
            "Internal server error during image generation",
            "INTERNAL_ERROR",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(e),
        )

    logger.info("generate.succeeded", preview_url=result.image_url, token_uri=result.token_uri)
    return GenerateResponse(preview_url=result.image_url, token_uri=result.token_uri)


@router.api_route("/generate", methods=["GET", "PUT", "DELETE", "PATCH"], include_in_schema=False)
async def generate_method_not_allowed():
    return error_response(
        "Method not allowed. Use POST to generate images",
        "METHOD_NOT_ALLOWED",
        status.HTTP_405_METHOD_NOT_ALLOWED,
    )
