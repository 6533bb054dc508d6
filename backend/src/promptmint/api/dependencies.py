"""FastAPI dependencies shared by the API routes."""

from typing import Optional

from fastapi import Request

from promptmint.interfaces import ImageGenerationService


def get_generation_service(request: Request) -> Optional[ImageGenerationService]:
    """Get the generation pipeline from app state.

    Returns:
        The configured service, or None when provider credentials are missing
    """
    return request.app.state.generation_service
