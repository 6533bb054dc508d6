"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promptmint.api.routes import generate, health
from promptmint.context import build_pipeline
from promptmint.core.config import Settings, configure_logging
from promptmint.interfaces import ImageGenerationService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    - Startup: configure logging and report which providers are configured
    - Shutdown: log only; the pipeline holds no long-lived connections
    """
    settings: Settings = app.state.settings
    configure_logging(settings)

    logger.info(
        "application.startup",
        app_env=settings.app_env,
        generation_configured=app.state.generation_service is not None,
        model=settings.replicate_model_version,
    )

    yield

    logger.info("application.shutdown")


def create_app(
    settings: Optional[Settings] = None,
    generation_service: Optional[ImageGenerationService] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment if omitted)
        generation_service: Pipeline override; built from settings when both
            REPLICATE_API_TOKEN and PINATA_JWT are set

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    if generation_service is None and settings.replicate_api_token and settings.pinata_jwt:
        generation_service = build_pipeline(settings)

    app = FastAPI(
        title="PromptMint API",
        description="AI image generation and IPFS pinning for PromptMint NFTs",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.generation_service = generation_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(generate.router)
    app.include_router(health.router)

    return app
