"""Application configuration using Pydantic BaseSettings."""

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from promptmint.core.retry import RetryConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Generation API (consumed by the orchestrators)
    api_base_url: str = Field(default="http://localhost:8000", alias="API_BASE_URL")
    health_check_url: str = Field(
        default="http://localhost:8000/api/health", alias="HEALTH_CHECK_URL"
    )
    network_check_timeout_seconds: float = Field(default=5.0, alias="NETWORK_CHECK_TIMEOUT_SECONDS")
    generation_timeout_seconds: float = Field(default=120.0, alias="GENERATION_TIMEOUT_SECONDS")

    # Chain / contract (defaults target Monad testnet)
    promptmint_contract_address: str = Field(default="", alias="PROMPTMINT_CONTRACT_ADDRESS")
    chain_id: int = Field(default=10143, alias="CHAIN_ID")
    rpc_url: str = Field(default="https://testnet-rpc.monad.xyz", alias="RPC_URL")
    explorer_url: str = Field(default="https://testnet.monadexplorer.com", alias="EXPLORER_URL")
    wallet_private_key: str = Field(default="", alias="WALLET_PRIVATE_KEY")
    transaction_timeout_seconds: int = Field(default=180, alias="TRANSACTION_TIMEOUT_SECONDS")
    gas_buffer: float = Field(default=1.2, alias="GAS_BUFFER")

    # Replicate Image Generation
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="black-forest-labs/flux-schnell", alias="REPLICATE_MODEL_VERSION"
    )

    # IPFS Upload (Pinata)
    pinata_jwt: str = Field(default="", alias="PINATA_JWT")
    pinata_gateway: str = Field(default="gateway.pinata.cloud", alias="PINATA_GATEWAY")

    # Persisted client state
    state_storage_url: str = Field(default="sqlite:///promptmint_state.db", alias="STATE_STORAGE_URL")
    state_storage_key: str = Field(default="promptmint_app_state", alias="STATE_STORAGE_KEY")
    state_max_age_seconds: int = Field(default=24 * 60 * 60, alias="STATE_MAX_AGE_SECONDS")
    history_limit: int = Field(default=50, alias="HISTORY_LIMIT")
    progress_tick_seconds: float = Field(default=0.5, alias="PROGRESS_TICK_SECONDS")

    # Retry policy
    generation_max_retries: int = Field(default=3, alias="GENERATION_MAX_RETRIES")
    generation_base_delay: float = Field(default=1.0, alias="GENERATION_BASE_DELAY")
    generation_max_delay: float = Field(default=10.0, alias="GENERATION_MAX_DELAY")
    generation_backoff_multiplier: float = Field(default=2.0, alias="GENERATION_BACKOFF_MULTIPLIER")
    minting_max_retries: int = Field(default=1, alias="MINTING_MAX_RETRIES")
    minting_base_delay: float = Field(default=2.0, alias="MINTING_BASE_DELAY")
    minting_max_delay: float = Field(default=10.0, alias="MINTING_MAX_DELAY")
    minting_backoff_multiplier: float = Field(default=1.5, alias="MINTING_BACKOFF_MULTIPLIER")
    retry_jitter: float = Field(default=1.0, alias="RETRY_JITTER")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def generation_retry(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.generation_max_retries,
            base_delay=self.generation_base_delay,
            max_delay=self.generation_max_delay,
            backoff_multiplier=self.generation_backoff_multiplier,
            jitter=self.retry_jitter,
        )

    @property
    def minting_retry(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.minting_max_retries,
            base_delay=self.minting_base_delay,
            max_delay=self.minting_max_delay,
            backoff_multiplier=self.minting_backoff_multiplier,
            jitter=self.retry_jitter,
        )

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate required configuration on startup.

        Fails fast with clear error messages if configuration is incomplete.
        Validation is skipped in test environments to avoid breaking tests.
        """
        if self.app_env in ("test", "testing"):
            return self

        missing = []

        if not self.promptmint_contract_address:
            missing.append(
                "PROMPTMINT_CONTRACT_ADDRESS: Deploy the PromptMint contract or use an existing address"
            )

        # The generation service only runs server-side in production
        if self.app_env == "production":
            if not self.replicate_api_token:
                missing.append(
                    "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
                )
            if not self.pinata_jwt:
                missing.append("PINATA_JWT: Get your JWT token from https://pinata.cloud")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    if settings.app_env == "production":
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
