"""Keeper configuration."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required startup configuration is missing or invalid."""


class Settings(BaseSettings):
    """
    Keeper settings.

    Environment variables will be loaded and validated using Pydantic.
    """

    app_name: str = "Stream Keeper"
    version: str = "0.1.0"

    # Ledger Settings
    LUCIDPAY_ADDRESS: str | None = None
    KEEPER_PRIVATE_KEY: str | None = None
    SOMNIA_RPC_URL: str = "https://dream-rpc.somnia.network"
    CHAIN_ID: int = 50311

    # Loop Settings
    POLL_INTERVAL: float = Field(default=10.0, gt=0)
    CONFIRMATION_TIMEOUT: float = Field(default=120.0, gt=0)
    CONFIRMATION_RETRIES: int = Field(default=3, ge=0)
    CONFIRMATION_BACKOFF_BASE: float = Field(default=2.0, ge=0)
    CONFIRMATION_BACKOFF_MAX: float = Field(default=30.0, ge=0)

    # Optimizer Settings
    REWARD_RATE_PER_ITEM: float = 0.001  # 0.1% per stream
    REFERENCE_PRICE_A: float = 2000.0  # reward asset price
    REFERENCE_PRICE_B: float = 20.0  # native gas token price
    MAX_BATCH_SIZE: int = Field(default=50, gt=0)
    BATCH_BASE_GAS: int = Field(default=60_000, ge=0)
    PER_ITEM_GAS: int = Field(default=25_000, ge=0)

    # Audit Log Settings
    AUDIT_STORE_PATH: str = "audit_store"
    AUDIT_NAMESPACE: str = "keeper"
    KEEPER_ADDRESS: str | None = None  # publisher identity read by the feed
    FEED_LIMIT: int = Field(default=50, gt=0)

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    # Metrics
    METRICS_PORT: int | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",  # Allow extra fields in environment
    )

    @model_validator(mode="after")
    def validate_backoff(self) -> "Settings":
        """Keep the backoff ceiling at or above the base delay."""
        if self.CONFIRMATION_BACKOFF_MAX < self.CONFIRMATION_BACKOFF_BASE:
            self.CONFIRMATION_BACKOFF_MAX = self.CONFIRMATION_BACKOFF_BASE
        return self

    def require_keeper_credentials(self) -> None:
        """Fail fast when the keeper cannot sign or has nothing to watch.

        Raises:
            ConfigurationError: If the contract address or signing key is missing
        """
        missing = [
            name
            for name in ("LUCIDPAY_ADDRESS", "KEEPER_PRIVATE_KEY")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing {' or '.join(missing)} in environment or .env file"
            )
