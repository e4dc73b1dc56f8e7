"""Configuration management for Courier."""

import logging
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Backoff between automatic retries: 1min, 5min, 30min, 2hr, 12hr
DEFAULT_RETRY_BACKOFF_SECONDS: list[float] = [60, 300, 1800, 7200, 43200]


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_QDRANT_URL=http://localhost:6333
        COURIER_WEBHOOK_MAX_ATTEMPTS=8
        COURIER_RETRY_MODE=sweep
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="courier",
        description="Prefix for Qdrant collection names",
    )

    # Delivery
    webhook_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Hard timeout for a single delivery attempt",
    )
    webhook_test_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Timeout for synchronous test deliveries",
    )
    webhook_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum automatic delivery attempts before a delivery fails",
    )
    webhook_retry_backoff_seconds: list[float] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_BACKOFF_SECONDS),
        description=(
            "Delay before retry N (1-based) after attempt N fails. "
            "Attempts beyond the table length reuse the last entry."
        ),
    )
    webhook_max_concurrent: int | None = Field(
        default=None,
        ge=1,
        le=1000,
        description=(
            "Optional cap on concurrent outbound requests per process. "
            "Unset means every attempt runs without waiting on others"
        ),
    )
    webhook_in_flight_lease_margin_seconds: float = Field(
        default=30.0,
        ge=0,
        description=(
            "Extra time added to the request timeout while an attempt is in flight. "
            "A sweeper only picks the delivery up again after timeout + margin."
        ),
    )
    webhook_response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=65536,
        description="Characters of response body / error message kept on the ledger",
    )
    webhook_user_agent: str = Field(
        default="Courier-Webhooks/0.1.0",
        description="User-Agent sent with every delivery",
    )

    # Retry scheduling
    retry_mode: Literal["timer", "sweep"] = Field(
        default="timer",
        description=(
            "'timer' arms an in-process timer per retry (lost on restart unless the "
            "sweeper also runs); 'sweep' relies on the periodic ledger sweep only"
        ),
    )
    sweep_enabled: bool = Field(
        default=True,
        description="Run the periodic ledger sweep in the API process",
    )
    sweep_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between ledger sweeps for due retries",
    )
    sweep_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum due deliveries resumed per sweep",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @field_validator("webhook_retry_backoff_seconds")
    @classmethod
    def validate_backoff_table(cls, value: list[float]) -> list[float]:
        """The backoff table must be non-empty and strictly positive."""
        if not value:
            raise ValueError("webhook_retry_backoff_seconds must not be empty")
        if any(delay <= 0 for delay in value):
            raise ValueError("webhook_retry_backoff_seconds entries must be positive")
        return value

    @model_validator(mode="after")
    def warn_on_volatile_retries(self) -> "Settings":
        """Warn when production retries live only in process memory."""
        if self.env == "production" and self.retry_mode == "timer" and not self.sweep_enabled:
            logger.warning(
                "Timer-only retries in production: scheduled retries are lost on restart. "
                "Set COURIER_SWEEP_ENABLED=true or COURIER_RETRY_MODE=sweep."
            )
        return self

    @property
    def in_flight_lease_seconds(self) -> float:
        """How long an in-flight attempt keeps the sweeper away."""
        return self.webhook_timeout_seconds + self.webhook_in_flight_lease_margin_seconds


# Global settings instance
settings = Settings()
