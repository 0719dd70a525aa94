"""Configuration management for hookrelay."""

import logging
import secrets
import warnings
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def _generate_dev_secret_key() -> str:
    """Generate a random auth secret for development use.

    Tokens signed with it are invalidated on restart, which is acceptable
    outside production.
    """
    return secrets.token_hex(32)


class DeliveryPolicy(BaseModel):
    """Retry, timeout and circuit-breaker parameters for outbound deliveries.

    A delivery is attempted once and then retried once per entry in
    ``retry_delays_seconds``; the delay before retry *n* is the *n*-th entry.
    A subscription is auto-disabled after ``failure_threshold`` consecutive
    failed attempts across all of its deliveries.

    Attributes:
        retry_delays_seconds: Delay before each retry (60s, 5m, 15m default).
        failure_threshold: Consecutive failures that trip the breaker (10 default).
        timeout_seconds: Per-request timeout for the outbound POST (30 default).
        sweep_batch_size: Maximum due deliveries handled per sweep (50 default).
        user_agent: User-Agent header sent with every delivery.
        response_body_limit: Characters of response body kept on a delivery.
        error_message_limit: Characters of error message kept on a delivery.
    """

    retry_delays_seconds: list[int] = Field(
        default_factory=lambda: [60, 300, 900],
        description="Delay in seconds before each retry, in order",
    )
    failure_threshold: int = Field(
        default=10,
        ge=1,
        description="Consecutive failed attempts before a subscription is auto-disabled",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Outbound HTTP timeout per attempt",
    )
    sweep_batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum due deliveries processed by one sweep",
    )
    user_agent: str = Field(
        default="TestTrack-Pro-Webhook/1.0",
        description="User-Agent header for outbound deliveries",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        description="Maximum characters of response body stored per delivery",
    )
    error_message_limit: int = Field(
        default=500,
        ge=0,
        description="Maximum characters of error message stored per delivery",
    )

    @field_validator("retry_delays_seconds")
    @classmethod
    def _validate_delays(cls, value: list[int]) -> list[int]:
        """Require a non-empty list of positive delays."""
        if not value:
            raise ValueError("retry_delays_seconds must contain at least one delay")
        if any(delay <= 0 for delay in value):
            raise ValueError(f"retry delays must be positive, got {value}")
        return value

    @property
    def max_attempts(self) -> int:
        """Upper bound on attempts for a single delivery."""
        return 1 + len(self.retry_delays_seconds)

    def retry_delay(self, attempt_count: int) -> int:
        """Delay before the retry that follows attempt number ``attempt_count``.

        Args:
            attempt_count: Attempts made so far (1-based).

        Returns:
            Delay in seconds.

        Raises:
            IndexError: If the retry budget is already spent.
        """
        if attempt_count < 1:
            raise IndexError(f"attempt_count must be >= 1, got {attempt_count}")
        return self.retry_delays_seconds[attempt_count - 1]


class Settings(BaseSettings):
    """hookrelay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKRELAY_ prefix. For example:
        HOOKRELAY_QDRANT_URL=http://localhost:6333
        HOOKRELAY_DELIVERY__FAILURE_THRESHOLD=5

    Security Notes:
        - In production (HOOKRELAY_ENV=production), auth is enabled by default
        - Production requires an explicit HOOKRELAY_AUTH_SECRET_KEY
        - Disabling auth in production will log a warning
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
        default="hookrelay",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Maximum records fetched in a single scroll operation",
    )

    # Delivery
    delivery: DeliveryPolicy = Field(
        default_factory=DeliveryPolicy,
        description="Retry, timeout and circuit-breaker policy",
    )
    dispatch_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Capacity of the in-process delivery work queue",
    )
    dispatch_concurrency: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Number of consumer tasks draining the delivery queue",
    )

    # Retry sweeper
    sweep_enabled: bool = Field(
        default=True,
        description="Run the retry sweeper loop inside the API process",
    )
    sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds between retry sweeps",
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

    # Authentication
    auth_enabled: bool | None = Field(
        default=None,
        description=(
            "Enable Bearer token authentication. "
            "If not set, defaults to True in production, False otherwise."
        ),
    )
    auth_secret_key: str | None = Field(
        default=None,
        description=(
            "Secret key for token validation (HMAC). "
            "REQUIRED in production. In dev/test, a random key is generated if not set."
        ),
    )
    auth_token_expire_minutes: int = Field(
        default=60,
        ge=1,
        description="Token expiration time in minutes",
    )
    auth_allowed_roles: list[str] = Field(
        default_factory=lambda: ["ADMIN", "DEVELOPER"],
        description="Roles allowed to manage webhooks",
    )

    _runtime_dev_secret: str | None = None

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Resolve auth defaults and enforce production requirements."""
        is_production = self.env == "production"

        if self.auth_enabled is None:
            object.__setattr__(self, "auth_enabled", is_production)

        if is_production:
            if self.auth_secret_key is None:
                raise ValueError(
                    "HOOKRELAY_AUTH_SECRET_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )

            if not self.auth_enabled:
                warnings.warn(
                    "Authentication is disabled in production environment. "
                    "Set HOOKRELAY_AUTH_ENABLED=true to enable.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Authentication disabled in production")
        elif self.auth_secret_key is None:
            object.__setattr__(self, "_runtime_dev_secret", _generate_dev_secret_key())
            logger.debug("Generated random auth secret for development")

        return self

    @property
    def is_auth_enabled(self) -> bool:
        """Get resolved auth_enabled value (always bool, never None)."""
        if self.auth_enabled is None:
            return self.env == "production"
        return self.auth_enabled

    @property
    def effective_auth_secret_key(self) -> str:
        """Get the configured secret, or the runtime-generated one outside production."""
        if self.auth_secret_key is not None:
            return self.auth_secret_key
        if self._runtime_dev_secret is not None:
            return self._runtime_dev_secret
        raise ValueError("No auth secret key available")

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="List of allowed HTTP methods",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed request headers",
    )
    cors_allow_credentials: bool = Field(
        default=False,
        description="Allow credentials (cookies, authorization headers) in CORS requests",
    )
    cors_max_age: int = Field(
        default=600,
        ge=0,
        description="Max age in seconds for CORS preflight cache",
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }


# Global settings instance
settings = Settings()
