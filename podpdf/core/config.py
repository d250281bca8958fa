"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


_INSECURE_SIGNING_SECRET = "dev-insecure-signing-key"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Shared by the API process and the queue worker. Every field can be
    overridden by the upper-cased environment variable of the same name.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./podpdf.db",
        description="Database connection URL"
    )
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections (PostgreSQL only)"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )

    # PDF generation
    max_longjob_pages: int = Field(
        default=100,
        description="Maximum page count accepted for long jobs"
    )
    # The renderer can overshoot by one page on trailing whitespace, so a
    # single extra page is tolerated before the limit triggers.
    page_limit_tolerance: int = Field(
        default=1,
        description="Pages tolerated beyond max_longjob_pages"
    )
    renderer_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the HTML/Markdown/image rendering service"
    )
    renderer_timeout_seconds: int = Field(
        default=120,
        description="HTTP timeout for a single render call"
    )

    # Artifact storage
    artifact_dir: str = Field(
        default="./artifacts",
        description="Directory where generated PDFs are stored"
    )
    artifact_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build signed download links"
    )
    artifact_signing_secret: str = Field(
        default=_INSECURE_SIGNING_SECRET,
        description="HMAC secret for signed download tokens (override in production)"
    )
    signed_url_ttl_seconds: int = Field(
        default=3600,
        description="Validity window of signed download URLs"
    )

    # Webhook delivery
    webhook_timeout_seconds: float = Field(
        default=10,
        description="Hard timeout for a single webhook attempt"
    )
    webhook_retry_delays: str = Field(
        default="1,2,4",
        description="Comma-separated backoff (seconds) between webhook attempts"
    )
    webhook_user_agent: str = Field(default="PodPDF-Webhook/1.0")
    webhook_require_https: bool = Field(
        default=True,
        description="Refuse to deliver to non-HTTPS webhook URLs"
    )

    # Accounts / billing
    default_plan_id: str = Field(default="free-basic")
    plan_cache_ttl_seconds: int = Field(
        default=300,
        description="Seconds a cached plan stays valid before being re-read"
    )

    # Queue / worker
    queue_batch_size: int = Field(default=10, description="Messages received per batch")
    queue_visibility_timeout_seconds: int = Field(
        default=300,
        description="Seconds a received message stays invisible before redelivery"
    )
    queue_max_receive_count: int = Field(
        default=5,
        description="Receives allowed before a message is dead-lettered"
    )
    worker_max_concurrency: int = Field(
        default=10,
        description="Threads used to fan out one batch"
    )
    worker_poll_interval_seconds: float = Field(
        default=5,
        description="Seconds to sleep when the queue is empty"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_webhook_retry_delays(self) -> List[float]:
        """
        Get the webhook backoff table as a list of seconds.

        The number of entries is the number of retries after the first attempt.
        """
        delays = [float(d.strip()) for d in self.webhook_retry_delays.split(',') if d.strip()]
        if any(d < 0 for d in delays):
            raise ValueError("WEBHOOK_RETRY_DELAYS must not contain negative values")
        return delays

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if security-critical settings use insecure defaults.
        In development, callers log warnings but startup proceeds.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors: list[str] = []

        if self.artifact_signing_secret == _INSECURE_SIGNING_SECRET:
            errors.append(
                "ARTIFACT_SIGNING_SECRET is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )

        if not self.webhook_require_https:
            errors.append(
                "WEBHOOK_REQUIRE_HTTPS is false. "
                "Webhook payloads carry download links and must not travel in clear text."
            )

        if errors:
            if self.environment == Environment.PRODUCTION:
                raise ConfigurationError(
                    "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
                )
            return

    def uses_insecure_defaults(self) -> bool:
        """True when the signing secret is still the development default."""
        return self.artifact_signing_secret == _INSECURE_SIGNING_SECRET

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
