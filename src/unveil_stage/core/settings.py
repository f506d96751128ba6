"""Application settings and configuration.

This module defines all configuration options for the Unveil Stage application.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REVEAL_LEVEL_COUNT = 4


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Unveil Stage application.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Unveil Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./unveil.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Lock contention is retried at the transaction level, never at the gate.
    transaction_max_retries: int = Field(default=3, ge=0, alias="TRANSACTION_MAX_RETRIES")
    transaction_retry_base_delay: float = Field(
        default=0.05,
        ge=0.0,
        alias="TRANSACTION_RETRY_BASE_DELAY",
    )

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Reveal policy: text-message counts unlocking levels 1..4
    reveal_thresholds: tuple[int, int, int, int] = Field(
        default=(10, 30, 50, 80),
        alias="REVEAL_THRESHOLDS",
    )

    # Messaging limits
    max_text_length: int = Field(default=1000, ge=1, alias="MAX_TEXT_LENGTH")
    message_page_default: int = Field(default=50, ge=1, alias="MESSAGE_PAGE_DEFAULT")
    message_page_max: int = Field(default=100, ge=1, alias="MESSAGE_PAGE_MAX")

    # Per-conversation send gate (anti-flood throttle)
    send_min_interval_ms: int = Field(default=400, ge=0, alias="SEND_MIN_INTERVAL_MS")
    gate_idle_ttl_seconds: float = Field(default=60.0, gt=0, alias="GATE_IDLE_TTL_SECONDS")
    gate_task_timeout_seconds: float | None = Field(
        default=None,
        alias="GATE_TASK_TIMEOUT_SECONDS",
    )

    # Realtime gateway
    typing_min_interval_ms: int = Field(default=800, ge=0, alias="TYPING_MIN_INTERVAL_MS")
    realtime_send_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        alias="REALTIME_SEND_TIMEOUT_SECONDS",
    )

    # CORS configuration for web and mobile clients
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("reveal_thresholds")
    @classmethod
    def _check_thresholds(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if len(value) != REVEAL_LEVEL_COUNT:
            raise ValueError(f"REVEAL_THRESHOLDS needs exactly {REVEAL_LEVEL_COUNT} values")
        if value[0] <= 0:
            raise ValueError("REVEAL_THRESHOLDS must be positive")
        if any(later <= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("REVEAL_THRESHOLDS must be strictly ascending")
        return value

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def send_min_interval(self) -> float:
        """Minimum spacing between two sends into one conversation, in seconds."""
        return self.send_min_interval_ms / 1000.0

    @property
    def typing_min_interval(self) -> float:
        """Minimum spacing between typing broadcasts from one connection, in seconds."""
        return self.typing_min_interval_ms / 1000.0


settings = Settings()  # type: ignore[call-arg]
