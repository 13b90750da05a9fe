"""
FraudFlow Configuration.

Pydantic Settings v2 - loads from .env, environment variables.

The two risk thresholds (fraud threshold and suspicion minimum) are read once
and exposed as a single frozen Thresholds object shared by every component
that needs them.
"""

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fraudflow.errors import ConfigurationError


class Thresholds(BaseModel):
    """Risk thresholds on the 0–100 scale."""

    model_config = ConfigDict(frozen=True)

    fraud_threshold: float = Field(default=85.0, ge=0.0, le=100.0)
    suspicion_min: float = Field(default=50.0, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def _ordered(self) -> "Thresholds":
        if not self.suspicion_min < self.fraud_threshold:
            raise ValueError(
                f"suspicion_min ({self.suspicion_min}) must be strictly below "
                f"fraud_threshold ({self.fraud_threshold})"
            )
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "FraudFlow"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8002, alias="API_PORT")
    api_prefix: str = "/api/v1"
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        alias="CORS_ORIGINS",
    )
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    # ── Storage ──────────────────────────────────────────────────────────
    store_backend: Literal["memory", "sql"] = Field(default="memory", alias="STORE_BACKEND")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fraudflow.db",
        alias="DATABASE_URL",
    )
    db_echo: bool = Field(default=False, alias="DB_ECHO")

    # ── Risk thresholds (0–100) ──────────────────────────────────────────
    fraud_threshold: float = Field(default=85.0, ge=0.0, le=100.0, alias="FRAUD_THRESHOLD")
    suspicion_min: float = Field(default=50.0, ge=0.0, le=100.0, alias="SUSPICION_MIN")

    # ── Alerting ──────────────────────────────────────────────────────────
    alert_sla_base_hours: float = Field(default=24.0, gt=0, alias="ALERT_SLA_BASE_HOURS")

    # ── External Services ─────────────────────────────────────────────────
    classifier_url: str = Field(default="http://localhost:8090", alias="CLASSIFIER_URL")
    classifier_timeout_seconds: float = Field(default=60.0, alias="CLASSIFIER_TIMEOUT_SECONDS")
    classifier_retry_attempts: int = Field(default=2, ge=0, alias="CLASSIFIER_RETRY_ATTEMPTS")
    classifier_retry_base_delay: float = Field(default=1.0, ge=0, alias="CLASSIFIER_RETRY_BASE_DELAY")
    tampering_url: str = Field(
        default="",
        alias="TAMPERING_URL",
        description="Gradio endpoint of the tampering detector; empty disables it",
    )
    tampering_timeout_seconds: float = Field(default=30.0, alias="TAMPERING_TIMEOUT_SECONDS")
    tampering_quality: int = Field(default=90, ge=1, le=100, alias="TAMPERING_QUALITY")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")
    sse_keepalive_seconds: float = Field(default=30.0, alias="SSE_KEEPALIVE_SECONDS")

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "Settings":
        if not self.suspicion_min < self.fraud_threshold:
            raise ValueError(
                f"SUSPICION_MIN ({self.suspicion_min}) must be strictly below "
                f"FRAUD_THRESHOLD ({self.fraud_threshold})"
            )
        return self

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(fraud_threshold=self.fraud_threshold, suspicion_min=self.suspicion_min)

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


def load_settings(**overrides) -> Settings:
    """Build Settings, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


settings = load_settings()
