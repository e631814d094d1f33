"""
Core configuration using Pydantic Settings.
Loads from environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    app_name: str = Field(default="screening-orchestrator", alias="APP_NAME")
    app_env: Literal["development", "staging", "production"] = Field(
        default="development", alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    # API
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="ALLOWED_ORIGINS",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./screening.db", alias="DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    transcript_buffer_backend: Literal["memory", "redis"] = Field(
        default="memory", alias="TRANSCRIPT_BUFFER_BACKEND"
    )

    # Celery
    celery_broker_url: str = Field(
        default="redis://localhost:6379/1", alias="CELERY_BROKER_URL"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2", alias="CELERY_RESULT_BACKEND"
    )

    # Auth
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    call_engine_webhook_secret: str | None = Field(
        default=None, alias="CALL_ENGINE_WEBHOOK_SECRET"
    )

    # Logging
    log_request_body: bool = Field(default=False, alias="LOG_REQUEST_BODY")
    log_max_body_size: int = Field(default=1024, alias="LOG_MAX_BODY_SIZE")
    json_logs: bool = Field(default=True, alias="JSON_LOGS")

    # Interview sessions
    min_resume_length: int = Field(default=100, ge=1, alias="MIN_RESUME_LENGTH")
    session_timeout_minutes: int = Field(
        default=30, ge=1, alias="SESSION_TIMEOUT_MINUTES"
    )
    reaper_interval_seconds: int = Field(
        default=60, ge=1, alias="REAPER_INTERVAL_SECONDS"
    )
    reaper_enabled: bool = Field(default=True, alias="REAPER_ENABLED")

    # Email
    notification_backend: Literal["log", "smtp", "celery"] = Field(
        default="log", alias="NOTIFICATION_BACKEND"
    )
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_from_email: str | None = Field(default=None, alias="SMTP_FROM_EMAIL")
    smtp_from_name: str = Field(default="Hiring Team", alias="SMTP_FROM_NAME")

    @model_validator(mode="after")
    def check_notification_backend(self) -> "Settings":
        """Fail at startup when the chosen mail backend cannot work."""
        if self.notification_backend == "smtp":
            missing = [
                name
                for name, value in (("SMTP_HOST", self.smtp_host), ("SMTP_USER", self.smtp_user))
                if not value
            ]
            if missing:
                raise ValueError(
                    f"NOTIFICATION_BACKEND=smtp requires {', '.join(missing)}"
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Build and cache the process settings."""
    return Settings()
