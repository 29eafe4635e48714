"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional

_GENERATED_SECRET = secrets.token_urlsafe(32)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "PostRelay API"
    debug: bool = False
    environment: str = "development"

    # Security (client-facing bearer tokens)
    secret_key: str = os.getenv("SECRET_KEY", _GENERATED_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./postrelay.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Public address the broker calls back into
    public_base_url: str = "http://localhost:8000"
    callback_path: str = "/api/post/execute"

    # Broker (Upstash QStash)
    qstash_url: str = "https://qstash.upstash.io"
    qstash_token: str = ""
    qstash_current_signing_key: str = ""
    qstash_next_signing_key: Optional[str] = None
    signature_leeway_seconds: int = 30
    broker_timeout_seconds: float = 10.0

    # Scheduling policy
    max_schedule_days: int = 180
    retry_delay_seconds: int = 10
    execution_lease_seconds: int = 300

    # Delivery gateway (platform posting happens behind it)
    delivery_url: str = "http://localhost:8100/deliver"
    delivery_timeout_seconds: float = 15.0
    delivery_max_attempts: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def callback_url(self) -> str:
        """Absolute URL of the execution callback endpoint."""
        return self.public_base_url.rstrip("/") + self.callback_path


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def validate_settings(settings: Settings) -> None:
    """Refuse to start a production deployment with unsafe defaults."""
    if settings.environment != "production":
        return
    if settings.secret_key == _GENERATED_SECRET:
        raise ValueError(
            "SECRET_KEY must be set in production! "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
        )
    if not settings.qstash_current_signing_key:
        raise ValueError("QSTASH_CURRENT_SIGNING_KEY must be set in production!")
    if not settings.qstash_token:
        raise ValueError("QSTASH_TOKEN must be set in production!")
