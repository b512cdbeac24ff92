from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    STOREFRONT_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    # Attempts per workflow transaction when the store reports a transient conflict
    TRANSACTION_MAX_ATTEMPTS: int = 3

    # Redis (idempotency cache + ARQ notification queue)
    REDIS_URL: str = "redis://localhost:6379/0"
    PAYMENT_CACHE_TTL_SECONDS: int = 86400

    # Auth
    # Placeholder keeps local/test runs working; real deployments override via env.
    AUTH_JWT_SECRET: str = "test-jwt-secret"

    # Payments
    DEFAULT_CURRENCY: str = "XOF"
    # Shared with the payment gateway; callbacks are HMAC-SHA512 signed with it.
    # Empty means no callback can be verified.
    PAYMENT_WEBHOOK_SECRET: str = ""

    # Notifications
    NOTIFICATION_QUEUE_MAXSIZE: int = 1000
    # "arq" enqueues jobs for the communications worker; "log" only logs them
    NOTIFICATION_BACKEND: Literal["arq", "log"] = "arq"
    # Identical emails to the same recipient within this window are sent once
    NOTIFICATION_DEDUP_TTL_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
