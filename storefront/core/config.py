# storefront/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - JWT_SECRET (HS256 secret shared with the token issuer)

    Optional:
      - DATABASE_URL (defaults to a local SQLite file)
      - PAYMENT_WEBHOOK_SECRET (payment signature verification)
      - SHIPPING_LABEL_URL / SHIPPING_API_TOKEN (post-commit label creation)
      - SMTP_* (order confirmation mail)
    """

    PROJECT_NAME: str = "Storefront Orders Backend"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Embedded single-writer store by default
    DATABASE_URL: str = "sqlite:///./storefront.db"
    DB_BUSY_TIMEOUT_SECONDS: float = 15.0

    # Store-level failures (busy/locked) are retried this many times in total
    TX_RETRY_ATTEMPTS: int = 3
    TX_RETRY_BACKOFF_SECONDS: float = 0.05

    # JWT verification (backend-side)
    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    # Reject orders whose client-declared total differs from the computed one
    ENFORCE_DECLARED_TOTAL: bool = True

    PAYMENT_WEBHOOK_SECRET: str | None = None

    SHIPPING_LABEL_URL: str | None = None
    SHIPPING_API_TOKEN: str | None = None
    SHIPPING_TIMEOUT_SECONDS: float = 10.0

    # Order confirmation mail; sending is skipped unless host and credentials are set
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Storefront"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
