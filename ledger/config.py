"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Every field has a default, so the ledger can be imported as a library (and
in tests) without any environment set up.

Usage:
    from ledger.config import settings
    print(settings.MIN_AMOUNT_IDR)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the ledger service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Finance Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local use; swap to a PostgreSQL (asyncpg) URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ledger.db"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Ledger rules ---
    # Smallest amount a transaction may carry, in minor units (Rupiah)
    MIN_AMOUNT_IDR: int = 100
    # Upper bound on ids per bulk delete, bounds the size of one DB transaction
    BULK_DELETE_MAX_IDS: int = 100
    LIST_DEFAULT_LIMIT: int = 50
    LIST_MAX_LIMIT: int = 100

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
