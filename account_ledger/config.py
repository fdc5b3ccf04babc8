"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps secrets out of source code: the .env file is
gitignored, and .env.example provides a safe template for developers.

Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from account_ledger.config import settings
    print(settings.UNIT_OF_WORK_TIMEOUT_SECONDS)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Account Ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Account Ledger API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- Database ---
    # SQLite for development; use a postgresql+asyncpg:// URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ledger.db"

    # How long a SQLite connection waits on the database file lock before
    # giving up with "database is locked" (reported as a busy account).
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 5.0

    # --- Authentication ---
    # REQUIRED: No default, forces the developer to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # The built-in administrative identity. Accounts with role "admin" are
    # administrators as well.
    ADMIN_ACCOUNT_NUMBER: str = "0000"

    # Failed PIN logins before an account is locked
    LOGIN_LOCK_THRESHOLD: int = 3

    # --- Transaction engine ---
    # PostgreSQL lock_timeout applied to every unit of work (milliseconds).
    # Row locks are taken with NOWAIT, so this only bounds other lock waits.
    LOCK_TIMEOUT_MS: int = 2000

    # Absolute deadline for one transaction-affecting unit of work
    UNIT_OF_WORK_TIMEOUT_SECONDS: float = 10.0

    # --- Listing ---
    LIST_LIMIT_DEFAULT: int = 100
    LIST_LIMIT_MAX: int = 500
    EXPORT_LIMIT_MAX: int = 5000

    # --- Receipts ---
    # When unset, receipts are written to the log instead of emailed
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "receipts@ledger.local"
    # Accounts carry no e-mail address; emailed receipts go to this mailbox
    RECEIPT_RECIPIENT: str | None = None
    RECEIPT_HTTP_TIMEOUT_SECONDS: float = 10.0

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
