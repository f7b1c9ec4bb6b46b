"""Service configuration.

Loaded from environment variables and an optional `.env` file.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # HTTP
    HOST: str = "0.0.0.0"
    PORT: int = 10000
    API_ROOT_PATH: str = ""

    # Shared secrets. Empty means "not configured".
    API_KEY: str = ""  # agent/dashboard
    ADMIN_KEY: str = ""
    MASTER_KEY: str = ""

    # Durable store: FILE (JSON documents, temp+rename) or DB (SQLAlchemy table)
    STORE_BACKEND: str = "FILE"
    DATA_DIR: str = "."
    DATABASE_URL: str = "sqlite:///./copier.db"

    # Event log
    EVENT_RETENTION: int = 50000
    POLL_LIMIT_DEFAULT: int = 200
    POLL_LIMIT_MAX: int = 500

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
