"""
Application configuration using pydantic-settings.

Values come from the environment (or a ``.env`` file next to the project
root) and fall back to the defaults below.
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "SupplyChat"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "supplychat"
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Redis pub/sub for the live update bus; empty means in-process only
    REDIS_URL: Optional[str] = None

    # Messaging
    MESSAGE_MAX_LENGTH: int = 1000
    PREVIEW_LENGTH: int = 200
    TYPING_TTL_MS: int = 3000
    OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # CORS, comma-separated
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("REDIS_URL", "LOG_FILE", mode="before")
    @classmethod
    def blank_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def get_cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


def get_settings() -> Settings:
    return Settings()
