"""Pydantic settings loaded from .env and environment variables."""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent

_env_file = BASE_DIR / ".env"
load_dotenv(_env_file)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    # Messaging platform
    VK_BOT_TOKEN: str = ""
    BOT_API_URL: str = "https://myteam.mail.ru/bot/v1"
    BOT_HTTP_TIMEOUT: float = 10.0

    # Storage
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'taskbot.sqlite3'}"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Loops
    POLLING_ENABLED: bool = True
    POLL_INTERVAL_SECONDS: float = 3.0
    POLL_TIMEOUT_SECONDS: int = 3
    REMINDER_INTERVAL_SECONDS: float = 30.0
    EVENT_CURSOR_CHECKPOINT: bool = False

    # Conversation sessions
    SESSION_TTL_SECONDS: int = 3600
    FLUSH_SESSIONS_ON_START: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000

    CORS_ORIGIN: str = ""
    CORS_METHODS: str = "GET,POST"
    CORS_ALLOWED_HEADERS: str = "Content-Type,Authorization"
    CORS_CREDENTIALS: bool = True

    model_config = ConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS_ORIGIN into a list of origins."""
        return _split_csv(self.CORS_ORIGIN)

    @property
    def cors_methods(self) -> list[str]:
        return _split_csv(self.CORS_METHODS)

    @property
    def cors_allowed_headers(self) -> list[str]:
        return _split_csv(self.CORS_ALLOWED_HEADERS)


settings = Settings()
