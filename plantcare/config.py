"""
PlantCare — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import socket
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from plantcare/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # LLM — provider-agnostic (openai, anthropic)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""        # empty → AI features report LLMConfigError

    # Local persistence (SQLite key-value table)
    DATABASE_PATH: str = "data/plantcare.db"

    # Backups: cloud-synced folder preferred, local folder as fallback
    CLOUD_BACKUP_DIR: str = ""
    LOCAL_BACKUP_DIR: str = "data/backups"
    AUTO_BACKUP_INTERVAL_HOURS: int = 24
    DEVICE_NAME: str = ""

    # Plant photos
    PHOTOS_DIR: str = "data/photos"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Daily care reminder
    REMINDER_HOUR: int = 9
    REMINDER_MINUTE: int = 30
    TIMEZONE: str = "Europe/London"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "REMINDER_HOUR", "REMINDER_MINUTE", "AUTO_BACKUP_INTERVAL_HOURS", mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("DEVICE_NAME", mode="before")
    @classmethod
    def default_device_name(cls, v: str | None) -> str:
        return v or socket.gethostname()


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/plantcare.db"),
        CLOUD_BACKUP_DIR=os.getenv("CLOUD_BACKUP_DIR", ""),
        LOCAL_BACKUP_DIR=os.getenv("LOCAL_BACKUP_DIR", "data/backups"),
        AUTO_BACKUP_INTERVAL_HOURS=os.getenv("AUTO_BACKUP_INTERVAL_HOURS", "24"),
        DEVICE_NAME=os.getenv("DEVICE_NAME", ""),
        PHOTOS_DIR=os.getenv("PHOTOS_DIR", "data/photos"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        REMINDER_HOUR=os.getenv("REMINDER_HOUR", "9"),
        REMINDER_MINUTE=os.getenv("REMINDER_MINUTE", "30"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/London"),
    )


# Singleton — imported by all other modules as:
#   from plantcare.config import settings
settings = _load_settings()
