"""
Configuration settings for the SIAKAD sync client.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SIAKAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Remote API
    # ========================================
    api_base_url: str = Field(
        default="http://127.0.0.1:8000/api",
        description="Base URL of the SIAKAD REST API (Android emulator: http://10.0.2.2:8000/api)",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Transport timeout applied to every API request",
    )
    messages_limit: int = Field(
        default=50,
        description="Messages requested per fetch (server caps at 200)",
    )

    # ========================================
    # Local Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".siakad",
        description="Directory holding the local key-value store",
    )
    store_filename: str = Field(
        default="store.db",
        description="SQLite file name of the local key-value store",
    )

    # ========================================
    # Sync
    # ========================================
    refresh_interval_seconds: float = Field(
        default=8.0,
        description="Background message refresh interval",
    )
    outbox_max_attempts: int = Field(
        default=10,
        description="Replay attempts before a pending push is dropped",
    )

    # ========================================
    # Reminders
    # ========================================
    default_notif_time: str = Field(
        default="08:00",
        description="Reminder time (HH:MM) used when no preference is stored",
    )
    summary_max_courses: int = Field(
        default=5,
        description="Course names listed in the daily digest body",
    )

    # ========================================
    # Grade Reports (KHS)
    # ========================================
    khs_rtdb_url: str = Field(
        default="https://mini-siakad-bcff1-default-rtdb.firebaseio.com",
        description="Firebase Realtime Database holding KHS records",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @property
    def store_path(self) -> Path:
        """Full path of the SQLite key-value store."""
        return self.data_dir / self.store_filename


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
