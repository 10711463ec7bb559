"""
Application configuration
Loaded from environment variables and .env via pydantic-settings
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_database_url() -> str:
    """Use the mounted /data volume in production, a local file in development."""
    if os.path.isdir("/data"):
        return "sqlite+aiosqlite:////data/usage.db"
    return "sqlite+aiosqlite:///./local-usage.db"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ==================== Application ====================
    app_name: str = "Transcribe API"
    app_version: str = "1.0.0"
    debug: bool = False
    api_prefix: str = "/api"

    # ==================== Gemini provider ====================
    google_api_key: str = Field(default="", alias="GOOGLE_API_KEY")
    mock_api: bool = Field(default=False, alias="MOCK_API")
    transcription_models: list[str] = Field(
        default=[
            "gemini-3-flash-preview",
            "gemini-2.5-flash",
            "gemini-2.5-flash-lite-preview-09-2025",
        ],
        alias="TRANSCRIPTION_MODELS",
    )
    repair_model: str = Field(default="gemini-2.5-flash", alias="REPAIR_MODEL")

    # Polling and retry
    poll_interval_seconds: float = Field(default=5.0, alias="POLL_INTERVAL_SECONDS")
    max_poll_retries: int = Field(default=3, alias="MAX_POLL_RETRIES")
    retry_base_delay_seconds: float = Field(default=1.0, alias="RETRY_BASE_DELAY_SECONDS")

    # Mock mode pacing
    mock_upload_delay_seconds: float = Field(default=1.0, alias="MOCK_UPLOAD_DELAY_SECONDS")
    mock_chunk_delay_seconds: float = Field(default=0.05, alias="MOCK_CHUNK_DELAY_SECONDS")

    # ==================== Limits ====================
    rate_limit_requests: int = Field(default=5, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_seconds: int = Field(default=24 * 60 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")
    max_upload_size: int = Field(default=256 * 1024 * 1024, alias="MAX_UPLOAD_SIZE")  # 256MB
    max_media_duration_ms: int = Field(default=2 * 60 * 60 * 1000, alias="MAX_MEDIA_DURATION_MS")
    max_field_size: int = Field(default=64 * 1024, alias="MAX_FIELD_SIZE")
    upload_temp_dir: str | None = Field(default=None, alias="UPLOAD_TEMP_DIR")

    # ==================== Database ====================
    database_url: str = Field(default_factory=_default_database_url, alias="DATABASE_URL")

    # ==================== CORS ====================
    cors_origins: list[str] = Field(default=["http://localhost:5173"], alias="CORS_ORIGINS")

    # ==================== Logging ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(default="logs/app.log", alias="LOG_FILE")


@lru_cache
def get_settings() -> Settings:
    """Settings singleton"""
    return Settings()


settings = get_settings()
