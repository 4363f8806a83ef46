"""Global configuration using Pydantic settings."""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class Settings(BaseSettings):
    """Application wide settings loaded from environment variables."""

    sample_rate: int = 16_000
    channels: int = 1
    chunk_seconds: float = 10.0
    fragment_seconds: float = 1.0
    capture_device: Optional[str] = None
    output_device: Optional[str] = None
    passthrough_enabled: bool = True
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    max_in_flight_dispatches: int = Field(default=4, ge=0)
    transcription_backend: str = "openai"
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_transcription_model: str = "whisper-1"
    gateway_timeout_seconds: float = 60.0
    translation_target: str = "en"
    default_language: str = "auto"
    default_translate_to: Optional[str] = None
    server_url: str = "http://127.0.0.1:8000"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    model_config = SettingsConfigDict(
        env_prefix="TABSCRIBE_",
        env_file=".env",
        case_sensitive=False,
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return a singleton instance of the application settings."""

    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""

    global _settings
    _settings = None


__all__ = ["MAX_UPLOAD_BYTES", "Settings", "get_settings", "reset_settings"]
