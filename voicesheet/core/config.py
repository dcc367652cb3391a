"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """VoiceSheet settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        api_base_url: Root of the extraction backend's versioned REST API.
        sample_rate: Capture sample rate for the local microphone.
        success_banner_seconds: Lifetime of a success banner.
        error_banner_seconds: Lifetime of an error banner.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Backend ---
    api_base_url: str = "http://localhost:8000/api/v1"
    request_timeout: float = 30.0
    audio_timeout: float = 120.0  # STT + extraction can be slow on CPU
    upload_timeout: float = 60.0

    # --- Audio capture ---
    sample_rate: int = 16000
    channels: int = 1
    chunk_interval: float = 0.1  # Seconds between buffered device reads
    level_interval: float = 0.05  # Seconds between level meter samples
    input_device: str = ""  # Empty = system default input

    # --- Workflow ---
    success_banner_seconds: float = 3.0
    error_banner_seconds: float = 5.0

    # --- Application ---
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
