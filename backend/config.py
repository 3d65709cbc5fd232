"""
Application Configuration
=========================
Central configuration using pydantic-settings.
Reads from .env file automatically. All defaults are local-dev friendly.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings. Override via environment variables or .env file.

    For local development, no .env file is needed — all defaults work.
    The compression ceilings match what the web client has always used
    (1 MB output, 1920 px longest side).
    """

    # --- General ---
    BASE_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # --- Paths ---
    OUTPUTS_DIR: str = "outputs"

    # --- Compression ---
    COMPRESS_MAX_SIZE_MB: float = 1.0
    COMPRESS_MAX_DIMENSION: int = 1920
    COMPRESS_MAX_ITERATIONS: int = 10

    # --- Session defaults ---
    DEFAULT_OUTPUT_FORMAT: str = "image/jpeg"
    DEFAULT_QUALITY_LEVEL: int = 800

    # --- Background removal ---
    REMBG_MODEL: str = "u2net"
    BG_OUTPUT_QUALITY: float = 0.8

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
