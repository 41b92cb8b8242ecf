# resizer/config.py
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")


class Settings(BaseSettings):
    """Process-wide configuration, read once when the app is created."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    # --- Identity ---
    APP_NAME: str = Field(default="Image Resize API")

    # --- Encoding ---
    TARGET_QUALITY: int = Field(default=80, ge=1, le=100)
    TARGET_DEFAULT_WIDTH: int = Field(default=1280, ge=0)

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=3000, ge=1, le=65535)
    SSL_CERTFILE: Optional[str] = None
    SSL_KEYFILE: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # --- Streaming ---
    STREAM_CHUNK_BYTES: int = Field(default=64 * 1024, ge=1024)
    STREAM_BUFFER_CHUNKS: int = Field(default=4, ge=1)
    PROBE_MAX_BYTES: int = Field(default=1024 * 1024, ge=1024)

    # Pillow decompression bomb guard (its own default)
    MAX_IMAGE_PIXELS: int = Field(default=178_956_970, ge=1)

    # --- Metrics ---
    METRICS_ENABLED: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


__all__ = ["APP_VERSION", "Settings", "get_settings"]
