"""
Application settings.

Values come from environment variables prefixed with ``CONVERTER_`` or from a
``.env`` file in the working directory.

Environment Variables:
    CONVERTER_TEMP_DIR: Directory for uploads and generated files (default: system temp dir)
    CONVERTER_LOG_DIR: Directory for the daily log file (default: ./logs next to this file)
    CONVERTER_LOG_LEVEL: Logging level (default: INFO)
    CONVERTER_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    CONVERTER_HOST: Server bind host (default: 0.0.0.0)
    CONVERTER_PORT: Server bind port (default: 5000)
    CONVERTER_RELOAD: Enable uvicorn auto-reload (default: false)
"""
import logging
import os
import tempfile
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the converter API, loaded once per process."""

    model_config = SettingsConfigDict(
        env_prefix="CONVERTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    temp_dir: str = tempfile.gettempdir()
    log_dir: str = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
    log_level: str = "INFO"
    cors_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 5000
    reload: bool = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
