"""
Configuration management using Pydantic Settings.

All configuration is loaded from environment variables prefixed with
``PRIZM_``, with support for .env files.
"""

from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PrecisionMode = Literal["q4", "q8", "fp16", "fp32"]

PRECISION_MODES: tuple[str, ...] = ("q4", "q8", "fp16", "fp32")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PRIZM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Local embedding model
    EMBEDDING_ENABLED: bool = True
    EMBEDDING_MODEL: str = "TaylorAI/bge-micro-v2"
    EMBEDDING_CACHE_DIR: str = "~/.prizm/models"
    EMBEDDING_PRECISION: PrecisionMode = "q8"
    EMBEDDING_MAX_CONCURRENCY: int = Field(default=1, ge=1)

    # Offline model assets shipped with the application (auto-detected if unset)
    EMBEDDING_BUNDLED_DIR: Optional[str] = None

    # HuggingFace
    HF_TOKEN: Optional[str] = None

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 4127
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: str = "*"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    # Threading
    MAX_LOAD_WORKERS: int = 1

    @field_validator("EMBEDDING_PRECISION", mode="before")
    @classmethod
    def _lower_precision(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
