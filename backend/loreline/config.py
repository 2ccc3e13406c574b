"""
Configuration settings using Pydantic Settings.
"""

from pathlib import Path
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

BASE_DIR = Path(__file__).resolve().parents[1]

TIMELINE_WRITE_MODES = ("legacy", "dual-write")
TIMELINE_READ_MODES = ("legacy", "timeline")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    DATABASE_DIR: str = "database"
    DEFAULT_DATABASE: str = "worldbuilding"

    TIMELINE_READ_MODE: str = "timeline"
    TIMELINE_WRITE_MODE: str = "legacy"
    TIMELINE_AUDIT_ENABLED: bool = False

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @field_validator("TIMELINE_WRITE_MODE")
    @classmethod
    def check_write_mode(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in TIMELINE_WRITE_MODES:
            raise ValueError(f"TIMELINE_WRITE_MODE must be one of: {', '.join(TIMELINE_WRITE_MODES)}")
        return normalized

    @field_validator("TIMELINE_READ_MODE")
    @classmethod
    def check_read_mode(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in TIMELINE_READ_MODES:
            raise ValueError(f"TIMELINE_READ_MODE must be one of: {', '.join(TIMELINE_READ_MODES)}")
        return normalized

    @model_validator(mode="after")
    def resolve_relative_paths(self):
        db_dir = Path(self.DATABASE_DIR)
        if not db_dir.is_absolute():
            self.DATABASE_DIR = str((BASE_DIR / db_dir).resolve())

        return self

    @property
    def dual_write_enabled(self) -> bool:
        return self.TIMELINE_WRITE_MODE == "dual-write"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    :return: Cached Settings instance
    :rtype: Settings
    """
    return Settings()
