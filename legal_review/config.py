"""
Configuration management for the Legal Review service.

This module uses pydantic-settings to manage environment variables with type validation.
Provider choices (which AI backend, its URL, model and keys) are user-editable at
runtime and live in the settings table instead; see services/provider_settings.py.
The values here only supply their defaults.

Usage:
    from legal_review.config import get_settings

    settings = get_settings()
    db_url = settings.database_url
    storage = settings.storage_dir
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the project root directory (parent of legal_review/)
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./legal_review.db",
        description="SQLAlchemy connection string"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment (development/staging/production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG/INFO/WARNING/ERROR/CRITICAL)"
    )

    app_name: str = Field(
        default="Legal Document Review Assistant",
        description="Application name for FastAPI"
    )

    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )

    # File storage
    storage_dir: Path = Field(
        default=PROJECT_ROOT / "data" / "documents",
        description="Directory where uploaded PDFs are copied"
    )

    reports_dir: Path = Field(
        default=PROJECT_ROOT / "data" / "reports",
        description="Directory where generated reports are exported as text files"
    )

    # Analysis engine defaults
    engine_timeout_seconds: float = Field(
        default=300.0,
        description="Timeout for a single call to the analysis engine"
    )

    default_ollama_url: str = Field(
        default="http://localhost:11434",
        description="Ollama base URL used when the ollama_url setting is unset"
    )

    default_ollama_model: str = Field(
        default="llama3",
        description="Ollama model used when the ollama_model setting is unset"
    )

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra fields in .env
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Uses lru_cache so Settings is instantiated only once per process.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from Settings.log_level (or an explicit level)."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
