"""Pydantic settings for POSTAI configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PostAIConfig(BaseSettings):
    """Main POSTAI configuration loaded from POSTAI_ prefixed environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="POSTAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "WARNING"
    debug: bool = False

    # Document store
    storage_dir: str = Field(default_factory=lambda: str(Path.home() / ".postai" / "swagger"))
    recent_urls_limit: int = 10
    fetch_timeout_seconds: float = 30.0

    # Text completion
    llm_model: str = "claude-sonnet-4-20250514"
    llm_api_key: str = ""
    llm_temperature: float = 0.0

    # Requests
    request_timeout_ms: int = 5000

    # Search
    semantic_search_enabled: bool = True
    search_preview_limit: int = 20

    # Presenter
    json_preview_chars: int = 2000
    table_max_rows: int = 20
    table_cell_width: int = 30


def load_config() -> PostAIConfig:
    """Load and return the POSTAI configuration.

    Returns:
        Populated PostAIConfig instance.
    """
    return PostAIConfig()
