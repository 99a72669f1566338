"""
Configuration management for Monday Mirror.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_workspace_names(raw: str) -> List[str]:
    """
    Parse the comma-separated priority workspace allow-list.

    Examples:
        "CRM,Lab" -> ["CRM", "Lab"]
        "  CRM , Production 2025  " -> ["CRM", "Production 2025"]
        "" -> []
    """
    if not raw or not raw.strip():
        return []

    names = [name.strip() for name in raw.split(",")]
    return [n for n in names if n]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Monday Mirror")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # monday.com API
    monday_api_key: Optional[str] = Field(default=None)
    monday_api_url: str = Field(default="https://api.monday.com/v2")
    monday_api_version: str = Field(default="2024-01")
    monday_timeout_seconds: float = Field(default=30.0)

    # Database
    database_url: str = Field(default="sqlite:///./monday_mirror.db")

    # Freshness
    cache_ttl_hours: float = Field(
        default=24,
        description="Mirror older than this is refreshed incrementally by smart sync.",
    )
    full_sync_after_hours: float = Field(
        default=48,
        description="Mirror older than this is rebuilt with a full sync by smart sync.",
    )
    sync_history_limit: int = Field(default=100, ge=1)

    # Discovery scope
    max_boards_per_workspace: int = Field(default=12)
    include_archived: bool = Field(default=False)
    priority_workspaces: str = Field(
        default="",
        description="Comma-separated workspace names the mirror is restricted to. Empty string = all workspaces.",
    )

    # Health analysis
    inactive_days_threshold: int = Field(default=30)
    underutilized_items_threshold: int = Field(default=5)
    min_board_age_days: int = Field(default=7)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @property
    def priority_workspace_names(self) -> List[str]:
        return parse_workspace_names(self.priority_workspaces)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
