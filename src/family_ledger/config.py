"""Configuration management for Family Ledger."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Tenant key stamped on every row
    workspace_id: str = "default"

    # Settlement settings
    draft_note_prefix: str = "[DRAFT] "  # Marks a settlement header as a draft
    recent_settlements_limit: int = 10  # Headers shown in the summary

    # History settings
    history_days: int = 90  # Default look-back when no range is given
    history_limit: int = 50

    # Database path
    database_path: Path = Path.home() / ".family_ledger" / "family_ledger.db"

    @field_validator("database_path")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("draft_note_prefix")
    @classmethod
    def _non_empty_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("draft_note_prefix must not be empty")
        return value

    def __init__(self, **kwargs):
        """Initialize settings and create the database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your .env file and environment "
            f"variables. See .env.example for reference.\n"
            f"Error: {e}"
        ) from e
