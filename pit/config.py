"""Runtime settings using Pydantic Settings.

Values come from an optional YAML file (``.pitrc.yaml`` by default) and from
``PIT_*`` environment variables, which take precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schema import SchemaError

CONFIG_FILE = ".pitrc.yaml"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """Tracker settings."""

    model_config = SettingsConfigDict(
        env_prefix="PIT_",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    data_file: Path = Field(default=Path("pit.yaml"), description="Workspace YAML file")
    preview_size: int = Field(default=3, ge=0, description="Representative tasks shown in summaries")
    query_timeout: Optional[float] = Field(
        default=10.0,
        description="Seconds allowed for a rollup's sibling fetch; 0 disables the limit",
    )
    log_level: str = Field(default="WARNING")
    log_file: Optional[Path] = Field(default=None, description="JSON-lines log file")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return env_settings, init_settings

    @field_validator("query_timeout", "log_file", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("query_timeout")
    @classmethod
    def _positive_timeout(cls, value: Optional[float]) -> Optional[float]:
        return value if value and value > 0 else None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got '{value}'")
        return level


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build :class:`Settings` from the config file and the environment.

    ``path`` defaults to ``.pitrc.yaml`` in the working directory; a missing
    file is fine. Unknown keys are ignored.
    """
    file = path or Path(CONFIG_FILE)
    values = {}
    if file.exists():
        values = yaml.safe_load(file.read_text()) or {}
        if not isinstance(values, dict):
            raise SchemaError(f"{file} must contain a mapping")
    try:
        return Settings(**values)
    except ValidationError as e:
        raise SchemaError(f"invalid settings: {e}") from None


def apply_overrides(settings: Settings, **changes: Any) -> Settings:
    """Set command-line values on ``settings``; ``None`` keeps the loaded value."""
    try:
        for name, value in changes.items():
            if value is not None:
                setattr(settings, name, value)
    except ValidationError as e:
        raise SchemaError(f"invalid settings: {e}") from None
    return settings


__all__ = ["Settings", "load_settings", "apply_overrides", "CONFIG_FILE", "LOG_LEVELS"]
