"""Configuration management for Quest Engine MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuestSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    template_paths: tuple[Path, ...] = Field(
        default=(Path("templates"),), validation_alias="QUEST_TEMPLATE_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="QUEST_LOG_LEVEL")
    default_tick_seconds: float = Field(
        default=1.0, validation_alias="QUEST_DEFAULT_TICK_SECONDS"
    )
    pause_on_restore: bool = Field(default=True, validation_alias="QUEST_PAUSE_ON_RESTORE")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "QUEST_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("template_paths", mode="before")
    @classmethod
    def _parse_template_paths(cls, value):
        if value is None or value == "":
            return (Path("templates"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("templates"),)
        raise TypeError("QUEST_TEMPLATE_PATHS must be a list of paths or a path-separated string")

    @field_validator("default_tick_seconds")
    @classmethod
    def _validate_default_tick_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("QUEST_DEFAULT_TICK_SECONDS must be > 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> QuestSettings:
    """Return cached settings instance."""

    settings = QuestSettings()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.template_paths = tuple(path.expanduser().resolve() for path in settings.template_paths)
    return settings


__all__ = ["QuestSettings", "get_settings"]
