"""Configuration management for the session workflow."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    session_root: Path = Field(default=Path(".session"), validation_alias="SESSION_ROOT")
    specs_dir: Path = Field(default=Path("specs"), validation_alias="SESSION_SPECS_DIR")
    gh_path: str | None = Field(default=None, validation_alias="GH_PATH")
    github_repo: str | None = Field(default=None, validation_alias="SESSION_GITHUB_REPO")
    command_timeout: float = Field(default=60.0, validation_alias="SESSION_COMMAND_TIMEOUT")
    default_base_branch: str = Field(default="main", validation_alias="SESSION_DEFAULT_BASE")
    board_config_path: Path | None = Field(default=None, validation_alias="SESSION_BOARD_CONFIG")
    log_level: str = Field(default="INFO", validation_alias="SESSION_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "SESSION_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("command_timeout")
    @classmethod
    def _validate_command_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("SESSION_COMMAND_TIMEOUT must be > 0")
        return value

    @field_validator("github_repo", "gh_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def resolved_board_config_path(self) -> Path:
        """Board config location, defaulting to the project-context directory."""

        if self.board_config_path is not None:
            return self.board_config_path
        return self.session_root / "project-context" / "project-board.yaml"


def configure_logging(level: str) -> None:
    """Configure root logging; records go to stderr so JSON on stdout stays clean."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


@lru_cache(maxsize=1)
def get_settings() -> SessionSettings:
    """Return cached settings instance."""

    return SessionSettings()


__all__ = ["SessionSettings", "configure_logging", "get_settings"]
