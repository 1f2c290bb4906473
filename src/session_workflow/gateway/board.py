"""Project board configuration loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator


class BoardConfigError(RuntimeError):
    """Raised when the project board file cannot be parsed."""


class BoardConfig(BaseModel):
    """Describes how task status is pushed to an external project board."""

    enabled: bool = Field(default=True, description="Set false to skip syncing entirely.")
    owner: str | None = Field(default=None, description="Organization or user owning the board.")
    project_number: int | None = Field(default=None, description="GitHub Projects number.")
    status_field: str = Field(default="Status", description="Single-select field holding task status.")
    done_value: str = Field(default="Done", description="Option written for completed tasks.")
    command: list[str] = Field(
        default_factory=lambda: ["scripts/sync-task-status.sh"],
        description=(
            "Sync command argv prefix; receives the ledger path, optional milestone, "
            "and the status field and done value."
        ),
    )

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        if isinstance(value, (list, tuple)):
            return [str(part) for part in value]
        raise TypeError("command must be a string or a sequence of arguments")

    @field_validator("command")
    @classmethod
    def _require_command(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("Board sync command must not be empty")
        return value

    def build_argv(self, ledger_path: Path, milestone: str | None) -> list[str]:
        argv = [*self.command, str(ledger_path)]
        if milestone:
            argv.extend(["--milestone", milestone])
        argv.extend(["--status-field", self.status_field, "--done-value", self.done_value])
        if self.project_number is not None:
            argv.extend(["--project", str(self.project_number)])
        if self.owner:
            argv.extend(["--owner", self.owner])
        return argv


def load_board_config(path: Path | str) -> BoardConfig | None:
    """Load the board definition; a missing or empty file means no board is configured."""

    path = Path(path)
    if not path.is_file():
        return None

    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise BoardConfigError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return None

    try:
        return BoardConfig.model_validate(document)
    except ValidationError as exc:
        raise BoardConfigError(f"Board config validation error in {path}: {exc}") from exc


__all__ = ["BoardConfig", "BoardConfigError", "load_board_config"]
