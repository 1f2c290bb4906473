"""Session record models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SESSION_INFO_SCHEMA_VERSION = "2.2"


class SessionIntegrityError(ValueError):
    """Raised when a session lacks a field its type requires."""


class SessionType(str, Enum):
    """Kinds of tracked work a session can be bound to."""

    GITHUB_ISSUE = "github_issue"
    SPECKIT = "speckit"
    UNSTRUCTURED = "unstructured"


class Session(BaseModel):
    """Persisted description of one unit of tracked development work."""

    model_config = ConfigDict(extra="allow", use_enum_values=False)

    session_id: str = Field(..., description="Identifier in YYYY-MM-DD-N form.")
    type: SessionType = Field(..., description="Session kind; selects the finalize protocol.")
    schema_version: str = Field(default=SESSION_INFO_SCHEMA_VERSION)
    workflow: str = Field(default="development", description="development or spike.")
    stage: str = Field(default="production", description="poc, mvp or production.")
    created_at: str | None = Field(default=None)
    issue_number: int | None = Field(
        default=None,
        description="Issue for github_issue sessions, or the phase issue for speckit.",
    )
    parent_issue: int | None = Field(
        default=None, description="Umbrella feature issue; speckit only."
    )
    feature_id: str | None = Field(
        default=None, description="Spec directory name under specs/; speckit only."
    )
    pr_number: int | None = Field(default=None)
    branch: str | None = Field(default=None)
    issue_title: str | None = Field(default=None)
    goal: str | None = Field(default=None)
    touched_tasks: list[str] = Field(
        default_factory=list,
        description="Task identifiers owned by this session; finalize marks exactly these done.",
    )

    @model_validator(mode="before")
    @classmethod
    def _feature_from_spec_dir(cls, data: Any):
        if isinstance(data, dict) and not data.get("feature_id") and data.get("spec_dir"):
            data = {**data, "feature_id": data["spec_dir"]}
        return data

    @field_validator("session_id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Session id must not be empty")
        return normalized

    @field_validator("feature_id", mode="before")
    @classmethod
    def _strip_specs_prefix(cls, value: Any):
        # Older records carry spec_dir-style values such as "specs/001-feature".
        if isinstance(value, str):
            value = value.strip().removeprefix("specs/").strip("/")
            return value or None
        return value

    @field_validator("touched_tasks", mode="before")
    @classmethod
    def _dedupe_tasks(cls, value: Any):
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise TypeError("touched_tasks must be a sequence of task identifiers")
        seen: list[str] = []
        for item in value:
            ident = str(item).strip().upper()
            if ident and ident not in seen:
                seen.append(ident)
        return seen

    def integrity_errors(self) -> list[str]:
        """Return violations of the per-type field invariants."""

        problems: list[str] = []
        if self.type is SessionType.SPECKIT:
            if self.feature_id is None:
                problems.append("speckit session is missing feature_id")
            if self.parent_issue is None:
                problems.append("speckit session is missing parent_issue")
            if self.issue_number is None:
                problems.append("speckit session is missing the phase issue_number")
        elif self.type is SessionType.GITHUB_ISSUE:
            if self.parent_issue is not None:
                problems.append("github_issue session must not carry parent_issue")
            if self.issue_number is None:
                problems.append("github_issue session is missing issue_number")
        return problems

    def to_record(self) -> dict[str, Any]:
        """Serialize for session-info.json, omitting unused optional fields."""

        payload = self.model_dump(mode="json", exclude_none=True)
        if not payload.get("touched_tasks"):
            payload.pop("touched_tasks", None)
        return payload


__all__ = ["SESSION_INFO_SCHEMA_VERSION", "Session", "SessionIntegrityError", "SessionType"]
