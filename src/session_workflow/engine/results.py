"""Structured results produced by the finalize and publish engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..sessions import SessionType

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(slots=True, frozen=True)
class IssueOutcome:
    number: int | None
    closed: bool
    comment: str | None
    already_closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "closed": self.closed,
            "comment": self.comment,
            "already_closed": self.already_closed,
        }


@dataclass(slots=True, frozen=True)
class TaskCounts:
    file: str
    total: int
    completed: int
    marked: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "total": self.total,
            "completed": self.completed,
            "marked": self.marked,
        }


@dataclass(slots=True, frozen=True)
class ParentOutcome:
    number: int
    updated: bool
    progress: str
    checklist_updated: bool
    phases_complete: int = 0
    phases_total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "updated": self.updated,
            "progress": self.progress,
            "checklist_updated": self.checklist_updated,
        }


@dataclass(slots=True, frozen=True)
class PullRequestOutcome:
    number: int
    description_updated: bool
    still_draft: bool
    reason: str
    promoted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "description_updated": self.description_updated,
            "still_draft": self.still_draft,
            "reason": self.reason,
        }


@dataclass(slots=True, frozen=True)
class FinalizeResult:
    """Outcome of one finalize invocation; immutable once built."""

    status: str
    session_type: SessionType | None
    pr: dict[str, Any] = field(default_factory=dict)
    issue: IssueOutcome | None = None
    parent: ParentOutcome | None = None
    pr_outcome: PullRequestOutcome | None = None
    tasks: TaskCounts | None = None
    synced_to_projects: bool = False
    warnings: tuple[str, ...] = ()
    ready_for_wrap: bool = False
    error: str | None = None
    message: str | None = None
    resource: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def failure(
        cls,
        *,
        session_type: SessionType | None,
        error: str,
        message: str,
        pr: dict[str, Any] | None = None,
        resource: str | None = None,
    ) -> "FinalizeResult":
        return cls(
            status=STATUS_ERROR,
            session_type=session_type,
            pr=dict(pr or {}),
            error=error,
            message=message,
            resource=resource,
        )

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            payload: dict[str, Any] = {
                "status": self.status,
                "error": self.error,
                "pr": dict(self.pr),
                "message": self.message,
            }
            if self.session_type is not None:
                payload["session_type"] = self.session_type.value
            if self.resource is not None:
                payload["resource"] = self.resource
            return payload

        payload = {
            "status": self.status,
            "pr_merged": bool(self.pr.get("merged")),
            "session_type": self.session_type.value if self.session_type else None,
        }
        if self.session_type is SessionType.SPECKIT:
            payload["phase_issue"] = self.issue.to_dict() if self.issue else None
            payload["parent_issue"] = self.parent.to_dict() if self.parent else None
        elif self.session_type is SessionType.GITHUB_ISSUE:
            payload["issue"] = self.issue.to_dict() if self.issue else None
        payload["tasks"] = self.tasks.to_dict() if self.tasks else None
        if self.pr_outcome is not None:
            payload["pr"] = self.pr_outcome.to_dict()
        else:
            payload["pr"] = dict(self.pr)
        payload["synced_to_projects"] = self.synced_to_projects
        payload["warnings"] = list(self.warnings)
        payload["ready_for_wrap"] = self.ready_for_wrap
        return payload


@dataclass(slots=True, frozen=True)
class PublishResult:
    """Outcome of one publish invocation."""

    status: str
    pr: dict[str, Any] = field(default_factory=dict)
    next_steps: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def action(self) -> str | None:
        return self.pr.get("action")

    @classmethod
    def failure(cls, *, error: str, message: str) -> "PublishResult":
        return cls(status=STATUS_ERROR, error=error, message=message)

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"status": self.status, "error": self.error, "message": self.message}
        return {
            "status": self.status,
            "pr": dict(self.pr),
            "next_steps": list(self.next_steps),
            "warnings": list(self.warnings),
        }


__all__ = [
    "FinalizeResult",
    "IssueOutcome",
    "ParentOutcome",
    "PublishResult",
    "PullRequestOutcome",
    "STATUS_ERROR",
    "STATUS_SUCCESS",
    "TaskCounts",
]
