"""Gateway contract, snapshots and error taxonomy for the issue tracker and PR host."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol

BodyTransform = Callable[[str], str]


class GatewayError(RuntimeError):
    """Base class for issue tracker / PR host failures."""


class NotFoundError(GatewayError):
    """Raised when an issue or pull request does not exist."""

    def __init__(self, resource: str, number: int | str | None, detail: str | None = None) -> None:
        message = f"{resource} #{number} not found" if number is not None else f"{resource} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.resource = resource
        self.number = number


class PermissionDeniedError(GatewayError):
    """Raised when the credentials in use cannot perform the mutation."""


class ConflictError(GatewayError):
    """Raised when a body changed between read and write."""


class ExternalSyncError(GatewayError):
    """Raised when the project board sync fails; callers treat it as a warning."""


@dataclass(slots=True, frozen=True)
class PullRequest:
    number: int
    state: str
    merged: bool
    draft: bool
    url: str | None = None
    body: str = ""
    head: str | None = None
    base: str | None = None

    def snapshot(self) -> dict[str, Any]:
        return {"number": self.number, "state": self.state, "merged": self.merged}


@dataclass(slots=True, frozen=True)
class Issue:
    number: int
    state: str
    body: str = ""
    title: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"


class GatewayProtocol(Protocol):
    """Capability set the engines are written against."""

    def get_pr(self, number: int) -> PullRequest:
        ...

    def find_pr_for_branch(self, branch: str) -> PullRequest | None:
        ...

    def get_issue(self, number: int) -> Issue:
        ...

    def close_issue(self, number: int, comment: str) -> None:
        ...

    def comment_issue(self, number: int, body: str) -> None:
        ...

    def update_issue_body(self, number: int, transform: BodyTransform) -> bool:
        ...

    def update_pr_body(self, number: int, transform: BodyTransform) -> bool:
        ...

    def create_pr(
        self,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool,
    ) -> PullRequest:
        ...

    def edit_pr(self, number: int, *, title: str, body: str) -> PullRequest:
        ...

    def mark_pr_ready(self, number: int) -> None:
        ...

    def default_branch(self) -> str | None:
        ...

    def sync_external_board(self, ledger_path: Path, milestone: str | None) -> None:
        ...


__all__ = [
    "BodyTransform",
    "ConflictError",
    "ExternalSyncError",
    "GatewayError",
    "GatewayProtocol",
    "Issue",
    "NotFoundError",
    "PermissionDeniedError",
    "PullRequest",
]
