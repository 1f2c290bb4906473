"""GitHub gateway implemented over the gh CLI."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .base import (
    BodyTransform,
    ConflictError,
    ExternalSyncError,
    GatewayError,
    Issue,
    NotFoundError,
    PermissionDeniedError,
    PullRequest,
)
from .board import BoardConfig
from .utils import resolve_executable, sanitize_environment

logger = logging.getLogger(__name__)

_PR_FIELDS = "number,state,isDraft,mergedAt,url,body,headRefName,baseRefName"
_ISSUE_FIELDS = "number,state,title,body"

_NOT_FOUND_MARKERS = (
    "could not resolve to",
    "not found",
    "no pull requests found",
    "no open pull requests",
)
_PERMISSION_MARKERS = (
    "http 403",
    "resource not accessible",
    "must have admin rights",
    "permission",
)


class GhNotFoundError(GatewayError):
    """Raised when the gh executable cannot be located."""


@dataclass(slots=True)
class GhExecutionResult:
    """Holds the outcome of a gh CLI invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _pr_from_payload(payload: dict[str, Any]) -> PullRequest:
    state = str(payload.get("state", "")).lower()
    return PullRequest(
        number=int(payload["number"]),
        state=state,
        merged=state == "merged" or bool(payload.get("mergedAt")),
        draft=bool(payload.get("isDraft", False)),
        url=payload.get("url"),
        body=payload.get("body") or "",
        head=payload.get("headRefName"),
        base=payload.get("baseRefName"),
    )


def _issue_from_payload(payload: dict[str, Any]) -> Issue:
    return Issue(
        number=int(payload["number"]),
        state=str(payload.get("state", "")).lower(),
        body=payload.get("body") or "",
        title=payload.get("title"),
    )


class GitHubCliGateway:
    """Synchronous gh-backed implementation of the gateway capability set."""

    def __init__(
        self,
        executable: Path | None = None,
        *,
        repo: str | None = None,
        timeout: float = 60.0,
        board: BoardConfig | None = None,
        cwd: Path | None = None,
    ) -> None:
        self._executable_path = resolve_executable("gh", executable, GhNotFoundError)
        self._repo = repo
        self._timeout = timeout
        self._board = board
        self._cwd = cwd

    @property
    def executable(self) -> Path:
        return self._executable_path

    # Pull requests -------------------------------------------------------

    def get_pr(self, number: int) -> PullRequest:
        result = self._checked(
            "pr", "view", str(number), "--json", _PR_FIELDS, resource="PR", number=number
        )
        return _pr_from_payload(self._decode(result))

    def find_pr_for_branch(self, branch: str) -> PullRequest | None:
        try:
            result = self._checked(
                "pr", "view", branch, "--json", _PR_FIELDS, resource="PR", number=branch
            )
        except NotFoundError:
            return None
        return _pr_from_payload(self._decode(result))

    def create_pr(
        self,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool,
    ) -> PullRequest:
        args = ["pr", "create", "--title", title, "--body-file", "-", "--base", base, "--head", head]
        if draft:
            args.append("--draft")
        self._checked(*args, resource="PR", number=None, stdin=body)
        logger.info("Created pull request", extra={"head": head, "base": base, "draft": draft})
        created = self.find_pr_for_branch(head)
        if created is None:
            raise GatewayError(f"PR for branch {head} was created but could not be read back")
        return created

    def edit_pr(self, number: int, *, title: str, body: str) -> PullRequest:
        self._checked(
            "pr", "edit", str(number), "--title", title, "--body-file", "-",
            resource="PR", number=number, stdin=body,
        )
        logger.info("Updated pull request", extra={"pr_number": number})
        return self.get_pr(number)

    def mark_pr_ready(self, number: int) -> None:
        self._checked("pr", "ready", str(number), resource="PR", number=number)
        logger.info("Marked pull request ready for review", extra={"pr_number": number})

    def update_pr_body(self, number: int, transform: BodyTransform) -> bool:
        current = self.get_pr(number).body
        updated = transform(current)
        if updated == current:
            return False
        if self.get_pr(number).body != current:
            raise ConflictError(f"PR #{number} description changed while it was being updated")
        self._checked(
            "pr", "edit", str(number), "--body-file", "-",
            resource="PR", number=number, stdin=updated,
        )
        logger.info("Patched pull request description", extra={"pr_number": number})
        return True

    # Issues --------------------------------------------------------------

    def get_issue(self, number: int) -> Issue:
        result = self._checked(
            "issue", "view", str(number), "--json", _ISSUE_FIELDS, resource="Issue", number=number
        )
        return _issue_from_payload(self._decode(result))

    def close_issue(self, number: int, comment: str) -> None:
        self._checked(
            "issue", "close", str(number), "--comment", comment, resource="Issue", number=number
        )
        logger.info("Closed issue", extra={"issue_number": number})

    def comment_issue(self, number: int, body: str) -> None:
        self._checked(
            "issue", "comment", str(number), "--body-file", "-",
            resource="Issue", number=number, stdin=body,
        )
        logger.info("Commented on issue", extra={"issue_number": number})

    def update_issue_body(self, number: int, transform: BodyTransform) -> bool:
        current = self.get_issue(number).body
        updated = transform(current)
        if updated == current:
            return False
        # gh has no compare-and-swap; re-read right before writing to narrow the race.
        if self.get_issue(number).body != current:
            raise ConflictError(f"Issue #{number} body changed while it was being updated")
        self._checked(
            "issue", "edit", str(number), "--body-file", "-",
            resource="Issue", number=number, stdin=updated,
        )
        logger.info("Patched issue body", extra={"issue_number": number})
        return True

    # Repository / board --------------------------------------------------

    def default_branch(self) -> str | None:
        args = ["repo", "view"]
        if self._repo:
            args.append(self._repo)
        args.extend(["--json", "defaultBranchRef"])
        result = self._invoke(*args, scoped=False)
        if not result.ok:
            return None
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            return None
        return (payload.get("defaultBranchRef") or {}).get("name") or None

    def sync_external_board(self, ledger_path: Path, milestone: str | None) -> None:
        board = self._board
        if board is None or not board.enabled:
            raise ExternalSyncError("Project board sync is not configured")

        argv = board.build_argv(ledger_path, milestone)
        try:
            completed = subprocess.run(
                argv,
                cwd=str(self._cwd) if self._cwd else None,
                capture_output=True,
                text=True,
                env=sanitize_environment(),
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise ExternalSyncError(f"Board sync command not found: {argv[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ExternalSyncError(f"Board sync timed out after {self._timeout}s") from exc
        if completed.returncode != 0:
            detail = completed.stderr.strip() or f"exit code {completed.returncode}"
            raise ExternalSyncError(f"Board sync failed: {detail}")
        logger.info("Synced ledger to project board", extra={"ledger": str(ledger_path)})

    # Plumbing ------------------------------------------------------------

    def _checked(
        self,
        *args: str,
        resource: str,
        number: int | str | None,
        stdin: str | None = None,
    ) -> GhExecutionResult:
        result = self._invoke(*args, stdin=stdin)
        if not result.ok:
            self._raise_for(result, resource, number)
        return result

    @staticmethod
    def _raise_for(result: GhExecutionResult, resource: str, number: int | str | None) -> None:
        detail = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
        lowered = detail.lower()
        if any(marker in lowered for marker in _PERMISSION_MARKERS):
            raise PermissionDeniedError(detail)
        if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
            raise NotFoundError(resource, number, detail)
        raise GatewayError(detail)

    @staticmethod
    def _decode(result: GhExecutionResult) -> dict[str, Any]:
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise GatewayError(f"gh returned invalid JSON: {exc}") from exc

    def _invoke(self, *args: str, stdin: str | None = None, scoped: bool = True) -> GhExecutionResult:
        cmd = [str(self._executable_path), *args]
        if scoped and self._repo:
            cmd.extend(["--repo", self._repo])
        try:
            completed = subprocess.run(
                cmd,
                cwd=str(self._cwd) if self._cwd else None,
                input=stdin,
                capture_output=True,
                text=True,
                env=sanitize_environment(),
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GatewayError(f"gh {' '.join(args[:2])} timed out after {self._timeout}s") from exc
        logger.debug("gh invocation", extra={"gh_args": list(args), "returncode": completed.returncode})
        return GhExecutionResult(
            args=tuple(cmd),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


__all__ = ["GhExecutionResult", "GhNotFoundError", "GitHubCliGateway"]
