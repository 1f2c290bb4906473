"""In-memory gateway for tests and dry runs."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Iterable

from .base import (
    BodyTransform,
    ConflictError,
    ExternalSyncError,
    Issue,
    NotFoundError,
    PermissionDeniedError,
    PullRequest,
)

MUTATING_CALLS = frozenset(
    {
        "close_issue",
        "comment_issue",
        "update_issue_body",
        "update_pr_body",
        "create_pr",
        "edit_pr",
        "mark_pr_ready",
    }
)


class FakeGateway:
    """Test double that keeps issues and PRs in dictionaries and records every call."""

    def __init__(
        self,
        *,
        prs: Iterable[PullRequest] = (),
        issues: Iterable[Issue] = (),
        default_branch: str | None = "main",
        sync_error: str | None = None,
    ) -> None:
        self.prs: dict[int, PullRequest] = {pr.number: pr for pr in prs}
        self.issues: dict[int, Issue] = {issue.number: issue for issue in issues}
        self.comments: dict[int, list[str]] = {}
        self.synced: list[tuple[Path, str | None]] = []
        self.calls: list[tuple[str, object]] = []
        self.conflict_on: set[int] = set()
        self.permission_denied_on: set[int] = set()
        self.permission_denied_calls: set[tuple[str, int]] = set()
        self.sync_error = sync_error
        self._default_branch = default_branch
        self._next_number = max([*self.prs, *self.issues, 0]) + 1

    def _authorize(self, call: str, number: int) -> None:
        if number in self.permission_denied_on or (call, number) in self.permission_denied_calls:
            raise PermissionDeniedError(f"HTTP 403: {call} not permitted on #{number}")

    @property
    def mutations(self) -> list[tuple[str, object]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def get_pr(self, number: int) -> PullRequest:
        self.calls.append(("get_pr", number))
        try:
            return self.prs[number]
        except KeyError as exc:
            raise NotFoundError("PR", number) from exc

    def find_pr_for_branch(self, branch: str) -> PullRequest | None:
        self.calls.append(("find_pr_for_branch", branch))
        for pr in self.prs.values():
            if pr.head == branch:
                return pr
        return None

    def create_pr(
        self,
        *,
        title: str,
        body: str,
        base: str,
        head: str,
        draft: bool,
    ) -> PullRequest:
        number = self._next_number
        self._next_number += 1
        self.calls.append(("create_pr", number))
        pr = PullRequest(
            number=number,
            state="open",
            merged=False,
            draft=draft,
            url=f"https://github.com/example/repo/pull/{number}",
            body=body,
            head=head,
            base=base,
        )
        self.prs[number] = pr
        return pr

    def edit_pr(self, number: int, *, title: str, body: str) -> PullRequest:
        self.calls.append(("edit_pr", number))
        pr = self.get_pr(number)
        self.prs[number] = replace(pr, body=body)
        return self.prs[number]

    def mark_pr_ready(self, number: int) -> None:
        self.calls.append(("mark_pr_ready", number))
        self.prs[number] = replace(self.get_pr(number), draft=False)

    def update_pr_body(self, number: int, transform: BodyTransform) -> bool:
        pr = self.get_pr(number)
        updated = transform(pr.body)
        if updated == pr.body:
            return False
        self.calls.append(("update_pr_body", number))
        self.prs[number] = replace(pr, body=updated)
        return True

    def get_issue(self, number: int) -> Issue:
        self.calls.append(("get_issue", number))
        try:
            return self.issues[number]
        except KeyError as exc:
            raise NotFoundError("Issue", number) from exc

    def close_issue(self, number: int, comment: str) -> None:
        issue = self.get_issue(number)
        self._authorize("close_issue", number)
        self.calls.append(("close_issue", number))
        self.issues[number] = replace(issue, state="closed")
        self.comments.setdefault(number, []).append(comment)

    def comment_issue(self, number: int, body: str) -> None:
        self.get_issue(number)
        self._authorize("comment_issue", number)
        self.calls.append(("comment_issue", number))
        self.comments.setdefault(number, []).append(body)

    def update_issue_body(self, number: int, transform: BodyTransform) -> bool:
        issue = self.get_issue(number)
        updated = transform(issue.body)
        if updated == issue.body:
            return False
        if number in self.conflict_on:
            raise ConflictError(f"Issue #{number} body changed while it was being updated")
        self._authorize("update_issue_body", number)
        self.calls.append(("update_issue_body", number))
        self.issues[number] = replace(issue, body=updated)
        return True

    def default_branch(self) -> str | None:
        return self._default_branch

    def sync_external_board(self, ledger_path: Path, milestone: str | None) -> None:
        self.calls.append(("sync_external_board", str(ledger_path)))
        if self.sync_error:
            raise ExternalSyncError(self.sync_error)
        self.synced.append((Path(ledger_path), milestone))


__all__ = ["FakeGateway", "MUTATING_CALLS"]
