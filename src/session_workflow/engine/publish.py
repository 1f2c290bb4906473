"""Create or update the pull request for the active session's branch."""

from __future__ import annotations

import logging
import re

from ..gateway import (
    GatewayError,
    GatewayProtocol,
    GitError,
    GitRepository,
    NotFoundError,
    PermissionDeniedError,
    PullRequest,
)
from ..sessions import Session, SessionStore, SessionStoreError
from .results import STATUS_SUCCESS, PublishResult

logger = logging.getLogger(__name__)

_CLOSING_KEYWORD = r"\b(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s*:?\s+#{number}\b"


def has_closing_keyword(body: str, issue_number: int) -> bool:
    pattern = re.compile(_CLOSING_KEYWORD.format(number=issue_number), re.IGNORECASE)
    return pattern.search(body) is not None


def with_closing_keyword(body: str, issue_number: int | None) -> str:
    """Ensure the description links the issue with a closing keyword, exactly once."""

    if issue_number is None or has_closing_keyword(body, issue_number):
        return body
    stripped = body.rstrip()
    link = f"Closes #{issue_number}"
    return f"{stripped}\n\n{link}\n" if stripped else f"{link}\n"


def next_steps_for(pr: PullRequest) -> tuple[str, ...]:
    checks = f"{pr.url}/checks" if pr.url else f"PR #{pr.number} checks"
    return (
        f"Monitor CI checks: {checks}",
        "Fix any CI failures if needed",
        "Get PR reviewed (if required)",
        "Merge PR when ready",
        "Then run: session-workflow finalize",
    )


class PublishEngine:
    """Open a PR for the session branch, or update the one that already exists."""

    def __init__(
        self,
        gateway: GatewayProtocol,
        git: GitRepository,
        *,
        store: SessionStore | None = None,
        default_base: str = "main",
    ) -> None:
        self._gateway = gateway
        self._git = git
        self._store = store
        self._default_base = default_base

    def publish(
        self,
        session: Session,
        *,
        title: str,
        description: str = "",
        draft: bool = False,
        issue_number: int | None = None,
    ) -> PublishResult:
        if not title.strip():
            return PublishResult.failure(
                error="Missing title", message="A PR title is required to publish"
            )

        linked_issue = issue_number if issue_number is not None else session.issue_number
        body = with_closing_keyword(description, linked_issue)

        try:
            branch = self._git.current_branch()
            if branch is None:
                return PublishResult.failure(
                    error="Not on a branch", message="Check out the session branch before publishing"
                )
            base = self._resolve_base()
            if self._git.commits_ahead(base) == 0:
                return PublishResult.failure(
                    error="No commits",
                    message=f"Branch {branch} has no commits ahead of {base}; nothing to publish",
                )

            existing = self._existing_pr(session, branch)
            if existing is not None and existing.merged:
                return PublishResult.failure(
                    error="PR already merged",
                    message=f"PR #{existing.number} is already merged; run finalize instead",
                )

            if existing is None:
                pr = self._gateway.create_pr(
                    title=title, body=body, base=base, head=branch, draft=draft
                )
                action = "created"
            else:
                pr = self._gateway.edit_pr(existing.number, title=title, body=body)
                if not draft and pr.draft:
                    self._gateway.mark_pr_ready(pr.number)
                    pr = self._gateway.get_pr(pr.number)
                action = "updated"
        except PermissionDeniedError as exc:
            return PublishResult.failure(error="Permission denied", message=str(exc))
        except (GatewayError, GitError) as exc:
            return PublishResult.failure(error="Gateway error", message=str(exc))

        warnings: list[str] = []
        if self._store is not None:
            try:
                self._store.record_pr_number(session, pr.number)
            except SessionStoreError as exc:
                warnings.append(f"PR number not recorded on session: {exc}")

        logger.info(
            "Published session PR",
            extra={"session_id": session.session_id, "pr_number": pr.number, "action": action},
        )
        return PublishResult(
            status=STATUS_SUCCESS,
            pr={
                "number": pr.number,
                "url": pr.url,
                "state": pr.state,
                "draft": pr.draft,
                "action": action,
                "linked_issues": [linked_issue] if linked_issue is not None else [],
            },
            next_steps=next_steps_for(pr),
            warnings=tuple(warnings),
        )

    def _resolve_base(self) -> str:
        return self._git.origin_head() or self._gateway.default_branch() or self._default_base

    def _existing_pr(self, session: Session, branch: str) -> PullRequest | None:
        if session.pr_number is not None:
            try:
                return self._gateway.get_pr(session.pr_number)
            except NotFoundError:
                logger.warning(
                    "Recorded PR not found; falling back to branch lookup",
                    extra={"pr_number": session.pr_number, "branch": branch},
                )
        return self._gateway.find_pr_for_branch(branch)


__all__ = ["PublishEngine", "has_closing_keyword", "with_closing_keyword"]
