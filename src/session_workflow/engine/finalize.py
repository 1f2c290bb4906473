"""Post-merge reconciliation of issues, parent checklists, PR state and task ledgers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from ..gateway import (
    ConflictError,
    GatewayError,
    GatewayProtocol,
    GitError,
    GitRepository,
    NotFoundError,
    PermissionDeniedError,
    PullRequest,
)
from ..sessions import Session, SessionIntegrityError, SessionStore, SessionType
from ..tasks import MalformedLedgerError, TaskLedger
from .checklist import (
    ChecklistError,
    append_phase_note,
    check_phase,
    checklist_progress,
    format_progress,
    locate_phase_line,
)
from .results import (
    STATUS_SUCCESS,
    FinalizeResult,
    IssueOutcome,
    ParentOutcome,
    PullRequestOutcome,
    TaskCounts,
)

logger = logging.getLogger(__name__)

ISSUE_CLOSE_COMMENT = "Resolved via PR #{pr}"
PHASE_CLOSE_COMMENT = "✅ Phase complete via PR #{pr}. All tasks done."
PARENT_PROGRESS_COMMENT = "**Progress Update**: Phase #{phase} complete via PR #{pr} ({progress})"


@dataclass(slots=True)
class _Dispatch:
    """Facts gathered by a session-type handler before the result is frozen."""

    tasks: TaskCounts
    issue: IssueOutcome | None = None
    parent: ParentOutcome | None = None
    pr_outcome: PullRequestOutcome | None = None
    milestone: str | None = None
    warnings: list[str] = field(default_factory=list)


class FinalizeEngine:
    """Run the finalize protocol for one session.

    The PR merge check gates every mutation. Each side effect is idempotent,
    so re-running finalize after a partial failure converges on the same
    result without repeating comments or double-counting tasks.
    """

    _HANDLERS: dict[SessionType, str] = {
        SessionType.GITHUB_ISSUE: "_finalize_github_issue",
        SessionType.SPECKIT: "_finalize_speckit",
        SessionType.UNSTRUCTURED: "_finalize_unstructured",
    }

    def __init__(
        self,
        gateway: GatewayProtocol,
        *,
        store: SessionStore,
        specs_dir: Path | str = "specs",
        git: GitRepository | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._specs_dir = Path(specs_dir)
        self._git = git

    def ledger_path(self, session: Session) -> Path:
        """Return the tasks.md that holds this session's tasks."""

        if session.type is SessionType.SPECKIT and session.feature_id:
            return self._specs_dir / session.feature_id / "tasks.md"
        return self._store.tasks_path(session.session_id)

    def finalize(self, session: Session) -> FinalizeResult:
        problems = session.integrity_errors()
        if problems:
            return FinalizeResult.failure(
                session_type=session.type,
                error="Session misconfigured",
                message="; ".join(problems),
                pr={"number": session.pr_number, "state": None, "merged": False},
            )

        pr = self._check_pr(session)
        if isinstance(pr, FinalizeResult):
            return pr

        ledger = TaskLedger(self.ledger_path(session))
        handler: Callable[[Session, PullRequest, TaskLedger], _Dispatch] = getattr(
            self, self._HANDLERS[session.type]
        )
        try:
            # Parse before any mutation so a malformed ledger aborts cleanly.
            ledger.entries()
            dispatch = handler(session, pr, ledger)
        except SessionIntegrityError as exc:
            return self._fail(session, pr, "Session misconfigured", str(exc))
        except MalformedLedgerError as exc:
            return self._fail(session, pr, "Malformed ledger", str(exc), resource=str(ledger.path))
        except OSError as exc:
            return self._fail(session, pr, "Ledger I/O error", str(exc), resource=str(ledger.path))
        except NotFoundError as exc:
            return self._fail(
                session,
                pr,
                f"{exc.resource} not found",
                str(exc),
                resource=f"{exc.resource.lower()}#{exc.number}",
            )
        except PermissionDeniedError as exc:
            return self._fail(session, pr, "Permission denied", str(exc))
        except GatewayError as exc:
            return self._fail(session, pr, "Gateway error", str(exc))

        synced = self._sync_board(ledger.path, dispatch.milestone, dispatch.warnings)

        logger.info(
            "Session finalized",
            extra={
                "session_id": session.session_id,
                "session_type": session.type.value,
                "pr_number": pr.number,
                "warnings": len(dispatch.warnings),
            },
        )
        return FinalizeResult(
            status=STATUS_SUCCESS,
            session_type=session.type,
            pr=pr.snapshot(),
            issue=dispatch.issue,
            parent=dispatch.parent,
            pr_outcome=dispatch.pr_outcome,
            tasks=dispatch.tasks,
            synced_to_projects=synced,
            warnings=tuple(dispatch.warnings),
            ready_for_wrap=True,
        )

    # PR gate ---------------------------------------------------------------

    def _check_pr(self, session: Session) -> PullRequest | FinalizeResult:
        number = session.pr_number
        unknown = {"number": number, "state": None, "merged": False}
        try:
            if number is None:
                branch = session.branch or (self._git.current_branch() if self._git else None)
                pr = self._gateway.find_pr_for_branch(branch) if branch else None
                if pr is None:
                    return FinalizeResult.failure(
                        session_type=session.type,
                        error="No PR found for current branch",
                        message="Publish the session to open a PR, merge it, then retry finalize",
                        pr=unknown,
                        resource=f"branch:{branch}" if branch else None,
                    )
            else:
                pr = self._gateway.get_pr(number)
        except NotFoundError as exc:
            return FinalizeResult.failure(
                session_type=session.type,
                error="PR not found",
                message=str(exc),
                pr=unknown,
                resource=f"pr#{number}",
            )
        except (GatewayError, GitError) as exc:
            return FinalizeResult.failure(
                session_type=session.type,
                error="Gateway error",
                message=str(exc),
                pr=unknown,
            )

        if not pr.merged:
            logger.warning(
                "Refusing to finalize unmerged PR",
                extra={"pr_number": pr.number, "state": pr.state},
            )
            return FinalizeResult.failure(
                session_type=session.type,
                error="PR not merged",
                message=f"Merge PR #{pr.number} first, then retry finalize",
                pr=pr.snapshot(),
            )
        return pr

    # Session-type handlers -------------------------------------------------

    def _finalize_github_issue(
        self, session: Session, pr: PullRequest, ledger: TaskLedger
    ) -> _Dispatch:
        issue_number = session.issue_number
        if issue_number is None:
            raise SessionIntegrityError("github_issue session is missing issue_number")
        issue = self._close_issue(issue_number, ISSUE_CLOSE_COMMENT.format(pr=pr.number))
        return _Dispatch(tasks=self._mark_tasks(session, ledger), issue=issue)

    def _finalize_speckit(
        self, session: Session, pr: PullRequest, ledger: TaskLedger
    ) -> _Dispatch:
        phase_issue = session.issue_number
        parent_issue = session.parent_issue
        if phase_issue is None or parent_issue is None:
            raise SessionIntegrityError("; ".join(session.integrity_errors()))
        warnings: list[str] = []
        phase = self._close_issue(phase_issue, PHASE_CLOSE_COMMENT.format(pr=pr.number))
        parent = self._update_parent(parent_issue, phase_issue, pr, warnings)
        tasks = self._mark_tasks(session, ledger)
        pr_outcome = self._transition_pr(pr, phase_issue, parent, warnings)
        return _Dispatch(
            tasks=tasks,
            issue=phase,
            parent=parent,
            pr_outcome=pr_outcome,
            milestone=session.feature_id,
            warnings=warnings,
        )

    def _finalize_unstructured(
        self, session: Session, pr: PullRequest, ledger: TaskLedger
    ) -> _Dispatch:
        return _Dispatch(tasks=self._mark_tasks(session, ledger))

    # Steps -----------------------------------------------------------------

    def _close_issue(self, number: int, comment: str) -> IssueOutcome:
        issue = self._gateway.get_issue(number)
        if issue.is_closed:
            logger.info("Issue already closed", extra={"issue_number": number})
            return IssueOutcome(number=number, closed=True, comment=None, already_closed=True)
        self._gateway.close_issue(number, comment)
        return IssueOutcome(number=number, closed=True, comment=comment)

    def _update_parent(
        self,
        parent_number: int,
        phase_issue: int,
        pr: PullRequest,
        warnings: list[str],
    ) -> ParentOutcome:
        body = self._gateway.get_issue(parent_number).body
        checklist_updated = False
        try:
            line = locate_phase_line(body, phase_issue)
        except ChecklistError as exc:
            warnings.append(f"Parent issue #{parent_number}: {exc}")
            line = None

        if line is not None and not line.checked:
            try:
                checklist_updated = self._gateway.update_issue_body(
                    parent_number, lambda current: check_phase(current, phase_issue)
                )
            except (ConflictError, ChecklistError) as exc:
                warnings.append(f"Parent issue #{parent_number} checklist not updated: {exc}")
                logger.warning(
                    "Parent checklist update skipped",
                    extra={"issue_number": parent_number, "reason": str(exc)},
                )
            if checklist_updated:
                body = check_phase(body, phase_issue)

        complete, total = checklist_progress(body)
        progress = format_progress(complete, total)

        commented = False
        if checklist_updated:
            try:
                self._gateway.comment_issue(
                    parent_number,
                    PARENT_PROGRESS_COMMENT.format(phase=phase_issue, pr=pr.number, progress=progress),
                )
                commented = True
            except PermissionDeniedError:
                raise
            except GatewayError as exc:
                warnings.append(f"Parent issue #{parent_number} progress comment failed: {exc}")

        return ParentOutcome(
            number=parent_number,
            updated=checklist_updated or commented,
            progress=progress,
            checklist_updated=checklist_updated,
            phases_complete=complete,
            phases_total=total,
        )

    def _transition_pr(
        self,
        pr: PullRequest,
        phase_issue: int,
        parent: ParentOutcome,
        warnings: list[str],
    ) -> PullRequestOutcome:
        if parent.phases_total and parent.phases_complete >= parent.phases_total:
            if pr.draft:
                self._gateway.mark_pr_ready(pr.number)
                return PullRequestOutcome(
                    number=pr.number,
                    description_updated=False,
                    still_draft=False,
                    reason="All phases complete; PR marked ready for review",
                    promoted=True,
                )
            return PullRequestOutcome(
                number=pr.number,
                description_updated=False,
                still_draft=False,
                reason="All phases complete",
            )

        description_updated = False
        try:
            description_updated = self._gateway.update_pr_body(
                pr.number,
                lambda body: append_phase_note(body, phase_issue, pr.number, parent.progress),
            )
        except ConflictError as exc:
            warnings.append(f"PR #{pr.number} description not updated: {exc}")
        return PullRequestOutcome(
            number=pr.number,
            description_updated=description_updated,
            still_draft=pr.draft,
            reason=f"Multi-phase feature in progress ({parent.progress})",
        )

    def _mark_tasks(self, session: Session, ledger: TaskLedger) -> TaskCounts:
        marked = 0
        if session.touched_tasks and ledger.exists():
            marked = ledger.mark_done(session.touched_tasks)
        total, completed = ledger.counts()
        return TaskCounts(file=str(ledger.path), total=total, completed=completed, marked=marked)

    def _sync_board(self, ledger_path: Path, milestone: str | None, warnings: list[str]) -> bool:
        try:
            self._gateway.sync_external_board(ledger_path, milestone)
        except GatewayError as exc:
            warnings.append(f"Project board not synced: {exc}")
            logger.warning("Project board sync skipped", extra={"reason": str(exc)})
            return False
        return True

    def _fail(
        self,
        session: Session,
        pr: PullRequest,
        error: str,
        message: str,
        *,
        resource: str | None = None,
    ) -> FinalizeResult:
        logger.error(
            "Finalize aborted",
            extra={"session_id": session.session_id, "error": error, "detail": message},
        )
        return FinalizeResult.failure(
            session_type=session.type,
            error=error,
            message=message,
            pr=pr.snapshot(),
            resource=resource,
        )


_unhandled = set(SessionType) - set(FinalizeEngine._HANDLERS)
if _unhandled:  # pragma: no cover - guards against adding a session type without a handler
    raise RuntimeError(f"No finalize handler for session types: {sorted(t.value for t in _unhandled)}")


__all__ = ["FinalizeEngine", "ISSUE_CLOSE_COMMENT", "PHASE_CLOSE_COMMENT"]
