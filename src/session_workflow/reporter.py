"""Human-readable rendering of finalize and publish results."""

from __future__ import annotations

from .engine import FinalizeResult, PublishResult
from .sessions import SessionType


def _task_line(result: FinalizeResult) -> str:
    if result.tasks is None:
        return "Tasks: none tracked"
    return f"Tasks: {result.tasks.completed}/{result.tasks.total} complete"


def _issue_state(closed: bool, already_closed: bool) -> str:
    if already_closed:
        return "Already closed"
    return "Closed" if closed else "Open"


def render_finalize(result: FinalizeResult) -> str:
    """Render a finalize result as operator-facing text."""

    if not result.ok:
        lines = [f"❌ Cannot finalize: {result.error}"]
        pr = result.pr
        if pr.get("number") is not None:
            lines.append(f"PR #{pr['number']} (state: {pr.get('state') or 'unknown'}, merged: {bool(pr.get('merged'))})")
        if result.resource:
            lines.append(f"Resource: {result.resource}")
        if result.message:
            lines.append(result.message)
        return "\n".join(lines)

    pr_number = result.pr.get("number")
    if result.session_type is SessionType.SPECKIT:
        lines = ["✅ Phase finalized"]
        if result.issue is not None:
            lines.append(
                f"Phase issue #{result.issue.number}: "
                f"{_issue_state(result.issue.closed, result.issue.already_closed)}"
            )
        if result.parent is not None:
            state = "Updated" if result.parent.updated else "Unchanged"
            lines.append(f"Parent issue #{result.parent.number}: {state} ({result.parent.progress})")
        if result.pr_outcome is not None:
            draft = "still draft" if result.pr_outcome.still_draft else "ready"
            lines.append(f"PR #{result.pr_outcome.number}: Merged, {draft} - {result.pr_outcome.reason}")
        lines.append(_task_line(result))
        lines.append(f"Project board: {'synced' if result.synced_to_projects else 'not synced'}")
    elif result.session_type is SessionType.GITHUB_ISSUE:
        lines = ["✅ Session finalized"]
        if result.issue is not None:
            lines.append(
                f"Issue #{result.issue.number}: "
                f"{_issue_state(result.issue.closed, result.issue.already_closed)}"
            )
        lines.append(f"PR #{pr_number}: Merged")
        lines.append(_task_line(result))
    else:
        lines = ["✅ Session finalized", f"PR #{pr_number}: Merged", _task_line(result)]

    lines.extend(f"⚠ {warning}" for warning in result.warnings)
    if result.ready_for_wrap:
        lines.append("Ready for wrap")
    return "\n".join(lines)


def render_publish(result: PublishResult) -> str:
    """Render a publish result as operator-facing text."""

    if not result.ok:
        return "\n".join(line for line in (f"❌ Cannot publish: {result.error}", result.message) if line)

    verb = "Created" if result.action == "created" else "Updated existing"
    draft = " (draft)" if result.pr.get("draft") else ""
    lines = [f"✅ {verb} PR #{result.pr['number']}{draft}"]
    if result.pr.get("url"):
        lines.append(f"URL: {result.pr['url']}")
    if result.pr.get("linked_issues"):
        lines.append("Linked issues: " + ", ".join(f"#{n}" for n in result.pr["linked_issues"]))
    lines.extend(f"⚠ {warning}" for warning in result.warnings)
    lines.append("Next steps:")
    lines.extend(f"  - {step}" for step in result.next_steps)
    return "\n".join(lines)


__all__ = ["render_finalize", "render_publish"]
