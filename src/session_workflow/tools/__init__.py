"""Tool registration for the session workflow MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..services import Services


@dataclass(slots=True)
class ToolHandles:
    session_finalize: Any
    session_publish: Any
    session_status: Any
    session_touch: Any


def register_tools(
    server: FastMCP,
    *,
    services: Services | None,
    setup_error: str | None = None,
) -> ToolHandles:
    """Register session workflow tools on the server.

    When ``services`` is ``None`` (gh or git missing, bad board config) the tools
    are still registered and each one answers with a ``Setup failed`` error.
    """

    def _setup_failed() -> dict[str, Any]:
        return {
            "status": "error",
            "error": "Setup failed",
            "message": setup_error or "Session services are unavailable",
        }

    def _session_finalize(context: Context | None = None) -> dict[str, Any]:
        """Finalize the active session after its PR merged."""

        if services is None:
            return _setup_failed()
        result = services.finalize_active()
        payload = result.to_dict()
        _emit_log(
            context,
            "info" if result.ok else "warning",
            "Finalize completed" if result.ok else "Finalize refused",
            extra={"status": payload["status"], "error": payload.get("error")},
        )
        return payload

    def _session_publish(
        title: str,
        description: str = "",
        *,
        draft: bool = False,
        issue_number: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Create or update the PR for the active session's branch."""

        if services is None:
            return _setup_failed()
        result = services.publish_active(
            title=title,
            description=description,
            draft=draft,
            issue_number=issue_number,
        )
        payload = result.to_dict()
        _emit_log(
            context,
            "info" if result.ok else "warning",
            "Publish completed" if result.ok else "Publish refused",
            extra={"status": payload["status"], "action": result.action},
        )
        return payload

    def _session_status(context: Context | None = None) -> dict[str, Any]:
        """Report the active session record and ledger counts."""

        if services is None:
            return _setup_failed()
        payload = services.status()
        _emit_log(context, "debug", "Session status", extra={"status": payload["status"]})
        return payload

    def _session_touch(task_ids: list[str], context: Context | None = None) -> dict[str, Any]:
        """Record task identifiers as owned by the active session."""

        if services is None:
            return _setup_failed()
        payload = services.touch_tasks(task_ids)
        _emit_log(context, "info", "Recorded touched tasks", extra={"count": len(task_ids)})
        return payload

    tool_finalize = server.tool(
        name="session_finalize",
        description=(
            "Finalize the active session: requires a merged PR, closes the issue (or phase "
            "issue), updates the parent checklist for Speckit features and marks touched "
            "tasks complete. Safe to re-run."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Closes issues and edits issue/PR bodies on the remote host",
            }
        },
    )(_session_finalize)

    tool_publish = server.tool(
        name="session_publish",
        description=(
            "Create or update the PR for the current branch using a pre-written title and "
            "description; links the session issue with a closing keyword."
        ),
    )(_session_publish)

    tool_status = server.tool(
        name="session_status",
        description="Show the active session record, integrity problems and task counts.",
    )(_session_status)

    tool_touch = server.tool(
        name="session_touch",
        description="Record task ids (e.g. T001) worked on during the active session.",
    )(_session_touch)

    return ToolHandles(
        session_finalize=tool_finalize,
        session_publish=tool_publish,
        session_status=tool_status,
        session_touch=tool_touch,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
