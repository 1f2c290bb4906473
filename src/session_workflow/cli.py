"""Operator CLI for publishing and finalizing sessions."""

from __future__ import annotations

import argparse
import json
from typing import Any

from .config import SessionSettings, configure_logging
from .gateway import BoardConfigError, GhNotFoundError, GitError
from .reporter import render_finalize, render_publish
from .services import Services, build_services


def load_services(settings: SessionSettings) -> Services:
    try:
        return build_services(settings)
    except (GhNotFoundError, GitError, BoardConfigError) as exc:
        print(json.dumps({"status": "error", "error": "Setup failed", "message": str(exc)}))
        raise SystemExit(1)


def _emit(payload: dict[str, Any], text: str, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
    else:
        print(text)


def _exit_code(payload: dict[str, Any]) -> int:
    return 0 if payload.get("status") == "success" else 1


def cmd_finalize(args: argparse.Namespace) -> int:
    services = load_services(SessionSettings())
    result = services.finalize_active()
    _emit(result.to_dict(), render_finalize(result), args.json)
    return 0 if result.ok else 1


def cmd_publish(args: argparse.Namespace) -> int:
    services = load_services(SessionSettings())
    result = services.publish_active(
        title=args.title,
        description=args.description or "",
        draft=args.draft,
        issue_number=args.issue,
    )
    _emit(result.to_dict(), render_publish(result), args.json)
    return 0 if result.ok else 1


def cmd_touch(args: argparse.Namespace) -> int:
    services = load_services(SessionSettings())
    payload = services.touch_tasks(args.task_ids)
    if payload["status"] == "success":
        text = "Touched tasks: " + (", ".join(payload["touched_tasks"]) or "none")
    else:
        text = f"❌ {payload['error']}: {payload['message']}"
    _emit(payload, text, args.json)
    return _exit_code(payload)


def cmd_status(args: argparse.Namespace) -> int:
    services = load_services(SessionSettings())
    payload = services.status()
    if payload["status"] == "success":
        session = payload["session"]
        tasks = payload["tasks"]
        lines = [
            f"Session {session['session_id']} [{session['type']}]",
            f"Tasks: {tasks.get('completed', '?')}/{tasks.get('total', '?')} complete ({tasks['file']})",
        ]
        if session.get("pr_number"):
            lines.append(f"PR #{session['pr_number']}")
        lines.extend(f"⚠ {problem}" for problem in payload["problems"])
        text = "\n".join(lines)
    else:
        text = f"❌ {payload['error']}: {payload['message']}"
    _emit(payload, text, args.json)
    return _exit_code(payload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Session workflow: publish and finalize")
    sub = parser.add_subparsers(dest="cmd")

    p_finalize = sub.add_parser("finalize", help="Close issues and mark tasks after the PR merged")
    p_finalize.add_argument("--json", action="store_true", help="Output JSON")
    p_finalize.set_defaults(func=cmd_finalize)

    p_publish = sub.add_parser("publish", help="Create or update the PR for the session branch")
    p_publish.add_argument("--title", required=True)
    p_publish.add_argument("--description", default="")
    mode = p_publish.add_mutually_exclusive_group()
    mode.add_argument("--draft", dest="draft", action="store_true", help="Open as draft")
    mode.add_argument("--ready", dest="draft", action="store_false", help="Open ready for review")
    p_publish.add_argument("--issue", type=int, default=None, help="Issue to link with a closing keyword")
    p_publish.add_argument("--json", action="store_true", help="Output JSON")
    p_publish.set_defaults(func=cmd_publish, draft=False)

    p_touch = sub.add_parser("touch", help="Record task ids worked on in this session")
    p_touch.add_argument("task_ids", nargs="+", metavar="TASK_ID")
    p_touch.add_argument("--json", action="store_true", help="Output JSON")
    p_touch.set_defaults(func=cmd_touch)

    p_status = sub.add_parser("status", help="Show the active session and task counts")
    p_status.add_argument("--json", action="store_true", help="Output JSON")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    configure_logging(SessionSettings().log_level)
    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
