"""Wiring shared by the CLI and the MCP tools."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .config import SessionSettings, get_settings
from .engine import FinalizeEngine, FinalizeResult, PublishEngine, PublishResult
from .gateway import GatewayProtocol, GitHubCliGateway, GitRepository, load_board_config
from .sessions import SessionStore, SessionStoreError
from .tasks import MalformedLedgerError, TaskLedger


@dataclass(slots=True)
class Services:
    settings: SessionSettings
    store: SessionStore
    gateway: GatewayProtocol
    git: GitRepository
    finalizer: FinalizeEngine
    publisher: PublishEngine

    def finalize_active(self) -> FinalizeResult:
        try:
            session = self.store.load_active()
        except SessionStoreError as exc:
            return FinalizeResult.failure(
                session_type=None, error="No active session", message=str(exc)
            )
        return self.finalizer.finalize(session)

    def publish_active(
        self,
        *,
        title: str,
        description: str = "",
        draft: bool = False,
        issue_number: int | None = None,
    ) -> PublishResult:
        try:
            session = self.store.load_active()
        except SessionStoreError as exc:
            return PublishResult.failure(error="No active session", message=str(exc))
        return self.publisher.publish(
            session,
            title=title,
            description=description,
            draft=draft,
            issue_number=issue_number,
        )

    def touch_tasks(self, identifiers: Iterable[str]) -> dict[str, Any]:
        try:
            session = self.store.load_active()
            updated = self.store.record_touched_tasks(session, identifiers)
        except SessionStoreError as exc:
            return {"status": "error", "error": "No active session", "message": str(exc)}
        return {
            "status": "success",
            "session_id": updated.session_id,
            "touched_tasks": list(updated.touched_tasks),
        }

    def status(self) -> dict[str, Any]:
        try:
            session = self.store.load_active()
        except SessionStoreError as exc:
            return {"status": "error", "error": "No active session", "message": str(exc)}

        ledger = TaskLedger(self.finalizer.ledger_path(session))
        tasks: dict[str, Any] = {"file": str(ledger.path)}
        try:
            total, completed = ledger.counts()
            tasks.update({"total": total, "completed": completed})
        except (MalformedLedgerError, OSError) as exc:
            tasks["error"] = str(exc)
        return {
            "status": "success",
            "session": session.to_record(),
            "problems": session.integrity_errors(),
            "tasks": tasks,
        }


def build_services(
    settings: SessionSettings | None = None,
    *,
    gateway: GatewayProtocol | None = None,
    git: GitRepository | None = None,
) -> Services:
    """Construct the store, gateway and engines from settings."""

    settings = settings or get_settings()
    store = SessionStore(settings.session_root)
    if git is None:
        git = GitRepository(timeout=settings.command_timeout)
    if gateway is None:
        gateway = GitHubCliGateway(
            Path(settings.gh_path) if settings.gh_path else None,
            repo=settings.github_repo,
            timeout=settings.command_timeout,
            board=load_board_config(settings.resolved_board_config_path),
        )
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        git=git,
        finalizer=FinalizeEngine(gateway, store=store, specs_dir=settings.specs_dir, git=git),
        publisher=PublishEngine(
            gateway, git, store=store, default_base=settings.default_base_branch
        ),
    )


__all__ = ["Services", "build_services"]
