"""File-backed session store rooted at the .session directory."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .models import Session

logger = logging.getLogger(__name__)


class SessionStoreError(RuntimeError):
    """Raised when the active session cannot be resolved or persisted."""


class SessionStore:
    """Reads and writes session-info.json records and the active-session pointer."""

    def __init__(self, root: Path | str = ".session") -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def sessions_dir(self) -> Path:
        return self._root / "sessions"

    @property
    def active_pointer(self) -> Path:
        return self._root / "ACTIVE_SESSION"

    def session_dir(self, session_id: str) -> Path:
        """Return .session/sessions/YYYY-MM/<session_id> for an id in YYYY-MM-DD-N form."""

        year_month = "-".join(session_id.split("-")[:2])
        return self.sessions_dir / year_month / session_id

    def info_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "session-info.json"

    def tasks_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / "tasks.md"

    def active_session_id(self) -> str | None:
        """Return the id named by the active pointer, if any."""

        if not self.active_pointer.exists():
            return None
        value = self.active_pointer.read_text(encoding="utf-8").strip()
        return value or None

    def load(self, session_id: str) -> Session:
        """Load and validate a session record."""

        path = self.info_path(session_id)
        if not path.exists():
            raise SessionStoreError(f"Session info not found: {path}")
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SessionStoreError(f"Failed to parse JSON in {path}: {exc}") from exc

        try:
            return Session.model_validate(document)
        except ValidationError as exc:
            raise SessionStoreError(f"Session validation error in {path}: {exc}") from exc

    def load_active(self) -> Session:
        """Resolve the active-session pointer and load its record."""

        session_id = self.active_session_id()
        if session_id is None:
            raise SessionStoreError("No active session")
        return self.load(session_id)

    def save(self, session: Session) -> Path:
        """Persist a session record atomically (write to temp file, then rename)."""

        path = self.info_path(session.session_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(session.to_record(), indent=2) + "\n"
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".session-info.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise SessionStoreError(f"Failed to write {path}: {exc}") from exc
        return path

    def set_active(self, session_id: str) -> None:
        """Point ACTIVE_SESSION at the given id."""

        self._root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix="ACTIVE_SESSION.")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(session_id + "\n")
        os.replace(tmp_name, self.active_pointer)

    def record_pr_number(self, session: Session, pr_number: int) -> Session:
        """Store the PR number on the session record, returning the updated session."""

        if session.pr_number == pr_number:
            return session
        updated = session.model_copy(update={"pr_number": pr_number})
        self.save(updated)
        logger.info(
            "Recorded PR on session",
            extra={"session_id": session.session_id, "pr_number": pr_number},
        )
        return updated

    def record_touched_tasks(self, session: Session, identifiers: Iterable[str]) -> Session:
        """Append task identifiers to the session's ownership record."""

        merged = Session.model_validate(
            {**session.model_dump(), "touched_tasks": [*session.touched_tasks, *identifiers]}
        )
        if merged.touched_tasks != session.touched_tasks:
            self.save(merged)
            logger.info(
                "Recorded touched tasks",
                extra={"session_id": session.session_id, "tasks": merged.touched_tasks},
            )
        return merged


__all__ = ["SessionStore", "SessionStoreError"]
