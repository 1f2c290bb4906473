"""Minimal git plumbing used by publish and finalize."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from .utils import resolve_executable, sanitize_environment


class GitError(RuntimeError):
    """Raised when git cannot be located or times out."""


@dataclass(slots=True)
class GitResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRepository:
    """Query branch state through the git CLI."""

    def __init__(
        self,
        cwd: Path | str | None = None,
        *,
        executable: Path | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._cwd = Path(cwd) if cwd is not None else None
        self._timeout = timeout
        self._executable_path = resolve_executable("git", executable, GitError)

    def current_branch(self) -> str | None:
        result = self._invoke("branch", "--show-current")
        branch = result.stdout.strip() if result.ok else ""
        return branch or None

    def origin_head(self) -> str | None:
        """Return the default branch advertised by origin/HEAD, if set."""

        result = self._invoke("symbolic-ref", "refs/remotes/origin/HEAD")
        if not result.ok:
            return None
        ref = result.stdout.strip()
        return ref.removeprefix("refs/remotes/origin/") or None

    def commits_ahead(self, base: str) -> int:
        """Count commits on HEAD not on origin/<base>; unknown counts as zero."""

        result = self._invoke("rev-list", "--count", f"origin/{base}..HEAD")
        if not result.ok:
            return 0
        try:
            return int(result.stdout.strip() or 0)
        except ValueError:
            return 0

    def _invoke(self, *args: str) -> GitResult:
        cmd = [str(self._executable_path), *args]
        try:
            completed = subprocess.run(
                cmd,
                cwd=str(self._cwd) if self._cwd else None,
                capture_output=True,
                text=True,
                env=sanitize_environment(),
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(f"git {' '.join(args)} timed out after {self._timeout}s") from exc
        return GitResult(
            args=tuple(cmd),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


class FakeGitRepository(GitRepository):
    """Test double returning canned branch state."""

    def __init__(  # type: ignore[override]
        self,
        *,
        branch: str | None = "feature/session",
        origin_head: str | None = "main",
        commits_ahead: int = 1,
    ) -> None:
        self._branch = branch
        self._origin_head = origin_head
        self._commits_ahead = commits_ahead
        self.ahead_queries: list[str] = []

    def current_branch(self) -> str | None:
        return self._branch

    def origin_head(self) -> str | None:
        return self._origin_head

    def commits_ahead(self, base: str) -> int:
        self.ahead_queries.append(base)
        return self._commits_ahead


__all__ = ["FakeGitRepository", "GitError", "GitRepository", "GitResult"]
