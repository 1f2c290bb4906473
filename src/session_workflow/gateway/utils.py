"""Utility helpers for subprocess-backed gateways."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "GH_PAGER",
    "PAGER",
}

_FORCED_VARS = {
    "GH_PROMPT_DISABLED": "1",
    "GH_NO_UPDATE_NOTIFIER": "1",
    "NO_COLOR": "1",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a non-interactive environment suitable for gh/git subprocesses."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_FORCED_VARS)
    if additional:
        env.update(additional)
    return env


def resolve_executable(name: str, explicit: Path | str | None, error: type[Exception]) -> Path:
    """Locate an executable, preferring an explicit path over PATH lookup."""

    if explicit is not None:
        candidate = Path(explicit)
        if candidate.exists() and candidate.is_file():
            return candidate
        raise error(f"{name} executable not found at {candidate}")

    binary = shutil.which(name)
    if binary is None:
        raise error(f"{name} executable not found on PATH")
    return Path(binary)


__all__ = ["resolve_executable", "sanitize_environment"]
