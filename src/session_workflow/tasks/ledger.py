"""Task ledger parsing and checkbox rewriting for tasks.md documents.

A ledger entry is a list item of the form ``- [ ] T001 description`` or
``- [x] T001 description``. Everything else in the document (headings, prose,
checklists without task identifiers) is carried through untouched. Rewrites
only ever replace the single marker character between the brackets, so a
document round-trips byte for byte.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

ENTRY_PATTERN = re.compile(
    r"^(?P<indent>[ \t]*)[-*][ \t]+\[(?P<mark>[ xX])\][ \t]+(?P<ident>T\d+)\b"
)
# Anything shaped like a bullet, a bracket pair and a task identifier is meant to be
# an entry; if it does not satisfy ENTRY_PATTERN the document is malformed.
CANDIDATE_PATTERN = re.compile(r"^[ \t]*[-*][ \t]*\[[^\]\n]*\][ \t]*T\d+\b")


class MalformedLedgerError(ValueError):
    """Raised when a task-looking line breaks the checkbox-entry grammar or the file is not UTF-8."""

    def __init__(self, line_number: int, line: str, reason: str = "Malformed task entry") -> None:
        super().__init__(f"{reason} on line {line_number}: {line.rstrip()!r}")
        self.line_number = line_number
        self.line = line


@dataclass(slots=True, frozen=True)
class TaskEntry:
    identifier: str
    done: bool
    line_number: int
    text: str


def _split(document_text: str) -> list[str]:
    # split("\n") keeps "\r" on each line, so join("\n") restores CRLF documents exactly.
    return document_text.split("\n")


def _match(line: str, line_number: int) -> re.Match[str] | None:
    match = ENTRY_PATTERN.match(line)
    if match is None and CANDIDATE_PATTERN.match(line):
        raise MalformedLedgerError(line_number, line)
    return match


def parse(document_text: str) -> list[TaskEntry]:
    """Return the ordered task entries in a ledger document."""

    entries: list[TaskEntry] = []
    for index, line in enumerate(_split(document_text), start=1):
        match = _match(line, index)
        if match is None:
            continue
        entries.append(
            TaskEntry(
                identifier=match.group("ident"),
                done=match.group("mark") in "xX",
                line_number=index,
                text=line.rstrip("\r"),
            )
        )
    return entries


def mark_done(document_text: str, identifiers: Iterable[str]) -> tuple[str, int]:
    """Check off the given identifiers and return ``(new_text, count_marked)``.

    Entries already done are left alone and not counted; identifiers absent from
    the document are ignored.
    """

    wanted = {ident.strip().upper() for ident in identifiers if ident and ident.strip()}
    lines = _split(document_text)
    marked = 0
    for index, line in enumerate(lines):
        match = _match(line, index + 1)
        if match is None or match.group("ident") not in wanted:
            continue
        if match.group("mark") != " ":
            continue
        lines[index] = line[: match.start("mark")] + "x" + line[match.end("mark") :]
        marked += 1
    if not marked:
        return document_text, 0
    return "\n".join(lines), marked


def count(document_text: str) -> tuple[int, int]:
    """Return ``(total, completed)`` for the document's task entries."""

    entries = parse(document_text)
    return len(entries), sum(1 for entry in entries if entry.done)


class TaskLedger:
    """File-backed ledger; a missing file behaves as an empty ledger."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def read(self) -> str:
        if not self.exists():
            return ""
        # Bytes in, bytes out: text mode would normalize line endings.
        raw = self._path.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            line_number = raw.count(b"\n", 0, exc.start) + 1
            line = raw.split(b"\n")[line_number - 1].decode("utf-8", errors="replace")
            raise MalformedLedgerError(line_number, line, reason="Invalid UTF-8") from exc

    def entries(self) -> list[TaskEntry]:
        return parse(self.read())

    def counts(self) -> tuple[int, int]:
        return count(self.read())

    def mark_done(self, identifiers: Iterable[str]) -> int:
        """Mark identifiers done on disk and return how many entries changed."""

        original = self.read()
        updated, marked = mark_done(original, identifiers)
        if marked:
            self._path.write_bytes(updated.encode("utf-8"))
            logger.info(
                "Marked tasks complete",
                extra={"ledger": str(self._path), "marked": marked},
            )
        return marked


__all__ = [
    "MalformedLedgerError",
    "TaskEntry",
    "TaskLedger",
    "count",
    "mark_done",
    "parse",
]
