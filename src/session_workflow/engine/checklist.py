"""Parent-issue checklist patching and PR phase notes.

Phase items on a Speckit parent issue are checklist lines that reference an
issue number, e.g. ``- [ ] Phase 2: Data model (#610)``. The first ``#<number>``
on a line is that line's phase marker; later mentions such as
``depends on #602`` are ignored. Lines are located by the marker rather than by
position, and only the single marker character inside the brackets is ever
rewritten.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_CHECKLIST_LINE = re.compile(
    r"^[ \t]*[-*][ \t]+\[(?P<mark>[ xX])\](?P<rest>[^\n]*)$", re.MULTILINE
)
_ISSUE_REF = re.compile(r"(?<![\w/])#(?P<number>\d+)\b")

PHASE_NOTE_MARKER = "<!-- session-phase:{phase} -->"


class ChecklistError(ValueError):
    """Raised when the phase line cannot be located unambiguously."""


@dataclass(slots=True, frozen=True)
class PhaseLine:
    start: int
    end: int
    mark_offset: int
    checked: bool


def _phase_matches(body: str) -> list[tuple[re.Match[str], int]]:
    matches = []
    for match in _CHECKLIST_LINE.finditer(body):
        marker = _ISSUE_REF.search(match.group("rest"))
        if marker is not None:
            matches.append((match, int(marker.group("number"))))
    return matches


def checklist_progress(body: str) -> tuple[int, int]:
    """Return ``(phases_complete, phases_total)`` for the phase items in a body."""

    matches = _phase_matches(body)
    complete = sum(1 for match, _ in matches if match.group("mark") != " ")
    return complete, len(matches)


def format_progress(complete: int, total: int) -> str:
    return f"{complete}/{total} phases complete"


def locate_phase_line(body: str, phase_issue: int) -> PhaseLine:
    """Find the unique checklist line that references ``#<phase_issue>``."""

    found = [match for match, number in _phase_matches(body) if number == phase_issue]
    if not found:
        raise ChecklistError(f"No checklist line references phase #{phase_issue}")
    if len(found) > 1:
        raise ChecklistError(
            f"{len(found)} checklist lines reference phase #{phase_issue}; refusing to guess"
        )
    match = found[0]
    return PhaseLine(
        start=match.start(),
        end=match.end(),
        mark_offset=match.start("mark"),
        checked=match.group("mark") != " ",
    )


def check_phase(body: str, phase_issue: int) -> str:
    """Return the body with the phase's checkbox ticked; every other byte is preserved."""

    line = locate_phase_line(body, phase_issue)
    if line.checked:
        return body
    return body[: line.mark_offset] + "x" + body[line.mark_offset + 1 :]


def append_phase_note(body: str, phase_issue: int, pr_number: int, progress: str) -> str:
    """Append a completion note for the phase unless one is already present."""

    marker = PHASE_NOTE_MARKER.format(phase=phase_issue)
    if marker in body:
        return body
    note = f"{marker}\n- [x] Phase #{phase_issue} complete via PR #{pr_number} ({progress})\n"
    stripped = body.rstrip("\n")
    if not stripped:
        return note
    return f"{stripped}\n\n{note}"


__all__ = [
    "ChecklistError",
    "PHASE_NOTE_MARKER",
    "PhaseLine",
    "append_phase_note",
    "check_phase",
    "checklist_progress",
    "format_progress",
    "locate_phase_line",
]
