"""Finalize and publish state machines."""

from .checklist import ChecklistError, append_phase_note, check_phase, checklist_progress
from .finalize import FinalizeEngine
from .publish import PublishEngine, with_closing_keyword
from .results import (
    FinalizeResult,
    IssueOutcome,
    ParentOutcome,
    PublishResult,
    PullRequestOutcome,
    TaskCounts,
)

__all__ = [
    "ChecklistError",
    "FinalizeEngine",
    "FinalizeResult",
    "IssueOutcome",
    "ParentOutcome",
    "PublishEngine",
    "PublishResult",
    "PullRequestOutcome",
    "TaskCounts",
    "append_phase_note",
    "check_phase",
    "checklist_progress",
    "with_closing_keyword",
]
