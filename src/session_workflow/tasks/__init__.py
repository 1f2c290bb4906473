"""Task ledger utilities."""

from .ledger import MalformedLedgerError, TaskEntry, TaskLedger, count, mark_done, parse

__all__ = [
    "MalformedLedgerError",
    "TaskEntry",
    "TaskLedger",
    "count",
    "mark_done",
    "parse",
]
