"""Production planning and control (PPCP) tracker.

This package tracks production orders through a fixed manufacturing
workflow: entry validation, priority ordering, overdue detection, and
spreadsheet and snapshot interchange backed by a SQLite key-value store.
"""

from .domain import (
    Entry,
    EntryPriority,
    EntryStatus,
    EntryValidationError,
    YesNo,
)
from .repository import EntryStore
from .services import AuthenticationError, PPCPService

__all__ = [
    "Entry",
    "EntryPriority",
    "EntryStatus",
    "EntryValidationError",
    "YesNo",
    "EntryStore",
    "AuthenticationError",
    "PPCPService",
]
