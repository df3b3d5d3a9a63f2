"""Service layer that implements the PPCP use-cases."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from . import interchange, reports
from .domain import (
    Entry,
    EntryPriority,
    EntryStatus,
    create_entry,
    new_entry_id,
    update_entry,
)
from .interchange import ImportResult, WorkbookError
from .repository import EntryStore, RecordNotFoundError

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Credenciais inválidas"


class AuthenticationError(PermissionError):
    """Raised when a login attempt does not match the configured credentials."""

    def __init__(self) -> None:
        super().__init__(INVALID_CREDENTIALS)


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str
    password: str


@dataclass(slots=True)
class ChartData:
    """Aggregates backing the dashboard charts."""

    priorities: Dict[EntryPriority, int]
    statuses: Dict[EntryStatus, int]
    overdue: Dict[str, List[reports.OverdueEntry]]


class PPCPService:
    """Facade that exposes PPCP use-cases to clients.

    Every mutation loads the current collection, builds the complete new
    collection and hands it to :meth:`EntryStore.replace` in one call.
    """

    def __init__(
        self,
        store: Optional[EntryStore] = None,
        *,
        credentials: Optional[Credentials] = None,
        id_factory: Callable[[], str] = new_entry_id,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store or EntryStore()
        self.credentials = credentials or Credentials("admin", "admin")
        self._id_factory = id_factory
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def list_entries(self) -> List[Entry]:
        return self.store.load()

    def get_entry(self, entry_id: str) -> Entry:
        return self.store.get(entry_id)

    def create_entry(self, fields: Mapping[str, Any]) -> Entry:
        collection = self.store.load()
        entry = create_entry(fields, id_factory=self._id_factory)
        self.store.replace([*collection, entry])
        logger.info("Created entry %s (%s)", entry.order_code, entry.id)
        return entry

    def update_entry(self, entry_id: str, fields: Mapping[str, Any]) -> Entry:
        collection = self.store.load()
        for index, existing in enumerate(collection):
            if existing.id == entry_id:
                break
        else:
            raise RecordNotFoundError(f"Record with id {entry_id!r} not found")
        updated = update_entry(existing, fields)
        collection[index] = updated
        self.store.replace(collection)
        logger.info("Updated entry %s (%s)", updated.order_code, updated.id)
        return updated

    def delete_entry(self, entry_id: str) -> None:
        collection = self.store.load()
        remaining = [entry for entry in collection if entry.id != entry_id]
        if len(remaining) == len(collection):
            raise RecordNotFoundError(f"Record with id {entry_id!r} not found")
        self.store.replace(remaining)
        logger.info("Deleted entry %s", entry_id)

    # ------------------------------------------------------------------
    # Read-side projections
    # ------------------------------------------------------------------
    def visible_entries(
        self, status_filter: Union[EntryStatus, str, None] = reports.ALL_STATUSES
    ) -> List[Entry]:
        return reports.visible_entries(self.store.load(), status_filter)

    def priority_histogram(self) -> Dict[EntryPriority, int]:
        return reports.priority_histogram(self.store.load())

    def status_histogram(self) -> Dict[EntryStatus, int]:
        return reports.status_histogram(self.store.load())

    def overdue(
        self, date_field: str, as_of: Optional[date] = None
    ) -> List[reports.OverdueEntry]:
        return reports.overdue(self.store.load(), date_field, as_of or self.today())

    def overdue_overview(
        self, as_of: Optional[date] = None
    ) -> Dict[str, List[reports.OverdueEntry]]:
        return reports.overdue_overview(self.store.load(), as_of or self.today())

    def chart_data(self, as_of: Optional[date] = None) -> ChartData:
        collection = self.store.load()
        return ChartData(
            priorities=reports.priority_histogram(collection),
            statuses=reports.status_histogram(collection),
            overdue=reports.overdue_overview(collection, as_of or self.today()),
        )

    # ------------------------------------------------------------------
    # Interchange
    # ------------------------------------------------------------------
    def export_workbook(self) -> bytes:
        collection = self.store.load()
        logger.info("Exporting %d entries to workbook", len(collection))
        return interchange.export_workbook(collection)

    def import_workbook(self, content: bytes) -> ImportResult:
        """Replace the collection with the valid rows of a workbook.

        Nothing is replaced when the file cannot be read, or when it has rows
        and none of them is valid.
        """

        result = interchange.import_workbook(content, id_factory=self._id_factory)
        if result.rejected and not result.entries:
            raise WorkbookError(
                f"No valid rows to import ({len(result.rejected)} rejected)"
            )
        self.store.replace(result.entries)
        logger.info(
            "Imported %d entries from workbook (%d rows rejected)",
            len(result.entries),
            len(result.rejected),
        )
        return result

    def backup(self) -> Tuple[str, str]:
        """Return ``(filename, payload)`` for a snapshot of the collection."""

        moment = self._clock()
        collection = self.store.load()
        payload = interchange.dump_snapshot(collection, generated_at=moment)
        logger.info("Created backup with %d entries", len(collection))
        return interchange.snapshot_filename(moment), payload

    def restore(self, payload: Union[str, bytes]) -> int:
        snapshot = interchange.load_snapshot(payload)
        self.store.replace(snapshot.entries)
        logger.info(
            "Restored %d entries from snapshot taken %s",
            len(snapshot.entries),
            snapshot.timestamp or "at an unknown time",
        )
        return len(snapshot.entries)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def login(self, username: str, password: str) -> None:
        user_ok = hmac.compare_digest(
            username.encode("utf-8"), self.credentials.username.encode("utf-8")
        )
        password_ok = hmac.compare_digest(
            password.encode("utf-8"), self.credentials.password.encode("utf-8")
        )
        if not (user_ok and password_ok):
            logger.warning("Rejected login attempt")
            raise AuthenticationError()
        logger.info("User logged in")


__all__ = [
    "INVALID_CREDENTIALS",
    "AuthenticationError",
    "Credentials",
    "ChartData",
    "PPCPService",
]
