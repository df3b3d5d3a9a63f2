"""Key-value backends and the entry store built on top of them."""

from __future__ import annotations

import json
import logging
from typing import Dict, Iterable, List, MutableMapping, Optional, Protocol

from .domain import Entry
from .interchange import entries_from_records, entry_to_record

logger = logging.getLogger(__name__)

ENTRIES_KEY = "ppcp_entries"


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when a collection would contain the same id twice."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Backend kept in a plain dictionary, used by tests and demos."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)


class EntryStore:
    """Owns the persisted entry collection.

    The collection is always written in full through :meth:`replace`; there is
    no per-entry persistence.
    """

    def __init__(self, backend: Optional[KeyValueBackend] = None) -> None:
        self._backend: KeyValueBackend = backend or InMemoryKeyValueStore()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def load(self) -> List[Entry]:
        raw = self._backend.get(ENTRIES_KEY)
        if raw is None:
            return []
        try:
            return entries_from_records(json.loads(raw))
        except ValueError as exc:
            raise RepositoryError(f"Stored entries are corrupt: {exc}") from exc

    def replace(self, entries: Iterable[Entry]) -> None:
        collection = list(entries)
        seen: Dict[str, Entry] = {}
        for entry in collection:
            if entry.id in seen:
                raise DuplicateRecordError(f"Record with id {entry.id!r} already exists")
            seen[entry.id] = entry
        payload = json.dumps(
            [entry_to_record(entry) for entry in collection], ensure_ascii=False
        )
        self._backend.set(ENTRIES_KEY, payload)
        logger.debug("Persisted %d entries", len(collection))

    def get(self, entry_id: str) -> Entry:
        for entry in self.load():
            if entry.id == entry_id:
                return entry
        raise RecordNotFoundError(f"Record with id {entry_id!r} not found")


__all__ = [
    "ENTRIES_KEY",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "KeyValueBackend",
    "InMemoryKeyValueStore",
    "EntryStore",
]
