"""Conversion between entries and their external representations.

Two formats are supported:

* a spreadsheet workbook (one row per entry, dates shown as ``DD/MM/YYYY``)
* a JSON snapshot of the whole collection (dates kept in ISO form)

Both share the record column names below, which are also the keys of the
persisted collection.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .domain import (
    DATE_FIELDS,
    Entry,
    EntryValidationError,
    build_entry,
    new_entry_id,
)

logger = logging.getLogger(__name__)

DISPLAY_DATE_FORMAT = "%d/%m/%Y"
CANONICAL_DATE_FORMAT = "%Y-%m-%d"
SHEET_NAME = "PPCP"
WORKBOOK_FILENAME = "ppcp_data.xlsx"
SNAPSHOT_VERSION = 1

# (entry attribute, record column) in export order.
ENTRY_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("id", "id"),
    ("order_code", "oc"),
    ("part_number", "pn"),
    ("external_code", "codigoE"),
    ("planned_production_date", "dataProd"),
    ("planned_treatment_date", "dataTrat"),
    ("planned_treatment_return_date", "dataRetTrat"),
    ("planned_delivery_date", "dataEntrega"),
    ("has_control_document", "possuiCD"),
    ("control_document_number", "numeroCD"),
    ("has_follow_sheet", "fichaSeguidora"),
    ("status", "status"),
    ("priority", "prioridade"),
)
COLUMN_NAMES: Tuple[str, ...] = tuple(column for _, column in ENTRY_COLUMNS)
REQUIRED_COLUMNS: Tuple[str, ...] = tuple(column for column in COLUMN_NAMES if column != "id")


class InterchangeError(ValueError):
    """Base exception for documents or values that cannot be interpreted."""


class DateParseError(InterchangeError):
    """Raised when a date value does not match any accepted format."""


class WorkbookError(InterchangeError):
    """Raised when a workbook cannot be imported at all."""


class SnapshotError(InterchangeError):
    """Raised when a snapshot cannot be restored."""


@dataclass(slots=True)
class RowRejection:
    """A workbook row that was skipped during import."""

    row_number: int
    errors: Dict[str, str]


@dataclass(slots=True)
class ImportResult:
    entries: List[Entry] = field(default_factory=list)
    rejected: List[RowRejection] = field(default_factory=list)


@dataclass(slots=True)
class Snapshot:
    entries: List[Entry]
    timestamp: str
    version: int = SNAPSHOT_VERSION


# ----------------------------------------------------------------------
# Cell and date helpers
# ----------------------------------------------------------------------
def cell_text(value: Any) -> str:
    """Return spreadsheet cell content as stripped text ('' for empty cells)."""

    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    elif not isinstance(value, str) and pd.api.types.is_scalar(value) and pd.isna(value):
        return ""
    return str(value).strip()


def format_display_date(value: Any) -> str:
    """Render a canonical date as ``DD/MM/YYYY``.

    Values that cannot be parsed are returned unchanged as text.
    """

    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime(DISPLAY_DATE_FORMAT)
    text = cell_text(value)
    try:
        return datetime.strptime(text, CANONICAL_DATE_FORMAT).strftime(DISPLAY_DATE_FORMAT)
    except ValueError:
        return text


def parse_display_date(value: Any) -> date:
    """Parse a workbook date cell into a canonical date.

    Accepts ``DD/MM/YYYY`` text, native spreadsheet dates and ISO text.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = cell_text(value)
    if not text:
        raise DateParseError("is required")
    for fmt in (DISPLAY_DATE_FORMAT, CANONICAL_DATE_FORMAT):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise DateParseError(f"{text!r} is not a valid date (expected DD/MM/YYYY)")


# ----------------------------------------------------------------------
# Canonical records (persistence and snapshots)
# ----------------------------------------------------------------------
def entry_to_record(entry: Entry) -> Dict[str, str]:
    record: Dict[str, str] = {}
    for attribute, column in ENTRY_COLUMNS:
        value = getattr(entry, attribute)
        if isinstance(value, date):
            record[column] = value.isoformat()
        elif hasattr(value, "value"):
            record[column] = value.value
        else:
            record[column] = value
    return record


def entry_from_record(record: Mapping[str, Any]) -> Entry:
    """Build an entry from a canonical record; unknown keys are ignored."""

    fields = {
        attribute: record.get(column)
        for attribute, column in ENTRY_COLUMNS
        if attribute != "id"
    }
    return build_entry(cell_text(record.get("id")), fields)


def entries_from_records(records: Any) -> List[Entry]:
    """Decode a full record list, failing on the first invalid or duplicate entry."""

    if not isinstance(records, list):
        raise SnapshotError("'entries' must be a list")
    entries: List[Entry] = []
    seen: set = set()
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise SnapshotError(f"Entry #{index + 1} is not an object")
        try:
            entry = entry_from_record(record)
        except EntryValidationError as exc:
            raise SnapshotError(f"Entry #{index + 1} is invalid: {exc}") from exc
        if entry.id in seen:
            raise SnapshotError(f"Entry #{index + 1} repeats id {entry.id!r}")
        seen.add(entry.id)
        entries.append(entry)
    return entries


# ----------------------------------------------------------------------
# Workbook export / import
# ----------------------------------------------------------------------
def export_rows(entries: Iterable[Entry]) -> List[Dict[str, str]]:
    """Tabular rows with display-formatted dates, one per entry."""

    rows: List[Dict[str, str]] = []
    for entry in entries:
        row = entry_to_record(entry)
        for attribute, column in ENTRY_COLUMNS:
            if attribute in DATE_FIELDS:
                row[column] = format_display_date(getattr(entry, attribute))
        rows.append(row)
    return rows


def export_workbook(entries: Iterable[Entry]) -> bytes:
    frame = pd.DataFrame(export_rows(entries), columns=list(COLUMN_NAMES))
    buffer = io.BytesIO()
    frame.to_excel(buffer, sheet_name=SHEET_NAME, index=False, engine="openpyxl")
    return buffer.getvalue()


def read_workbook(content: bytes) -> List[Dict[str, Any]]:
    """Read the first sheet of an ``.xlsx`` file into row dictionaries."""

    try:
        # only truly empty cells are missing; "NA" or "None" are real codes
        frame = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            dtype=object,
            keep_default_na=False,
            na_values=[""],
            engine="openpyxl",
        )
    except Exception as exc:
        raise WorkbookError(f"Unreadable workbook: {exc}") from exc
    frame.columns = [str(column).strip() for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise WorkbookError(f"Missing columns: {', '.join(missing)}")
    frame = frame.astype(object).where(pd.notna(frame), None)
    return frame.to_dict(orient="records")


def _row_to_entry(row: Mapping[str, Any], entry_id: str) -> Entry:
    fields: Dict[str, Any] = {}
    date_errors: Dict[str, str] = {}
    for attribute, column in ENTRY_COLUMNS:
        if attribute == "id":
            continue
        value = row.get(column)
        if attribute in DATE_FIELDS:
            try:
                fields[attribute] = parse_display_date(value)
            except DateParseError as exc:
                date_errors[attribute] = str(exc)
        else:
            fields[attribute] = cell_text(value)
    try:
        entry = build_entry(entry_id, fields)
    except EntryValidationError as exc:
        raise EntryValidationError({**exc.errors, **date_errors}) from exc
    if date_errors:
        raise EntryValidationError(date_errors)
    return entry


def import_rows(
    rows: Sequence[Mapping[str, Any]],
    *,
    id_factory: Callable[[], str] = new_entry_id,
) -> ImportResult:
    """Convert loosely typed rows to entries, rejecting invalid rows.

    Rows without an id get a fresh one. A row repeating an id already
    imported from the same file is rejected.
    """

    result = ImportResult()
    seen: set = set()
    for index, row in enumerate(rows):
        # header is row 1 in the sheet
        row_number = index + 2
        entry_id = cell_text(row.get("id")) or id_factory()
        if entry_id in seen:
            result.rejected.append(
                RowRejection(row_number, {"id": f"duplicate id {entry_id!r}"})
            )
            continue
        try:
            entry = _row_to_entry(row, entry_id)
        except EntryValidationError as exc:
            result.rejected.append(RowRejection(row_number, exc.errors))
            continue
        seen.add(entry.id)
        result.entries.append(entry)
    for rejection in result.rejected:
        logger.warning("Skipping row %s: %s", rejection.row_number, rejection.errors)
    return result


def import_workbook(
    content: bytes, *, id_factory: Callable[[], str] = new_entry_id
) -> ImportResult:
    return import_rows(read_workbook(content), id_factory=id_factory)


# ----------------------------------------------------------------------
# Snapshot backup / restore
# ----------------------------------------------------------------------
def dump_snapshot(entries: Iterable[Entry], *, generated_at: Optional[datetime] = None) -> str:
    timestamp = (generated_at or datetime.now().astimezone()).isoformat()
    payload = {
        "version": SNAPSHOT_VERSION,
        "timestamp": timestamp,
        "entries": [entry_to_record(entry) for entry in entries],
    }
    return json.dumps(payload, ensure_ascii=False)


def snapshot_filename(generated_at: Optional[datetime] = None) -> str:
    moment = generated_at or datetime.now()
    return f"ppcp_backup_{moment.strftime('%d-%m-%Y_%H-%M')}.json"


def load_snapshot(payload: Any) -> Snapshot:
    """Decode a snapshot document; nothing is returned unless every entry is valid."""

    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SnapshotError("Snapshot is not UTF-8 text") from exc
    try:
        document = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Snapshot is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    if "entries" not in document:
        raise SnapshotError("Snapshot has no 'entries'")
    version = document.get("version", SNAPSHOT_VERSION)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise SnapshotError(f"Unsupported snapshot version {version!r}")
    entries = entries_from_records(document["entries"])
    return Snapshot(
        entries=entries,
        timestamp=str(document.get("timestamp") or ""),
        version=version,
    )


__all__ = [
    "DISPLAY_DATE_FORMAT",
    "CANONICAL_DATE_FORMAT",
    "SHEET_NAME",
    "WORKBOOK_FILENAME",
    "SNAPSHOT_VERSION",
    "ENTRY_COLUMNS",
    "COLUMN_NAMES",
    "REQUIRED_COLUMNS",
    "InterchangeError",
    "DateParseError",
    "WorkbookError",
    "SnapshotError",
    "RowRejection",
    "ImportResult",
    "Snapshot",
    "cell_text",
    "format_display_date",
    "parse_display_date",
    "entry_to_record",
    "entry_from_record",
    "entries_from_records",
    "export_rows",
    "export_workbook",
    "read_workbook",
    "import_rows",
    "import_workbook",
    "dump_snapshot",
    "snapshot_filename",
    "load_snapshot",
]
