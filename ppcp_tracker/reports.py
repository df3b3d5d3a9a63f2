"""Read-side projections over an entry collection: ordering, histograms, overdue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .domain import (
    DATE_FIELDS,
    PRIORITY_SEQUENCE,
    STATUS_SEQUENCE,
    Entry,
    EntryPriority,
    EntryStatus,
    parse_choice,
)

ALL_STATUSES = "all"

OVERDUE_CHARTS: Dict[str, str] = {
    "planned_treatment_date": "OCs com Tratamento Atrasado",
    "planned_treatment_return_date": "OCs com Retorno Atrasado",
    "planned_delivery_date": "OCs com Entrega Atrasada",
}

_PRIORITY_STYLES: Dict[EntryPriority, str] = {
    EntryPriority.MAXIMUM_URGENCY: "priority-maximum",
    EntryPriority.FLANGE_NUT: "priority-flange",
    EntryPriority.COVERAGE: "priority-coverage",
    EntryPriority.NORMAL: "priority-normal",
}


@dataclass(frozen=True, slots=True)
class OverdueEntry:
    order_code: str
    days_late: int


def resolve_status_filter(
    status_filter: Union[EntryStatus, str, None]
) -> Optional[EntryStatus]:
    """Map a filter value to a status, or ``None`` meaning every status.

    Values outside the status vocabulary fall back to "all".
    """

    if status_filter is None or status_filter == ALL_STATUSES:
        return None
    try:
        return parse_choice(EntryStatus, status_filter)
    except ValueError:
        return None


def visible_entries(
    entries: Iterable[Entry], status_filter: Union[EntryStatus, str, None] = ALL_STATUSES
) -> List[Entry]:
    """Entries matching the filter, most urgent priority first.

    The sort is stable, so entries sharing a priority keep collection order.
    """

    status = resolve_status_filter(status_filter)
    selected = [entry for entry in entries if status is None or entry.status is status]
    return sorted(selected, key=lambda entry: entry.priority.rank)


def priority_histogram(entries: Iterable[Entry]) -> Dict[EntryPriority, int]:
    counts = {priority: 0 for priority in PRIORITY_SEQUENCE}
    for entry in entries:
        counts[entry.priority] += 1
    return counts


def status_histogram(entries: Iterable[Entry]) -> Dict[EntryStatus, int]:
    counts = {status: 0 for status in STATUS_SEQUENCE}
    for entry in entries:
        counts[entry.status] += 1
    return counts


def overdue(
    entries: Iterable[Entry], date_field: str, as_of: Optional[date] = None
) -> List[OverdueEntry]:
    """Entries whose ``date_field`` lies strictly before ``as_of``.

    The result keeps the input order. ``as_of`` defaults to today.
    """

    if date_field not in DATE_FIELDS:
        raise ValueError(f"Unknown date field {date_field!r}")
    reference = as_of or date.today()
    late: List[OverdueEntry] = []
    for entry in entries:
        planned: date = getattr(entry, date_field)
        if planned < reference:
            late.append(OverdueEntry(entry.order_code, (reference - planned).days))
    return late


def overdue_overview(
    entries: Sequence[Entry], as_of: Optional[date] = None
) -> Dict[str, List[OverdueEntry]]:
    """Overdue lists for the treatment, return and delivery dashboards."""

    reference = as_of or date.today()
    return {field: overdue(entries, field, reference) for field in OVERDUE_CHARTS}


def priority_style(priority: EntryPriority) -> str:
    return _PRIORITY_STYLES[priority]


__all__ = [
    "ALL_STATUSES",
    "OVERDUE_CHARTS",
    "OverdueEntry",
    "resolve_status_filter",
    "visible_entries",
    "priority_histogram",
    "status_histogram",
    "overdue",
    "overdue_overview",
    "priority_style",
]
