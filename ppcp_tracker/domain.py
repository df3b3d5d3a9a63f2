"""Core data structures for the production planning (PPCP) tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type, TypeVar
from uuid import uuid4


class EntryStatus(str, Enum):
    """Workflow stages an order moves through, in display order."""

    NESTING = "Nesting"
    AWAITING_RAW_MATERIAL = "Aguardando chegar materia prima"
    IN_PRODUCTION = "Em produção"
    TREATMENT_INSPECTION = "Inspeção para tratador"
    IN_TREATMENT = "Em tratamento"
    FINAL_INSPECTION = "Em inspeção final"
    SHIPPING = "Em expedição"
    COMPLETED = "Concluído"


class EntryPriority(str, Enum):
    """Priority levels, most urgent first."""

    MAXIMUM_URGENCY = "Urgencia Máxima"
    FLANGE_NUT = "Porca Flange"
    COVERAGE = "Cobertura"
    NORMAL = "Normal"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


class YesNo(str, Enum):
    YES = "Sim"
    NO = "Não"


STATUS_SEQUENCE: Tuple[EntryStatus, ...] = tuple(EntryStatus)
PRIORITY_SEQUENCE: Tuple[EntryPriority, ...] = tuple(EntryPriority)

_PRIORITY_RANK: Dict[EntryPriority, int] = {
    EntryPriority.MAXIMUM_URGENCY: 0,
    EntryPriority.FLANGE_NUT: 1,
    EntryPriority.COVERAGE: 2,
    EntryPriority.NORMAL: 3,
}

TEXT_FIELDS: Tuple[str, ...] = ("order_code", "part_number", "external_code")
DATE_FIELDS: Tuple[str, ...] = (
    "planned_production_date",
    "planned_treatment_date",
    "planned_treatment_return_date",
    "planned_delivery_date",
)


def rank(priority: EntryPriority) -> int:
    """Return the display rank of ``priority`` (0 is the most urgent)."""

    return _PRIORITY_RANK[priority]


@dataclass(slots=True)
class Entry:
    """One production order tracked through the workflow."""

    id: str
    order_code: str
    part_number: str
    external_code: str
    planned_production_date: date
    planned_treatment_date: date
    planned_treatment_return_date: date
    planned_delivery_date: date
    has_control_document: YesNo = YesNo.NO
    control_document_number: str = ""
    has_follow_sheet: YesNo = YesNo.NO
    status: EntryStatus = EntryStatus.NESTING
    priority: EntryPriority = EntryPriority.NORMAL


class EntryValidationError(ValueError):
    """Raised when a field set cannot form a valid entry.

    ``errors`` maps each offending field name to a human readable message.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: Dict[str, str] = dict(errors)
        detail = "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        super().__init__(f"Invalid entry ({detail})")


E = TypeVar("E", bound=Enum)


def parse_choice(enum_cls: Type[E], value: Any, default: Optional[E] = None) -> E:
    """Resolve ``value`` to a member of ``enum_cls`` by label or member name.

    Blank values resolve to ``default`` when one is given.
    """

    if isinstance(value, enum_cls):
        return value
    token = "" if value is None else str(value).strip()
    if not token:
        if default is not None:
            return default
        raise ValueError("is required")
    lowered = token.lower()
    for member in enum_cls:
        if lowered in {str(member.value).lower(), member.name.lower()}:
            return member
    allowed = ", ".join(str(member.value) for member in enum_cls)
    raise ValueError(f"{token!r} is not one of: {allowed}")


def parse_canonical_date(value: Any) -> date:
    """Accept ``date``/``datetime`` objects or ISO ``YYYY-MM-DD`` text."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValueError("is required")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"{text!r} is not a valid date (expected YYYY-MM-DD)") from None


def new_entry_id() -> str:
    return uuid4().hex


def build_entry(entry_id: str, fields: Mapping[str, Any]) -> Entry:
    """Validate the complete field set and build an entry carrying ``entry_id``.

    All rules are checked before anything is built so the caller either gets a
    fully valid entry or an :class:`EntryValidationError` listing every problem.
    """

    errors: Dict[str, str] = {}
    values: Dict[str, Any] = {}

    if not entry_id or not str(entry_id).strip():
        errors["id"] = "is required"

    for name in TEXT_FIELDS:
        text = "" if fields.get(name) is None else str(fields[name]).strip()
        if not text:
            errors[name] = "is required"
        values[name] = text

    for name in DATE_FIELDS:
        try:
            values[name] = parse_canonical_date(fields.get(name))
        except ValueError as exc:
            errors[name] = str(exc)

    choices: Tuple[Tuple[str, Type[Enum], Enum], ...] = (
        ("has_control_document", YesNo, YesNo.NO),
        ("has_follow_sheet", YesNo, YesNo.NO),
        ("status", EntryStatus, EntryStatus.NESTING),
        ("priority", EntryPriority, EntryPriority.NORMAL),
    )
    for name, enum_cls, default in choices:
        try:
            values[name] = parse_choice(enum_cls, fields.get(name), default)
        except ValueError as exc:
            errors[name] = str(exc)

    raw_number = fields.get("control_document_number")
    values["control_document_number"] = "" if raw_number is None else str(raw_number).strip()
    if (
        values.get("has_control_document") is YesNo.YES
        and not values["control_document_number"]
    ):
        errors["control_document_number"] = "is required when a control document exists"

    if errors:
        raise EntryValidationError(errors)
    return Entry(id=str(entry_id).strip(), **values)


def create_entry(
    fields: Mapping[str, Any], *, id_factory: Callable[[], str] = new_entry_id
) -> Entry:
    """Build a new entry with a freshly minted id."""

    return build_entry(id_factory(), fields)


def update_entry(existing: Entry, fields: Mapping[str, Any]) -> Entry:
    """Replace every field of ``existing`` except its id."""

    return build_entry(existing.id, fields)


def entry_fields(entry: Entry) -> Dict[str, Any]:
    """Return the editable fields of ``entry`` (everything but ``id``)."""

    return {
        name: getattr(entry, name)
        for name in Entry.__dataclass_fields__
        if name != "id"
    }


__all__ = [
    "EntryStatus",
    "EntryPriority",
    "YesNo",
    "STATUS_SEQUENCE",
    "PRIORITY_SEQUENCE",
    "TEXT_FIELDS",
    "DATE_FIELDS",
    "Entry",
    "EntryValidationError",
    "rank",
    "parse_choice",
    "parse_canonical_date",
    "new_entry_id",
    "build_entry",
    "create_entry",
    "update_entry",
    "entry_fields",
]
