from __future__ import annotations

import io
import json
from datetime import date

import pandas as pd
import pytest

from ppcp_tracker.domain import EntryStatus, EntryValidationError
from ppcp_tracker.interchange import SnapshotError, WorkbookError, export_rows
from ppcp_tracker.repository import RecordNotFoundError
from ppcp_tracker.services import INVALID_CREDENTIALS, AuthenticationError

from .conftest import base_fields


def test_create_update_delete_flow(service):
    first = service.create_entry(base_fields(order_code="OC1"))
    second = service.create_entry(base_fields(order_code="OC2", priority="Cobertura"))
    assert [entry.id for entry in service.list_entries()] == ["id-1", "id-2"]

    updated = service.update_entry(first.id, base_fields(order_code="OC1-b", status="Em produção"))
    assert updated.id == first.id
    assert service.get_entry(first.id).status is EntryStatus.IN_PRODUCTION
    assert [entry.id for entry in service.list_entries()] == ["id-1", "id-2"]

    service.delete_entry(second.id)
    assert [entry.order_code for entry in service.list_entries()] == ["OC1-b"]


def test_invalid_create_adds_nothing(service):
    with pytest.raises(EntryValidationError) as excinfo:
        service.create_entry(base_fields(has_control_document="Sim", control_document_number=""))

    assert "control_document_number" in excinfo.value.errors
    assert service.list_entries() == []


def test_invalid_update_keeps_original(service):
    entry = service.create_entry(base_fields())

    with pytest.raises(EntryValidationError):
        service.update_entry(entry.id, base_fields(priority="Alta"))

    assert service.list_entries() == [entry]


def test_unknown_ids_raise(service):
    with pytest.raises(RecordNotFoundError):
        service.update_entry("nope", base_fields())
    with pytest.raises(RecordNotFoundError):
        service.delete_entry("nope")


def test_projections_use_store_and_clock(service):
    service.create_entry(base_fields(order_code="A", planned_delivery_date="2024-01-18"))
    service.create_entry(base_fields(order_code="B", priority="Porca Flange"))

    assert [entry.order_code for entry in service.visible_entries()] == ["B", "A"]
    assert sum(service.priority_histogram().values()) == 2
    assert sum(service.status_histogram().values()) == 2
    late = service.overdue("planned_delivery_date")
    assert [(item.order_code, item.days_late) for item in late] == [("A", 2)]
    assert service.overdue("planned_delivery_date", as_of=date(2024, 1, 18)) == []

    charts = service.chart_data()
    assert set(charts.overdue) == set(service.overdue_overview())


def test_import_replaces_collection_with_valid_rows(service):
    service.create_entry(base_fields(order_code="OLD"))
    other = service.create_entry(base_fields(order_code="NEW"))
    content = service.export_workbook()
    service.delete_entry(other.id)

    result = service.import_workbook(content)

    assert [entry.order_code for entry in service.list_entries()] == ["OLD", "NEW"]
    assert result.rejected == []


def test_import_without_any_valid_row_keeps_collection(service):
    entry = service.create_entry(base_fields())
    rows = export_rows([entry])
    rows[0]["dataProd"] = "never"
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False, engine="openpyxl")

    with pytest.raises(WorkbookError):
        service.import_workbook(buffer.getvalue())
    assert service.list_entries() == [entry]


def test_backup_then_restore_is_exact(service):
    service.create_entry(base_fields(order_code="A"))
    service.create_entry(base_fields(order_code="B", has_control_document="Sim", control_document_number="CD"))
    before = service.list_entries()

    filename, payload = service.backup()
    service.store.replace([])
    restored = service.restore(payload)

    assert filename == "ppcp_backup_20-01-2024_14-30.json"
    assert restored == 2
    assert service.list_entries() == before


def test_failed_restore_leaves_collection_untouched(service):
    entry = service.create_entry(base_fields())
    payload = json.dumps({"entries": [{"id": "x"}]})

    with pytest.raises(SnapshotError):
        service.restore(payload)
    with pytest.raises(SnapshotError):
        service.restore("garbage")

    assert service.list_entries() == [entry]


def test_login_checks_both_credentials_with_generic_message(service):
    with pytest.raises(AuthenticationError) as wrong_user:
        service.login("someone", "s3cret")
    with pytest.raises(AuthenticationError) as wrong_password:
        service.login("planner", "guess")

    assert str(wrong_user.value) == str(wrong_password.value) == INVALID_CREDENTIALS

    service.login("planner", "s3cret")

