from __future__ import annotations

import io
import json
from datetime import date, datetime

import pandas as pd
import pytest

from ppcp_tracker.domain import EntryPriority, EntryStatus, create_entry
from ppcp_tracker.interchange import (
    COLUMN_NAMES,
    DateParseError,
    SnapshotError,
    WorkbookError,
    dump_snapshot,
    entry_to_record,
    export_rows,
    export_workbook,
    format_display_date,
    import_rows,
    import_workbook,
    load_snapshot,
    parse_display_date,
    read_workbook,
    snapshot_filename,
)


@pytest.fixture()
def entries(make_fields):
    return [
        create_entry(
            make_fields(order_code="OC1", priority="Normal", status="Nesting"),
            id_factory=lambda: "id-1",
        ),
        create_entry(
            make_fields(
                order_code="OC2",
                priority="Urgencia Máxima",
                status="Em expedição",
                has_control_document="Sim",
                control_document_number="CD-7",
                planned_delivery_date="2024-12-31",
            ),
            id_factory=lambda: "id-2",
        ),
    ]


def workbook_bytes(rows, columns=COLUMN_NAMES) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=list(columns)).to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


def test_format_display_date():
    assert format_display_date(date(2024, 1, 10)) == "10/01/2024"
    assert format_display_date("2024-01-10") == "10/01/2024"
    assert format_display_date("soon") == "soon"
    assert format_display_date(None) == ""


def test_parse_display_date_accepts_display_native_and_iso_values():
    assert parse_display_date("10/01/2024") == date(2024, 1, 10)
    assert parse_display_date(datetime(2024, 1, 10, 0, 0)) == date(2024, 1, 10)
    assert parse_display_date(pd.Timestamp("2024-01-10")) == date(2024, 1, 10)
    assert parse_display_date("2024-01-10") == date(2024, 1, 10)
    with pytest.raises(DateParseError):
        parse_display_date("31/02/2024")
    with pytest.raises(DateParseError):
        parse_display_date(None)


def test_export_rows_use_display_dates_and_labels(entries):
    rows = export_rows(entries)

    assert list(rows[0]) == list(COLUMN_NAMES)
    assert rows[0]["dataProd"] == "10/01/2024"
    assert rows[1]["dataEntrega"] == "31/12/2024"
    assert rows[1]["prioridade"] == "Urgencia Máxima"
    assert rows[1]["possuiCD"] == "Sim"
    assert rows[1]["numeroCD"] == "CD-7"


def test_workbook_round_trip_preserves_fields(entries):
    result = import_workbook(export_workbook(entries))

    assert result.rejected == []
    assert result.entries == entries
    assert result.entries[0].planned_production_date == date(2024, 1, 10)


def test_workbook_round_trip_keeps_na_like_codes(make_fields):
    entry = create_entry(
        make_fields(
            order_code="NULL",
            part_number="NA",
            external_code="None",
            has_control_document="Sim",
            control_document_number="N/A",
        ),
        id_factory=lambda: "id-na",
    )

    result = import_workbook(export_workbook([entry]))

    assert result.rejected == []
    assert result.entries == [entry]


def test_read_workbook_uses_first_sheet_with_header(entries):
    rows = read_workbook(export_workbook(entries))

    assert len(rows) == 2
    assert rows[0]["oc"] == "OC1"
    assert rows[0]["dataProd"] == "10/01/2024"


def test_workbook_tolerates_reordered_columns(entries):
    reordered = list(reversed(COLUMN_NAMES))
    content = workbook_bytes(export_rows(entries), columns=reordered)

    result = import_workbook(content)

    assert [entry.order_code for entry in result.entries] == ["OC1", "OC2"]


def test_workbook_with_renamed_column_is_refused(entries):
    rows = export_rows(entries)
    for row in rows:
        row["ordem"] = row.pop("oc")
    columns = ["ordem" if name == "oc" else name for name in COLUMN_NAMES]

    with pytest.raises(WorkbookError, match="oc"):
        import_workbook(workbook_bytes(rows, columns=columns))


def test_unreadable_workbook_is_refused():
    with pytest.raises(WorkbookError):
        read_workbook(b"not a spreadsheet")


def test_import_mints_missing_ids_and_reads_numeric_codes(entries):
    rows = export_rows(entries[:1])
    rows[0]["id"] = None
    rows[0]["oc"] = 4512
    content = workbook_bytes(rows)

    result = import_workbook(content, id_factory=lambda: "fresh")

    assert result.entries[0].id == "fresh"
    assert result.entries[0].order_code == "4512"


def test_import_rejects_invalid_rows_and_keeps_valid_ones(entries):
    rows = export_rows(entries)
    bad = dict(rows[0], id="id-3", dataTrat="2024/13/40", status="Parado")
    duplicate = dict(rows[1])
    result = import_rows([rows[0], bad, rows[1], duplicate])

    assert [entry.id for entry in result.entries] == ["id-1", "id-2"]
    assert [rejection.row_number for rejection in result.rejected] == [3, 5]
    assert set(result.rejected[0].errors) == {"planned_treatment_date", "status"}
    assert "duplicate" in result.rejected[1].errors["id"]


def test_snapshot_round_trip_is_exact(entries):
    snapshot = load_snapshot(dump_snapshot(entries, generated_at=datetime(2024, 1, 20, 14, 30)))

    assert snapshot.entries == entries
    assert snapshot.timestamp == "2024-01-20T14:30:00"
    assert snapshot.version == 1


def test_snapshot_with_byte_order_mark_is_accepted(entries):
    payload = b"\xef\xbb\xbf" + dump_snapshot(entries).encode("utf-8")

    assert load_snapshot(payload).entries == entries


def test_snapshot_keeps_canonical_dates(entries):
    document = json.loads(dump_snapshot(entries))

    assert document["entries"][0]["dataProd"] == "2024-01-10"
    assert set(document) == {"version", "timestamp", "entries"}


def test_snapshot_without_version_is_accepted(entries):
    legacy = json.dumps(
        {
            "entries": [dict(entry_to_record(entry), extra="ignored") for entry in entries],
            "timestamp": "2024-01-01T00:00:00.000Z",
        }
    )

    snapshot = load_snapshot(legacy.encode("utf-8"))

    assert [entry.id for entry in snapshot.entries] == ["id-1", "id-2"]
    assert snapshot.entries[1].priority is EntryPriority.MAXIMUM_URGENCY
    assert snapshot.entries[1].status is EntryStatus.SHIPPING


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[]",
        json.dumps({"timestamp": "2024-01-01"}),
        json.dumps({"entries": {"a": 1}}),
        json.dumps({"version": 99, "entries": []}),
    ],
)
def test_malformed_snapshots_are_refused(payload):
    with pytest.raises(SnapshotError):
        load_snapshot(payload)


def test_snapshot_with_one_invalid_entry_is_refused_entirely(entries):
    records = [entry_to_record(entry) for entry in entries]
    records[1]["prioridade"] = "Alta"

    with pytest.raises(SnapshotError, match="#2"):
        load_snapshot(json.dumps({"entries": records}))


def test_snapshot_filename_encodes_generation_time():
    assert snapshot_filename(datetime(2024, 1, 20, 14, 5)) == "ppcp_backup_20-01-2024_14-05.json"
