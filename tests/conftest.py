# tests/conftest.py

from __future__ import annotations

import itertools
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from ppcp_tracker.config import Settings
from ppcp_tracker.repository import EntryStore
from ppcp_tracker.services import Credentials, PPCPService

FIXED_NOW = datetime(2024, 1, 20, 14, 30)


def base_fields(**overrides: Any) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "order_code": "OC1",
        "part_number": "PN-100",
        "external_code": "E-1",
        "planned_production_date": "2024-01-10",
        "planned_treatment_date": "2024-01-15",
        "planned_treatment_return_date": "2024-01-20",
        "planned_delivery_date": "2024-01-25",
        "has_control_document": "Não",
        "control_document_number": "",
        "has_follow_sheet": "Sim",
        "status": "Nesting",
        "priority": "Normal",
    }
    fields.update(overrides)
    return fields


@pytest.fixture()
def make_fields() -> Callable[..., Dict[str, Any]]:
    return base_fields


@pytest.fixture()
def id_factory() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture()
def service(id_factory: Callable[[], str]) -> PPCPService:
    """Service over an in-memory store with deterministic ids and clock."""
    return PPCPService(
        EntryStore(),
        credentials=Credentials("planner", "s3cret"),
        id_factory=id_factory,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "ppcp.sqlite3", username="planner", password="s3cret")
