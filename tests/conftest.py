# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterable, Sequence
from io import BytesIO
from typing import Any

import openpyxl
import pytest
from sqlalchemy.engine import Engine

# The FastAPI module builds its engine at import time.
os.environ.setdefault("REGISTER_IMPORT_DATABASE_URL", "sqlite+pysqlite:///:memory:")

from register_import.db import create_db_engine, ensure_schema  # noqa: E402

SHAREHOLDER_HEADER = ("Name", "Org no/Date of birth", "Number of shares", "Ownership", "E-mail")


def xlsx_bytes(rows: Iterable[Sequence[Any]]) -> bytes:
    """Write ``rows`` to the first sheet of a new workbook and return the file bytes."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def register_rows(
    company: str,
    org_number: str,
    shareholders: Sequence[Sequence[Any]],
    *,
    share_class: str | None = "Common shares",
    header: Sequence[str] = SHAREHOLDER_HEADER,
) -> list[list[Any]]:
    """Rows of a single-class register export.

    Each shareholder is ``(name, org number or birth date, shares, ownership %, email)``;
    shorter tuples leave the remaining columns empty.
    """
    total = sum(row[2] for row in shareholders if len(row) > 2 and row[2])
    rows: list[list[Any]] = [
        [f"{company} ({org_number})"],
        ["Number of shares", total],
        ["Share capital", total * 10],
        ["Nominal value", 10],
        [],
    ]
    if share_class:
        rows += [[share_class], ["Number of shares", total], ["Nominal value", 10], []]
    rows.append(list(header))
    rows += [list(row) for row in shareholders]
    rows.append(["Total", None, total])
    return rows


def register_xlsx(company: str, org_number: str, shareholders: Sequence[Sequence[Any]], **kwargs: Any) -> bytes:
    return xlsx_bytes(register_rows(company, org_number, shareholders, **kwargs))


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database with the schema created."""
    db_engine = create_db_engine("sqlite+pysqlite:///:memory:")
    ensure_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def alpha_first() -> bytes:
    """First export of Alpha AS: three shareholders in one class."""
    return register_xlsx(
        "Alpha AS",
        "910000001",
        [
            ("Bob Smith", "1980-05-01", 100, 33.33, "bob@example.com"),
            ("Nordic Holding AS", "910111222", 150, 50.0),
            ("Carol Jones", "1975-01-31", 50, 16.67),
        ],
    )
