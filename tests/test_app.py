# tests/test_app.py
from __future__ import annotations

import asyncio
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from register_import import app as app_module
from register_import.app import app, get_engine
from register_import.config import Settings
from register_import.exceptions import ConcurrentImportError
from register_import.repository import RegisterRepository

from conftest import register_xlsx

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture()
def client(engine: Engine) -> Generator[TestClient, None, None]:
    """Test client whose routes use the per-test database."""
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(data: bytes, filename: str = "alpha.xlsx") -> dict:
    return {"file": (filename, data, XLSX)}


def test_missing_file_is_rejected(client: TestClient) -> None:
    """A request without a file field gets 400."""
    response = client.post("/api/import")

    assert response.status_code == 400
    assert response.json() == {"error": "No file provided. Send a 'file' field in form-data."}


def test_unsupported_extension_is_rejected(client: TestClient, alpha_first: bytes) -> None:
    """Only .xlsx and .csv uploads are accepted."""
    response = client.post("/api/import", files=_upload(alpha_first, "alpha.pdf"))

    assert response.status_code == 400
    assert response.json()["error"] == "Only .xlsx and .csv files are supported"


def test_oversized_upload_is_rejected(
    client: TestClient, alpha_first: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Files above the configured limit get 413 without being parsed."""
    monkeypatch.setattr(app_module, "settings", Settings(database_url="sqlite://", max_upload_bytes=64))

    response = client.post("/api/import", files=_upload(alpha_first))

    assert response.status_code == 413


def test_unparseable_register_is_unprocessable(client: TestClient) -> None:
    """Parse errors surface as 422 with the reason."""
    response = client.post("/api/import", files={"file": ("empty.csv", b"nothing here\n", "text/csv")})

    assert response.status_code == 422
    assert response.json()["error"].startswith("Import failed: ")


def test_import_returns_summary(client: TestClient, alpha_first: bytes) -> None:
    """A successful import reports the company and counts."""
    response = client.post("/api/import", files=_upload(alpha_first))

    assert response.status_code == 200
    body = response.json()
    assert body["company_name"] == "Alpha AS"
    assert body["company_org_number"] == "910000001"
    assert body["shareholders_imported"] == 3
    assert body["holdings_created"] == 3
    assert body["conflicts"] == []


def test_preview_does_not_write(client: TestClient, alpha_first: bytes) -> None:
    """Preview returns the diff, and a later preview still sees a first import."""
    first = client.post("/api/import/preview", files=_upload(alpha_first))
    second = client.post("/api/import/preview", files=_upload(alpha_first))

    assert first.status_code == 200
    assert first.json()["existing_company_id"] is None
    assert second.json()["diff"]["is_first_import"] is True
    assert second.json()["diff"]["summary"]["new_shareholders"] == 3


def test_confirm_records_ledger_rows(client: TestClient, alpha_first: bytes) -> None:
    """Confirm imports the file and reports the ledger rows it wrote."""
    response = client.post("/api/import/confirm", files=_upload(alpha_first))

    assert response.status_code == 200
    body = response.json()
    assert body["transactions_created"] == 3
    assert body["snapshot_id"] is None
    assert body["result"]["company_name"] == "Alpha AS"


def test_concurrent_import_is_a_conflict(
    client: TestClient, alpha_first: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Losing a race with another import of the same company gets 409."""

    def collide(*args: object, **kwargs: object) -> None:
        raise ConcurrentImportError("910000001", 1)

    monkeypatch.setattr(app_module, "import_file", collide)

    response = client.post("/api/import", files=_upload(alpha_first))

    assert response.status_code == 409


def test_database_failure_returns_json_error(
    client: TestClient, alpha_first: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A persistence error is reported as a 500 with a JSON error message."""

    def fail(*args: object, **kwargs: object) -> None:
        raise OperationalError("UPDATE import_batches", {}, Exception("disk I/O error"))

    monkeypatch.setattr(RegisterRepository, "set_batch_conflicts", fail)

    response = client.post("/api/import", files=_upload(alpha_first))

    assert response.status_code == 500
    assert response.json()["error"].startswith("Import failed: ")
    assert "disk I/O error" in response.json()["error"]


def test_import_runs_off_the_event_loop(
    client: TestClient, alpha_first: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Blocking import work runs in a worker thread, not on the event loop."""
    seen: dict[str, bool] = {}
    real_import = app_module.import_file

    def spy(*args: object, **kwargs: object) -> object:
        try:
            asyncio.get_running_loop()
            seen["on_loop"] = True
        except RuntimeError:
            seen["on_loop"] = False
        return real_import(*args, **kwargs)

    monkeypatch.setattr(app_module, "import_file", spy)

    response = client.post("/api/import", files=_upload(alpha_first))

    assert response.status_code == 200
    assert seen == {"on_loop": False}


def test_email_conflicts_are_listed(client: TestClient, alpha_first: bytes) -> None:
    """A shareholder seen with two emails shows up for review."""
    client.post("/api/import", files=_upload(alpha_first))
    moved = register_xlsx("Alpha AS", "910000001", [("Bob Smith", "1980-05-01", 100, 100.0, "bob@new.example")])

    imported = client.post("/api/import", files=_upload(moved, "alpha-2.xlsx"))
    response = client.get("/api/import/conflicts")

    assert [conflict["kind"] for conflict in imported.json()["conflicts"]] == ["email_mismatch"]
    body = response.json()
    assert body["total_conflicts"] == 1
    assert body["conflicts"][0]["canonical_name"] == "Bob Smith"
    assert body["conflicts"][0]["emails"] == ["bob@new.example"]
