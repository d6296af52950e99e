"""FastAPI application exposing register upload, preview and review endpoints."""
from __future__ import annotations

from dataclasses import asdict
import logging
from typing import Any, Callable

from fastapi import Depends, FastAPI, File, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .db import create_db_engine, ensure_schema
from .exceptions import ConcurrentImportError, RegisterImportError
from .importer import confirm_import, import_file, preview_import
from .logging_utils import configure_logging
from .review import list_email_conflicts

configure_logging()

LOGGER = logging.getLogger(__name__)

settings = Settings.load()
engine = create_db_engine(settings.database_url)

ALLOWED_EXTENSIONS = (".xlsx", ".csv")

app = FastAPI(title="Shareholder Register Import")


def get_engine() -> Engine:
    return engine


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _handle_upload(
    upload: UploadFile | None,
    action: str,
    handler: Callable[[bytes, str], Any],
) -> JSONResponse:
    """Validate an uploaded register and run ``handler`` on its bytes."""

    if upload is None or not upload.filename:
        return _error(status.HTTP_400_BAD_REQUEST, "No file provided. Send a 'file' field in form-data.")
    if not upload.filename.lower().endswith(ALLOWED_EXTENSIONS):
        return _error(status.HTTP_400_BAD_REQUEST, "Only .xlsx and .csv files are supported")

    data = await upload.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        return _error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"File exceeds the {settings.max_upload_bytes} byte upload limit",
        )

    try:
        # Parsing and the database transaction are blocking; keep them off the event loop.
        payload = await run_in_threadpool(handler, data, upload.filename)
    except ConcurrentImportError as exc:
        LOGGER.warning("%s of %s rejected: %s", action, upload.filename, exc)
        return _error(status.HTTP_409_CONFLICT, str(exc))
    except RegisterImportError as exc:
        LOGGER.warning("%s of %s failed: %s", action, upload.filename, exc)
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, f"{action} failed: {exc}")
    except SQLAlchemyError as exc:
        LOGGER.exception("%s of %s failed in the database", action, upload.filename)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"{action} failed: {exc}")
    return JSONResponse(content=payload)


def _jsonable(value: Any) -> Any:
    return jsonable_encoder(asdict(value))


@app.on_event("startup")
async def startup_event() -> None:
    LOGGER.info("Starting FastAPI application")
    ensure_schema(engine)


@app.post("/api/import/preview")
async def preview(file: UploadFile | None = File(None), db: Engine = Depends(get_engine)) -> JSONResponse:
    def run(data: bytes, filename: str) -> dict[str, Any]:
        result = preview_import(db, data, filename)
        return {"diff": _jsonable(result.diff), "existing_company_id": result.existing_company_id}

    return await _handle_upload(file, "Preview", run)


@app.post("/api/import")
async def import_register(file: UploadFile | None = File(None), db: Engine = Depends(get_engine)) -> JSONResponse:
    def run(data: bytes, filename: str) -> dict[str, Any]:
        return _jsonable(import_file(db, data, filename, extra_suffixes=settings.extra_corporate_suffixes))

    return await _handle_upload(file, "Import", run)


@app.post("/api/import/confirm")
async def confirm(file: UploadFile | None = File(None), db: Engine = Depends(get_engine)) -> JSONResponse:
    def run(data: bytes, filename: str) -> dict[str, Any]:
        return _jsonable(confirm_import(db, data, filename, extra_suffixes=settings.extra_corporate_suffixes))

    return await _handle_upload(file, "Import", run)


@app.get("/api/import/conflicts")
def email_conflicts(db: Engine = Depends(get_engine)) -> dict[str, Any]:
    with db.connect() as conn:
        conflicts = [asdict(conflict) for conflict in list_email_conflicts(conn)]
    return {"total_conflicts": len(conflicts), "conflicts": conflicts}


__all__ = ["app", "get_engine"]
