"""Row source factory for register exports."""
from __future__ import annotations

import logging

from ..exceptions import RegisterParseError
from .base import RowSource
from .cells import Cell, CellKind, parse_date, parse_number
from .delimited import DelimitedSource
from .xlsx import XlsxSource

LOGGER = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"


def create_source(data: bytes) -> RowSource:
    """Instantiate the correct source implementation based on the file content."""

    if not data:
        raise RegisterParseError("File is empty")
    if data.startswith(ZIP_MAGIC):
        LOGGER.debug("Selected XlsxSource")
        return XlsxSource(data)
    LOGGER.debug("Selected DelimitedSource")
    return DelimitedSource(data)


def read_rows(data: bytes) -> list[list[Cell]]:
    return create_source(data).read_rows()


__all__ = [
    "create_source",
    "read_rows",
    "RowSource",
    "XlsxSource",
    "DelimitedSource",
    "Cell",
    "CellKind",
    "parse_date",
    "parse_number",
]
