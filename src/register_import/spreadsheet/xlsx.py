"""Excel workbook row source."""
from __future__ import annotations

from io import BytesIO
import logging
from zipfile import BadZipFile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..exceptions import RegisterParseError
from .base import RowSource
from .cells import Cell

LOGGER = logging.getLogger(__name__)


class XlsxSource(RowSource):
    """Reads the first worksheet of an ``.xlsx`` workbook."""

    def read_rows(self) -> list[list[Cell]]:
        try:
            workbook = openpyxl.load_workbook(BytesIO(self.data), data_only=True, read_only=True)
        except (BadZipFile, InvalidFileException, KeyError, OSError) as exc:
            raise RegisterParseError(f"Could not open workbook: {exc}") from exc

        try:
            if not workbook.worksheets:
                raise RegisterParseError("Workbook contains no sheets")
            sheet = workbook.worksheets[0]
            LOGGER.debug("Reading sheet %r", sheet.title)
            return [[Cell.of(value) for value in row] for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()


__all__ = ["XlsxSource"]
