"""Delimited text (CSV/TSV) row source."""
from __future__ import annotations

import csv
from io import StringIO
import logging

from .base import RowSource
from .cells import Cell

LOGGER = logging.getLogger(__name__)

DELIMITERS = (";", ",", "\t")
SAMPLE_LINES = 200


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        LOGGER.debug("File is not UTF-8, falling back to cp1252")
        return data.decode("cp1252", errors="replace")


def guess_delimiter(text: str) -> str:
    """Pick the delimiter used on the most lines of the sample.

    Register exports open with free-text lines (company name, totals) that
    carry no delimiter at all, which defeats :class:`csv.Sniffer`.
    """

    lines = [line for line in text.splitlines()[:SAMPLE_LINES] if line.strip()]
    best, best_score = ",", (0, 0)
    for delimiter in DELIMITERS:
        score = (sum(1 for line in lines if delimiter in line), sum(line.count(delimiter) for line in lines))
        if score > best_score:
            best, best_score = delimiter, score
    return best


class DelimitedSource(RowSource):
    """Reads a semicolon, comma or tab separated export."""

    def read_rows(self) -> list[list[Cell]]:
        text = _decode(self.data)
        delimiter = guess_delimiter(text)
        LOGGER.debug("Reading delimited text with %r", delimiter)
        return [[Cell.of(value) for value in row] for row in csv.reader(StringIO(text), delimiter=delimiter)]


__all__ = ["DelimitedSource", "guess_delimiter"]
