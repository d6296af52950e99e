"""Cell values read from a spreadsheet and their coercions."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
import math
import re
from typing import Optional, Union

from dateutil import parser


ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CURRENCY_PREFIX = re.compile(r"^[A-Z]{3}\s+")
DIGIT_GROUP_SPACE = re.compile(r"(?<=\d)\s+(?=\d)")
LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

CellValue = Union[str, int, float, date, None]


class CellKind(str, Enum):
    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


def _whole(value: float) -> int | float:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def parse_number(value: str | None) -> int | float | None:
    """Parse a human readable amount such as ``NOK 1 250 000`` or ``53.2%``.

    Returns ``None`` rather than raising when nothing numeric is found.
    """

    if not value:
        return None
    cleaned = value.strip()
    cleaned = CURRENCY_PREFIX.sub("", cleaned)
    if cleaned.endswith("%"):
        cleaned = cleaned[:-1]
    cleaned = cleaned.replace(",", "")
    cleaned = DIGIT_GROUP_SPACE.sub("", cleaned).strip()
    match = LEADING_NUMBER.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    if math.isnan(number) or math.isinf(number):
        return None
    return _whole(number)


def parse_date(value: str | None) -> Optional[str]:
    """Return an ISO ``YYYY-MM-DD`` string for a date string, or ``None``."""

    if not value:
        return None
    text = value.strip()
    if ISO_DATE.match(text):
        return text
    try:
        return parser.parse(text, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        return None


@dataclass(frozen=True, slots=True)
class Cell:
    """A tagged spreadsheet cell: empty, text, number or date."""

    kind: CellKind
    value: CellValue = None

    @classmethod
    def of(cls, raw: object) -> "Cell":
        if raw is None:
            return EMPTY
        if isinstance(raw, bool):
            return cls(CellKind.TEXT, "yes" if raw else "no")
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and (math.isnan(raw) or math.isinf(raw)):
                return EMPTY
            return cls(CellKind.NUMBER, _whole(raw))
        if isinstance(raw, datetime):
            return cls(CellKind.DATE, raw.date())
        if isinstance(raw, date):
            return cls(CellKind.DATE, raw)
        if isinstance(raw, time):
            return cls(CellKind.TEXT, raw.isoformat())
        text = str(raw)
        if not text.strip():
            return EMPTY
        return cls(CellKind.TEXT, text)

    @property
    def is_empty(self) -> bool:
        return self.kind is CellKind.EMPTY

    def text(self) -> Optional[str]:
        """Return the cell as stripped text; numbers lose a trailing ``.0``."""

        if self.kind is CellKind.TEXT:
            return str(self.value).strip()
        if self.kind is CellKind.NUMBER:
            return str(self.value)
        if self.kind is CellKind.DATE:
            return self.value.isoformat()  # type: ignore[union-attr]
        return None

    def number(self) -> int | float | None:
        if self.kind is CellKind.NUMBER:
            return self.value  # type: ignore[return-value]
        if self.kind is CellKind.TEXT:
            return parse_number(str(self.value))
        return None

    def iso_date(self) -> Optional[str]:
        if self.kind is CellKind.DATE:
            return self.value.isoformat()  # type: ignore[union-attr]
        if self.kind is CellKind.TEXT:
            return parse_date(str(self.value))
        return None

    def flag(self) -> bool:
        """Interpret a yes/no column (English or Norwegian)."""

        text = self.text()
        return text is not None and text.lower() in {"yes", "ja"}


EMPTY = Cell(CellKind.EMPTY)


def cell_at(row: list[Cell], index: int | None) -> Cell:
    """Return the cell at ``index`` or an empty cell for ragged rows and missing columns."""

    if index is None or index < 0 or index >= len(row):
        return EMPTY
    return row[index]


__all__ = ["Cell", "CellKind", "EMPTY", "cell_at", "parse_number", "parse_date"]
