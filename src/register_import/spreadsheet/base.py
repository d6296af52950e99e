"""Base classes for reading spreadsheet rows."""
from __future__ import annotations

from abc import ABC, abstractmethod

from .cells import Cell


class RowSource(ABC):
    """Abstract source that turns raw file bytes into rows of cells."""

    def __init__(self, data: bytes) -> None:
        self.data = data

    @abstractmethod
    def read_rows(self) -> list[list[Cell]]:
        """Return every row of the first sheet, top to bottom."""


__all__ = ["RowSource"]
