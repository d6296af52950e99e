"""Layout-independent parser for shareholder register exports.

Register exports come in at least two shapes: a single share class with the
shareholder table near the top, and multiple share classes (A/B/Preference)
whose detail blocks push the table further down. Nothing here relies on fixed
row or column positions. The parser looks for the ``NAME (ORGNUMBER)`` company
line, labelled company and share class fields below it, and a shareholder
table header recognised through the alias tables in :mod:`.aliases`.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Optional

from .aliases import (
    CLASS_SUB_COLUMNS,
    COLUMN_ALIASES,
    normalize_header,
    resolve_column,
    resolve_company_field,
    resolve_share_class,
)
from .exceptions import RegisterParseError
from .models import ClassHolding, ParsedCompany, ParsedShareClass, ParsedShareholder
from .spreadsheet import read_rows
from .spreadsheet.cells import ISO_DATE, Cell, CellKind, cell_at

LOGGER = logging.getLogger(__name__)

Rows = list[list[Cell]]

COMPANY_LINE = re.compile(r"^(.+?)\s*\(([A-Z]{0,2}\s*\d[\d\s]*\d)\)\s*$")
COMPANY_FIELD_WINDOW = 8
CLASS_DETAIL_WINDOW = 4
REMARK_WINDOW = 4

FOOTER_EXACT = frozenset({"total", "totalt", "sum", "summa", "i alt"})
FOOTER_PREFIXES = ("exported", "eksportert", "http://", "https://", "www.")


@dataclass(frozen=True, slots=True)
class ClassColumn:
    """Where one share class lives in the shareholder table header."""

    class_name: str
    shares_col: int
    share_number_col: Optional[int] = None
    cost_price_col: Optional[int] = None
    entry_date_col: Optional[int] = None


def parse_file(data: bytes) -> ParsedCompany:
    """Parse raw ``.xlsx`` or delimited-text bytes into a :class:`ParsedCompany`."""

    return parse_register(read_rows(data))


def parse_register(rows: Rows) -> ParsedCompany:
    """Parse the rows of one register sheet."""

    header_index = find_header_row(rows)
    if header_index is None:
        raise RegisterParseError(_missing_header_message(rows))

    anchor_index, name, org_number = find_company_line(rows)
    LOGGER.debug("Company line at row %s, header row at %d", anchor_index, header_index)

    figures = _parse_company_fields(rows, anchor_index, header_index)
    top = anchor_index + 1 if anchor_index is not None else 0
    share_classes = parse_share_classes(rows, top, header_index)

    remarks = parse_remarks(rows, top, header_index)
    if remarks and share_classes:
        _attach_remarks(share_classes, remarks)

    header = rows[header_index]
    class_columns = detect_class_columns(header, [sc.name for sc in share_classes])
    if not share_classes:
        # Class columns found without a class block at the top still need a class to hold them.
        share_classes = [ParsedShareClass(name=cc.class_name) for cc in _unique_classes(class_columns)]

    shareholders = parse_shareholders(rows, header_index, class_columns)
    if not shareholders:
        raise RegisterParseError(
            f"No shareholder rows found below the header row (row {header_index}). "
            "Check that the shareholder table is not empty."
        )

    return ParsedCompany(
        name=name,
        org_number=org_number,
        total_shares=figures.get("num_shares"),
        total_votes=figures.get("num_votes"),
        nominal_value=figures.get("nominal_value"),
        share_capital=figures.get("share_capital"),
        share_classes=share_classes,
        shareholders=shareholders,
    )


# ── Company line ───────────────────────────────────────


def find_company_line(rows: Rows) -> tuple[Optional[int], str, Optional[str]]:
    """Find the ``NAME (ORGNUMBER)`` line.

    Falls back to the first non-empty cell as the name, with no registration
    number, when no cell matches the pattern.
    """

    for index, row in enumerate(rows):
        for cell in row:
            if cell.kind is not CellKind.TEXT:
                continue
            match = COMPANY_LINE.match(cell.text() or "")
            if match:
                return index, match.group(1).strip(), re.sub(r"\s", "", match.group(2))

    for index, row in enumerate(rows):
        for cell in row:
            text = cell.text()
            if text:
                LOGGER.warning("No 'NAME (ORGNUMBER)' line found; using %r as company name", text)
                return index, text, None
    return None, "", None


def _label_value(row: list[Cell], resolve) -> tuple[Optional[str], Cell]:
    """Find the first labelled cell in ``row`` and the value cell to its right."""

    for index, cell in enumerate(row):
        if cell.kind is not CellKind.TEXT:
            continue
        field = resolve(cell.text())
        if field is None:
            continue
        for value in row[index + 1 :]:
            if not value.is_empty:
                return field, value
        return field, Cell(CellKind.EMPTY)
    return None, Cell(CellKind.EMPTY)


def _row_share_class(row: list[Cell]) -> Optional[str]:
    for cell in row:
        if cell.kind is not CellKind.TEXT:
            continue
        if resolve_company_field(cell.text()) == "total_share_capital":
            return None
        resolved = resolve_share_class(cell.text())
        if resolved:
            return resolved
    return None


def _parse_company_fields(rows: Rows, anchor_index: Optional[int], header_index: int) -> dict:
    figures: dict[str, object] = {}
    if anchor_index is None:
        return figures
    end = min(anchor_index + 1 + COMPANY_FIELD_WINDOW, header_index, len(rows))
    for row in rows[anchor_index + 1 : end]:
        # Figures below a class heading belong to that class.
        if _row_share_class(row):
            break
        field, value = _label_value(row, resolve_company_field)
        if field in {"num_shares", "nominal_value", "share_capital", "num_votes"} and field not in figures:
            figures[field] = value.number()
    return figures


# ── Share classes ──────────────────────────────────────


def parse_share_classes(rows: Rows, start: int, end: int) -> list[ParsedShareClass]:
    """Collect share class blocks between the company line and the table header."""

    classes: list[ParsedShareClass] = []
    seen: set[str] = set()
    for index in range(start, min(end, len(rows))):
        class_name = _row_share_class(rows[index])
        if not class_name or class_name in seen:
            continue
        seen.add(class_name)

        details: dict[str, object] = {}
        for detail_row in rows[index + 1 : min(index + 1 + CLASS_DETAIL_WINDOW, end)]:
            if _row_share_class(detail_row):
                break
            field, value = _label_value(detail_row, resolve_company_field)
            if field in {"num_shares", "nominal_value", "share_capital", "num_votes"} and field not in details:
                details[field] = value.number()

        classes.append(
            ParsedShareClass(
                name=class_name,
                total_shares=details.get("num_shares"),
                nominal_value=details.get("nominal_value"),
                share_capital=details.get("share_capital"),
                total_votes=details.get("num_votes"),
            )
        )
    return classes


def parse_remarks(rows: Rows, start: int, end: int) -> Optional[str]:
    """Return the free-text remark following a ``Remarks`` label, if any."""

    for index in range(start, min(end, len(rows))):
        labelled = any(
            cell.kind is CellKind.TEXT and resolve_company_field(cell.text()) == "remarks"
            for cell in rows[index]
        )
        if not labelled:
            continue
        for text_row in rows[index + 1 : min(index + 1 + REMARK_WINDOW, end)]:
            for cell in text_row:
                text = cell.text()
                if text:
                    return text
    return None


def _attach_remarks(share_classes: list[ParsedShareClass], remarks: str) -> None:
    # "A-aksjeeier kan samlet maksimalt..." belongs to A-shares.
    for share_class in share_classes:
        prefix = re.sub(r"-?shares$", "", share_class.name, flags=re.IGNORECASE).strip()
        pattern = re.compile(rf"\b{re.escape(prefix)}[- ]?aksje", re.IGNORECASE)
        if pattern.search(remarks):
            share_class.remarks = remarks
            return
    share_classes[0].remarks = remarks


# ── Shareholder table ──────────────────────────────────


def find_header_row(rows: Rows) -> Optional[int]:
    """Return the index of the first row holding a name column plus another known column."""

    for index, row in enumerate(rows):
        columns = {resolve_column(cell.text()) for cell in row if cell.kind is CellKind.TEXT}
        columns.discard(None)
        if "name" in columns and len(columns) > 1:
            return index
    return None


def _missing_header_message(rows: Rows) -> str:
    samples = []
    for index, row in enumerate(rows[:50]):
        text = cell_at(row, 0).text()
        if text:
            samples.append(f'  row {index}: "{text}"')
        if len(samples) == 8:
            break
    sample_text = "\n".join(samples) if samples else "  (none)"
    return (
        "Could not find the shareholder table header row.\n"
        f"Looking for any of: {', '.join(COLUMN_ALIASES['name'])} next to another known column\n"
        f"First column values found:\n{sample_text}\n"
        f"Total rows: {len(rows)}. Check that the shareholder table header row exists."
    )


def build_column_index(header: list[Cell]) -> dict[str, int]:
    columns: dict[str, int] = {}
    for index, cell in enumerate(header):
        canonical = resolve_column(cell.text())
        if canonical and canonical not in columns:
            columns[canonical] = index
    return columns


def detect_class_columns(header: list[Cell], class_names: list[str]) -> list[ClassColumn]:
    """Find share class columns and the sub-columns that follow each of them.

    Multi-class headers look like ``A-shares, Share number, Total cost price,
    Entry date, B-shares, Share number, ...``; Norwegian single-class headers
    may omit the cost price. A class column's group ends at the next class
    column or the next shareholder-level column.
    """

    detected: list[ClassColumn] = []
    for index, cell in enumerate(header):
        text = cell.text()
        if not text:
            continue
        matched = text if text in class_names else resolve_share_class(text)
        if matched is None or (class_names and matched not in class_names):
            continue

        sub_columns: dict[str, int] = {}
        for sub_index in range(index + 1, len(header)):
            sub_text = header[sub_index].text()
            if not sub_text:
                continue
            sub_alias = resolve_column(sub_text)
            if resolve_share_class(sub_text) or (sub_alias and sub_alias not in CLASS_SUB_COLUMNS):
                break
            if sub_alias and sub_alias not in sub_columns:
                sub_columns[sub_alias] = sub_index

        detected.append(
            ClassColumn(
                class_name=matched,
                shares_col=index,
                share_number_col=sub_columns.get("share_number"),
                cost_price_col=sub_columns.get("total_cost_price"),
                entry_date_col=sub_columns.get("entry_date"),
            )
        )
    return detected


def _unique_classes(class_columns: list[ClassColumn]) -> list[ClassColumn]:
    seen: set[str] = set()
    unique = []
    for column in class_columns:
        if column.class_name not in seen:
            seen.add(column.class_name)
            unique.append(column)
    return unique


def is_footer(name: str) -> bool:
    lowered = normalize_header(name).rstrip(":").strip()
    raw = name.strip().lower()
    return lowered in FOOTER_EXACT or raw.startswith(FOOTER_PREFIXES)


def _split_org_or_birth_date(cell: Cell) -> tuple[Optional[str], Optional[str]]:
    if cell.kind is CellKind.DATE:
        return None, cell.iso_date()
    text = cell.text()
    if not text:
        return None, None
    if ISO_DATE.match(text):
        return None, text
    return text, None


def parse_shareholders(rows: Rows, header_index: int, class_columns: list[ClassColumn]) -> list[ParsedShareholder]:
    columns = build_column_index(rows[header_index])
    name_col = columns["name"]

    def cell(row: list[Cell], field: str) -> Cell:
        return cell_at(row, columns.get(field))

    shareholders: list[ParsedShareholder] = []
    for row in rows[header_index + 1 :]:
        name = cell_at(row, name_col).text()
        if not name or is_footer(name):
            continue

        holdings: list[ClassHolding] = []
        for cc in class_columns:
            num_shares = cell_at(row, cc.shares_col).number()
            if num_shares is None or num_shares <= 0:
                continue
            holdings.append(
                ClassHolding(
                    class_name=cc.class_name,
                    num_shares=num_shares,
                    share_numbers=cell_at(row, cc.share_number_col).text(),
                    total_cost_price=cell_at(row, cc.cost_price_col).number(),
                    entry_date=cell_at(row, cc.entry_date_col).iso_date(),
                )
            )

        org_number, date_of_birth = _split_org_or_birth_date(cell(row, "org_dob"))
        shareholders.append(
            ParsedShareholder(
                name=name,
                org_number=org_number,
                date_of_birth=date_of_birth,
                email=cell(row, "email").text(),
                phone=cell(row, "phone").text(),
                address=cell(row, "address").text(),
                country=cell(row, "country").text(),
                postal_code=cell(row, "postal_code").text(),
                representative_name=cell(row, "representative").text(),
                total_shares=cell(row, "num_shares").number(),
                ownership_pct=cell(row, "ownership").number(),
                total_votes=cell(row, "num_votes").number(),
                voting_power_pct=cell(row, "voting_power").number(),
                total_cost_price=cell(row, "total_cost_price").number(),
                entry_date=cell(row, "entry_date").iso_date(),
                is_pledged=cell(row, "pledged").flag(),
                pledge_details=cell(row, "pledge_details").text(),
                gender=cell(row, "gender").text(),
                is_employee=cell(row, "employee").flag(),
                class_holdings=holdings,
            )
        )
    return shareholders


__all__ = [
    "ClassColumn",
    "parse_file",
    "parse_register",
    "find_company_line",
    "find_header_row",
    "parse_share_classes",
    "parse_remarks",
    "build_column_index",
    "detect_class_columns",
    "is_footer",
    "parse_shareholders",
]
