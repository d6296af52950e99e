"""Compare the persisted state of a company with a freshly parsed register.

:func:`calculate_diff` is pure: it takes a :class:`SnapshotData` (or ``None``
for a company that has never been imported) and a :class:`ParsedCompany` and
returns an :class:`ImportDiff` for review before anything is written.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from .models import (
    DiffSummary,
    HoldingChange,
    ImportDiff,
    Number,
    ParsedCompany,
    ParsedShareClass,
    ParsedShareholder,
    ShareClassChange,
    ShareClassFigures,
    ShareholderChange,
    SnapshotData,
    SnapshotHolding,
    SnapshotShareClass,
)
from .normalize import normalize_name_for_comparison, normalize_org_number

DEFAULT_CLASS = "Default"

CHANGE_ORDER = {
    "new": 0,
    "exited": 1,
    "increased": 2,
    "decreased": 3,
    "class_changed": 4,
    "unchanged": 5,
}


def calculate_diff(current: Optional[SnapshotData], parsed: ParsedCompany) -> ImportDiff:
    if current is None or not current.holdings:
        return _first_import_diff(parsed)

    share_class_changes = diff_share_classes(current.share_classes, parsed.share_classes)
    groups = group_holdings(current.holdings)
    matched, unmatched = match_shareholders(parsed.shareholders, groups)
    class_names = [share_class.name for share_class in parsed.share_classes]

    changes: list[ShareholderChange] = []
    for shareholder, key in matched:
        changes.append(_diff_shareholder(shareholder, groups[key], class_names))
    for shareholder in unmatched:
        changes.append(_new_shareholder_change(shareholder, class_names))
    used = {key for _, key in matched}
    for key, group in groups.items():
        if key not in used:
            changes.append(_exited_shareholder_change(group))

    changes.sort(key=lambda change: CHANGE_ORDER[change.type])

    return ImportDiff(
        company_name=parsed.name,
        company_org_number=parsed.org_number,
        is_first_import=False,
        share_class_changes=share_class_changes,
        shareholder_changes=changes,
        summary=_summarize(changes, share_class_changes),
    )


def _first_import_diff(parsed: ParsedCompany) -> ImportDiff:
    class_names = [share_class.name for share_class in parsed.share_classes]
    changes = [_new_shareholder_change(shareholder, class_names) for shareholder in parsed.shareholders]
    class_changes = [
        ShareClassChange(type="added", name=share_class.name, after=_figures(share_class))
        for share_class in parsed.share_classes
    ]
    return ImportDiff(
        company_name=parsed.name,
        company_org_number=parsed.org_number,
        is_first_import=True,
        share_class_changes=class_changes,
        shareholder_changes=changes,
        summary=_summarize(changes, class_changes),
    )


def _summarize(changes: list[ShareholderChange], class_changes: list[ShareClassChange]) -> DiffSummary:
    kinds = [change.type for change in changes]
    class_kinds = [change.type for change in class_changes]
    return DiffSummary(
        new_shareholders=kinds.count("new"),
        exited_shareholders=kinds.count("exited"),
        changed_holdings=sum(kinds.count(kind) for kind in ("increased", "decreased", "class_changed")),
        unchanged_holdings=kinds.count("unchanged"),
        new_share_classes=class_kinds.count("added"),
        removed_share_classes=class_kinds.count("removed"),
        changed_share_classes=class_kinds.count("changed"),
    )


# ── Share classes ──────────────────────────────────────


def _figures(share_class: ParsedShareClass | SnapshotShareClass) -> ShareClassFigures:
    return ShareClassFigures(
        total_shares=share_class.total_shares,
        nominal_value=share_class.nominal_value,
        share_capital=share_class.share_capital,
    )


def _same_amount(before: Optional[Number], after: Optional[Number]) -> bool:
    return float(before or 0) == float(after or 0)


def _figures_changed(before: ShareClassFigures, after: ShareClassFigures) -> bool:
    return not (
        _same_amount(before.total_shares, after.total_shares)
        and _same_amount(before.nominal_value, after.nominal_value)
        and _same_amount(before.share_capital, after.share_capital)
    )


def diff_share_classes(
    current: Iterable[SnapshotShareClass], parsed: Iterable[ParsedShareClass]
) -> list[ShareClassChange]:
    """Classify share classes as added, removed, changed or unchanged by trimmed name."""

    current_by_name = {share_class.name.strip(): share_class for share_class in current}
    seen: set[str] = set()
    changes: list[ShareClassChange] = []

    for share_class in parsed:
        key = share_class.name.strip()
        existing = current_by_name.get(key)
        after = _figures(share_class)
        if existing is None:
            changes.append(ShareClassChange(type="added", name=share_class.name, after=after))
            continue
        seen.add(key)
        before = _figures(existing)
        kind = "changed" if _figures_changed(before, after) else "unchanged"
        changes.append(ShareClassChange(type=kind, name=share_class.name, before=before, after=after))

    for key, existing in current_by_name.items():
        if key not in seen:
            changes.append(ShareClassChange(type="removed", name=existing.name, before=_figures(existing)))
    return changes


# ── Shareholder matching ───────────────────────────────


def group_holdings(holdings: Iterable[SnapshotHolding]) -> dict[str, list[SnapshotHolding]]:
    """Group holdings per shareholder: ``org:<number>`` when known, else ``id:<shareholder id>``."""

    groups: dict[str, list[SnapshotHolding]] = {}
    for holding in holdings:
        org_number = normalize_org_number(holding.shareholder_org_number)
        key = f"org:{org_number}" if org_number else f"id:{holding.shareholder_id}"
        groups.setdefault(key, []).append(holding)
    return groups


def match_shareholders(
    parsed: Iterable[ParsedShareholder], groups: dict[str, list[SnapshotHolding]]
) -> tuple[list[tuple[ParsedShareholder, str]], list[ParsedShareholder]]:
    matched: list[tuple[ParsedShareholder, str]] = []
    unmatched: list[ParsedShareholder] = []
    used: set[str] = set()

    for shareholder in parsed:
        key: Optional[str] = None
        org_number = normalize_org_number(shareholder.org_number)
        if org_number:
            org_key = f"org:{org_number}"
            if org_key in groups and org_key not in used:
                key = org_key

        if key is None:
            name_key = normalize_name_for_comparison(shareholder.name)
            for candidate, group in groups.items():
                if candidate in used:
                    continue
                if normalize_name_for_comparison(group[0].shareholder_name) == name_key:
                    key = candidate
                    break

        if key is None:
            unmatched.append(shareholder)
        else:
            used.add(key)
            matched.append((shareholder, key))
    return matched, unmatched


# ── Per-shareholder changes ────────────────────────────


def _class_key(name: Optional[str]) -> str:
    return (name or DEFAULT_CLASS).strip().lower()


def parsed_class_shares(shareholder: ParsedShareholder, class_names: list[str]) -> dict[str, tuple[str, Number]]:
    """Per-class share counts of a parsed row, keyed by lowercased class name.

    A row without per-class columns counts as one holding of its total, in
    the company's only share class when there is exactly one.
    """

    shares: dict[str, tuple[str, Number]] = {}
    if shareholder.class_holdings:
        for holding in shareholder.class_holdings:
            key = _class_key(holding.class_name)
            display, total = shares.get(key, (holding.class_name, 0))
            shares[key] = (display, total + (holding.num_shares or 0))
        return shares

    class_name = class_names[0] if len(class_names) == 1 else DEFAULT_CLASS
    shares[_class_key(class_name)] = (class_name, shareholder.total_shares or 0)
    return shares


def _current_class_shares(group: list[SnapshotHolding]) -> dict[str, tuple[str, Number, Number]]:
    shares: dict[str, list] = defaultdict(lambda: [None, 0, 0])
    for holding in group:
        entry = shares[_class_key(holding.share_class_name)]
        entry[0] = entry[0] or holding.share_class_name or DEFAULT_CLASS
        entry[1] += holding.num_shares or 0
        entry[2] += holding.ownership_pct or 0
    return {key: (name, num, pct) for key, (name, num, pct) in shares.items()}


def _diff_shareholder(
    shareholder: ParsedShareholder, group: list[SnapshotHolding], class_names: list[str]
) -> ShareholderChange:
    before = _current_class_shares(group)
    after = parsed_class_shares(shareholder, class_names)

    holding_changes: list[HoldingChange] = []
    for key in list(dict.fromkeys([*before, *after])):
        current_name, shares_before, pct_before = before.get(key, (None, 0, 0))
        parsed_name, shares_after = after.get(key, (None, 0))
        holding_changes.append(
            HoldingChange(
                share_class_name=current_name or parsed_name,
                shares_before=shares_before,
                shares_after=shares_after,
                ownership_pct_before=pct_before,
            )
        )

    total_before = sum(change.shares_before for change in holding_changes)
    total_after = sum(change.shares_after for change in holding_changes)
    if total_before == total_after:
        moved = any(change.shares_before != change.shares_after for change in holding_changes)
        kind = "class_changed" if moved else "unchanged"
    elif total_after > total_before:
        kind = "increased"
    else:
        kind = "decreased"

    return ShareholderChange(
        type=kind,
        shareholder_name=shareholder.name,
        shareholder_id=group[0].shareholder_id,
        org_number=shareholder.org_number or group[0].shareholder_org_number,
        holding_changes=holding_changes,
        total_shares_before=total_before,
        total_shares_after=total_after,
        ownership_pct_before=sum(change.ownership_pct_before for change in holding_changes),
        ownership_pct_after=shareholder.ownership_pct or 0,
    )


def _new_shareholder_change(shareholder: ParsedShareholder, class_names: list[str]) -> ShareholderChange:
    holding_changes = [
        HoldingChange(share_class_name=name, shares_after=shares)
        for name, shares in parsed_class_shares(shareholder, class_names).values()
    ]
    return ShareholderChange(
        type="new",
        shareholder_name=shareholder.name,
        org_number=shareholder.org_number,
        holding_changes=holding_changes,
        total_shares_after=sum(change.shares_after for change in holding_changes),
        ownership_pct_after=shareholder.ownership_pct or 0,
    )


def _exited_shareholder_change(group: list[SnapshotHolding]) -> ShareholderChange:
    holding_changes = [
        HoldingChange(share_class_name=name, shares_before=shares, ownership_pct_before=pct)
        for name, shares, pct in _current_class_shares(group).values()
    ]
    first = group[0]
    return ShareholderChange(
        type="exited",
        shareholder_name=first.shareholder_name,
        shareholder_id=first.shareholder_id,
        org_number=first.shareholder_org_number,
        holding_changes=holding_changes,
        total_shares_before=sum(change.shares_before for change in holding_changes),
        ownership_pct_before=sum(change.ownership_pct_before for change in holding_changes),
    )


__all__ = [
    "CHANGE_ORDER",
    "calculate_diff",
    "diff_share_classes",
    "group_holdings",
    "match_shareholders",
    "parsed_class_shares",
]
