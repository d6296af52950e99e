"""Import pipeline: parse a register, reconcile it and persist it.

Three entry points share the same commit path:

* :func:`preview_import` parses and diffs against the current state, read only.
* :func:`import_file` replaces the company's share classes and holdings.
* :func:`confirm_import` does the same, and also stores a snapshot of the
  previous state and one ledger row per changed holding.

Every write of one call happens inside a single transaction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
from typing import Iterable, Optional

from sqlalchemy.engine import Engine, Row

from .db import session
from .diff import calculate_diff
from .exceptions import MissingOrgNumberError
from .models import (
    Conflict,
    ConfirmResult,
    ImportDiff,
    ImportResult,
    ParsedCompany,
    ParsedShareholder,
    PreviewResult,
)
from .normalize import CORPORATE_SUFFIXES, corporate_suffixes, normalize_org_number
from .parser import parse_file
from .repository import RegisterRepository
from .resolver import resolve_shareholder
from .snapshot import capture_snapshot_data, create_snapshot

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _Commit:
    company_id: str
    batch_id: str
    class_map: dict[str, str]
    holdings_created: int = 0
    conflicts: list[Conflict] = field(default_factory=list)
    # (row name, row org number) -> shareholder id used for that row
    shareholder_ids: dict[tuple[str, Optional[str]], str] = field(default_factory=dict)


def _parse(data: bytes) -> tuple[ParsedCompany, str]:
    parsed = parse_file(data)
    org_number = normalize_org_number(parsed.org_number)
    if not org_number:
        raise MissingOrgNumberError(parsed.name)
    return parsed, org_number


def _suffixes(extra: Optional[Iterable[str]]) -> frozenset[str]:
    return corporate_suffixes(extra) if extra else CORPORATE_SUFFIXES


def preview_import(engine: Engine, data: bytes, filename: str) -> PreviewResult:
    """Parse ``data`` and diff it against the stored state without writing."""

    parsed, org_number = _parse(data)
    with engine.connect() as conn:
        existing = RegisterRepository(conn).find_company_by_org(org_number)
        current = capture_snapshot_data(conn, existing.id) if existing is not None else None
    diff = calculate_diff(current, parsed)
    LOGGER.debug("Previewed %s for %s (%s)", filename, parsed.name, org_number)
    return PreviewResult(diff=diff, existing_company_id=existing.id if existing is not None else None, parsed=parsed)


def import_file(
    engine: Engine,
    data: bytes,
    filename: str,
    *,
    extra_suffixes: Optional[Iterable[str]] = None,
) -> ImportResult:
    """Import one register file; all writes commit together or not at all."""

    parsed, org_number = _parse(data)
    with session(engine) as conn:
        repo = RegisterRepository(conn)
        existing = repo.find_company_by_org(org_number, for_update=True)
        commit = _commit(repo, parsed, org_number, existing, filename, _suffixes(extra_suffixes))
    return _result(parsed, commit)


def confirm_import(
    engine: Engine,
    data: bytes,
    filename: str,
    *,
    extra_suffixes: Optional[Iterable[str]] = None,
) -> ConfirmResult:
    """Import with history: snapshot the previous state and record the diff as ledger rows."""

    parsed, org_number = _parse(data)
    with session(engine) as conn:
        repo = RegisterRepository(conn)
        existing = repo.find_company_by_org(org_number, for_update=True)
        current = capture_snapshot_data(conn, existing.id) if existing is not None else None
        diff = calculate_diff(current, parsed)

        snapshot_id: Optional[str] = None
        if current is not None and current.holdings:
            snapshot_id = create_snapshot(conn, existing.id, None, date.today())

        commit = _commit(repo, parsed, org_number, existing, filename, _suffixes(extra_suffixes))
        transactions_created = _record_transactions(repo, commit, diff)

    LOGGER.info("Recorded %d ledger rows for %s", transactions_created, parsed.name)
    return ConfirmResult(
        result=_result(parsed, commit),
        diff=diff,
        snapshot_id=snapshot_id,
        transactions_created=transactions_created,
    )


def _result(parsed: ParsedCompany, commit: _Commit) -> ImportResult:
    return ImportResult(
        company_name=parsed.name,
        company_org_number=parsed.org_number,
        shareholders_imported=len(parsed.shareholders),
        holdings_created=commit.holdings_created,
        conflicts=commit.conflicts,
        company_id=commit.company_id,
        import_batch_id=commit.batch_id,
    )


def _commit(
    repo: RegisterRepository,
    parsed: ParsedCompany,
    org_number: str,
    existing: Optional[Row],
    filename: str,
    suffixes: frozenset[str],
) -> _Commit:
    if existing is None:
        company_id = repo.insert_company(parsed, org_number)
    else:
        company_id = existing.id
        repo.advance_generation(existing)
        repo.update_company(company_id, parsed)

    batch_id = repo.insert_batch(company_id, filename, len(parsed.shareholders))

    commit = _Commit(company_id, batch_id, repo.replace_share_classes(company_id, parsed.share_classes))
    for shareholder in parsed.shareholders:
        resolution = resolve_shareholder(repo, shareholder, company_id, commit.conflicts, suffixes=suffixes)
        commit.shareholder_ids[(shareholder.name, shareholder.org_number)] = resolution.shareholder_id
        repo.delete_holdings(resolution.shareholder_id, company_id)
        commit.holdings_created += _insert_holdings(repo, shareholder, resolution.shareholder_id, commit)

    repo.set_batch_conflicts(batch_id, len(commit.conflicts))

    for conflict in commit.conflicts:
        LOGGER.warning("%s for %r (%s): %s", conflict.kind, conflict.shareholder_name, conflict.org_number, conflict.details)
    LOGGER.info(
        "Imported %s (%s) from %s: %d shareholders, %d holdings, %d conflicts",
        parsed.name,
        org_number,
        filename,
        len(parsed.shareholders),
        commit.holdings_created,
        len(commit.conflicts),
    )
    return commit


def _insert_holdings(
    repo: RegisterRepository, shareholder: ParsedShareholder, shareholder_id: str, commit: _Commit
) -> int:
    base = {
        "shareholder_id": shareholder_id,
        "company_id": commit.company_id,
        "is_pledged": shareholder.is_pledged,
        "pledge_details": shareholder.pledge_details,
        "import_batch_id": commit.batch_id,
    }

    if not shareholder.class_holdings:
        class_ids = list(commit.class_map.values())
        repo.insert_holding(
            {
                **base,
                "share_class_id": class_ids[0] if len(class_ids) == 1 else None,
                "num_shares": shareholder.total_shares,
                "ownership_pct": shareholder.ownership_pct,
                "voting_power_pct": shareholder.voting_power_pct,
                "total_cost_price": shareholder.total_cost_price,
                "entry_date": shareholder.entry_date,
                "share_numbers": None,
            }
        )
        return 1

    # Ownership and voting power are shareholder totals: only the first row carries them.
    created = 0
    for holding in shareholder.class_holdings:
        if not holding.num_shares:
            continue
        first = created == 0
        repo.insert_holding(
            {
                **base,
                "share_class_id": commit.class_map.get(holding.class_name),
                "num_shares": holding.num_shares,
                "ownership_pct": shareholder.ownership_pct if first else None,
                "voting_power_pct": shareholder.voting_power_pct if first else None,
                "total_cost_price": holding.total_cost_price,
                "entry_date": holding.entry_date,
                "share_numbers": holding.share_numbers,
            }
        )
        created += 1
    return created


def _class_id(class_map: dict[str, str], name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    if name in class_map:
        return class_map[name]
    wanted = name.strip().lower()
    for class_name, class_id in class_map.items():
        if class_name.strip().lower() == wanted:
            return class_id
    return None


def _record_transactions(repo: RegisterRepository, commit: _Commit, diff: ImportDiff) -> int:
    effective_date = date.today()
    created = 0
    for change in diff.shareholder_changes:
        if change.type == "unchanged":
            continue
        shareholder_id = commit.shareholder_ids.get((change.shareholder_name, change.org_number)) or change.shareholder_id
        exited = change.type == "exited"
        for holding in change.holding_changes:
            if holding.shares_before == holding.shares_after:
                continue
            repo.insert_transaction(
                {
                    "company_id": commit.company_id,
                    "type": "import_diff",
                    "effective_date": effective_date,
                    "description": (
                        f"Import: {change.shareholder_name} / {holding.share_class_name}: "
                        f"{holding.shares_before} -> {holding.shares_after}"
                    ),
                    "from_shareholder_id": shareholder_id if exited else None,
                    "to_shareholder_id": None if exited else shareholder_id,
                    "share_class_id": _class_id(commit.class_map, holding.share_class_name),
                    "share_class_name": holding.share_class_name,
                    "num_shares": abs(holding.shares_after - holding.shares_before),
                    "shares_before": holding.shares_before,
                    "shares_after": holding.shares_after,
                    "source": "import",
                    "import_batch_id": commit.batch_id,
                }
            )
            created += 1
    return created


__all__ = ["preview_import", "import_file", "confirm_import"]
