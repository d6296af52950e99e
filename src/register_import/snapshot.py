"""Point-in-time snapshots of a company's share classes and holdings."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
import logging
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.engine import Connection

from .db import companies, holdings, share_classes, shareholders, snapshots
from .exceptions import CompanyNotFoundError
from .models import SnapshotCompany, SnapshotData, SnapshotHolding, SnapshotShareClass
from .repository import RegisterRepository

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredSnapshot:
    id: str
    company_id: str
    import_batch_id: Optional[str]
    effective_date: date
    created_at: datetime


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def capture_snapshot_data(conn: Connection, company_id: str) -> SnapshotData:
    """Read the company's current ownership state without writing anything.

    Holdings carry the shareholder name, registration number and share class
    name so two snapshots compare without looking at row ids.
    """

    company = conn.execute(
        select(
            companies.c.share_capital,
            companies.c.total_shares,
            companies.c.total_votes,
            companies.c.nominal_value,
        ).where(companies.c.id == company_id)
    ).first()
    if company is None:
        raise CompanyNotFoundError(company_id)

    class_rows = conn.execute(
        select(share_classes).where(share_classes.c.company_id == company_id).order_by(share_classes.c.name)
    )
    classes = [
        SnapshotShareClass(
            id=row.id,
            name=row.name,
            total_shares=row.total_shares,
            nominal_value=row.nominal_value,
            share_capital=row.share_capital,
            total_votes=row.total_votes,
            remarks=row.remarks,
        )
        for row in class_rows
    ]

    holding_rows = conn.execute(
        select(
            holdings,
            shareholders.c.canonical_name,
            shareholders.c.org_number.label("shareholder_org_number"),
            share_classes.c.name.label("share_class_name"),
        )
        .join(shareholders, holdings.c.shareholder_id == shareholders.c.id)
        .outerjoin(share_classes, holdings.c.share_class_id == share_classes.c.id)
        .where(holdings.c.company_id == company_id)
    )
    snapshot_holdings = [
        SnapshotHolding(
            shareholder_id=row.shareholder_id,
            shareholder_name=row.canonical_name,
            shareholder_org_number=row.shareholder_org_number,
            share_class_id=row.share_class_id,
            share_class_name=row.share_class_name,
            num_shares=row.num_shares,
            ownership_pct=row.ownership_pct,
            voting_power_pct=row.voting_power_pct,
            total_cost_price=row.total_cost_price,
            entry_date=_iso(row.entry_date),
            share_numbers=row.share_numbers,
        )
        for row in holding_rows
    ]
    snapshot_holdings.sort(key=lambda h: (h.shareholder_name, h.share_class_name or "", h.shareholder_id))

    return SnapshotData(
        company=SnapshotCompany(
            share_capital=company.share_capital,
            total_shares=company.total_shares,
            total_votes=company.total_votes,
            nominal_value=company.nominal_value,
        ),
        share_classes=classes,
        holdings=snapshot_holdings,
    )


def create_snapshot(
    conn: Connection,
    company_id: str,
    import_batch_id: Optional[str],
    effective_date: date,
) -> str:
    """Store the company's current state and return the snapshot id."""

    data = capture_snapshot_data(conn, company_id)
    snapshot_id = RegisterRepository(conn).insert_snapshot(company_id, import_batch_id, asdict(data), effective_date)
    LOGGER.debug("Stored snapshot %s for company %s (%d holdings)", snapshot_id, company_id, len(data.holdings))
    return snapshot_id


def load_snapshot(conn: Connection, snapshot_id: str) -> Optional[SnapshotData]:
    row = conn.execute(select(snapshots.c.snapshot_data).where(snapshots.c.id == snapshot_id)).first()
    if row is None:
        return None
    return SnapshotData.from_dict(row.snapshot_data)


def list_snapshots(conn: Connection, company_id: str) -> list[StoredSnapshot]:
    rows = conn.execute(
        select(
            snapshots.c.id,
            snapshots.c.company_id,
            snapshots.c.import_batch_id,
            snapshots.c.effective_date,
            snapshots.c.created_at,
        )
        .where(snapshots.c.company_id == company_id)
        .order_by(desc(snapshots.c.effective_date), desc(snapshots.c.created_at))
    )
    return [StoredSnapshot(**row._mapping) for row in rows]


__all__ = [
    "StoredSnapshot",
    "capture_snapshot_data",
    "create_snapshot",
    "load_snapshot",
    "list_snapshots",
]
