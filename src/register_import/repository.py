"""Persistence operations used by the import pipeline.

:class:`RegisterRepository` wraps one SQLAlchemy connection that is already
inside a transaction (see :func:`register_import.db.session`). Every write the
importer performs goes through it, so a failure anywhere rolls back all of it.
"""
from __future__ import annotations

from datetime import date
import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import IntegrityError

from .db import (
    companies,
    holdings,
    import_batches,
    new_id,
    share_classes,
    shareholder_aliases,
    shareholder_contacts,
    shareholders,
    snapshots,
    transactions,
)
from .exceptions import ConcurrentImportError
from .models import EntityType, ParsedCompany, ParsedShareClass
from .normalize import normalize_name_for_comparison

LOGGER = logging.getLogger(__name__)

DOB_CANDIDATE_LIMIT = 10


def to_date(value: Optional[str]) -> Optional[date]:
    """Convert an ISO date string to a :class:`date`, dropping impossible dates."""

    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        LOGGER.warning("Ignoring invalid date %r", value)
        return None


def _company_values(parsed: ParsedCompany) -> dict[str, Any]:
    return {
        "name": parsed.name,
        "share_capital": parsed.share_capital,
        "total_shares": parsed.total_shares,
        "total_votes": parsed.total_votes,
        "nominal_value": parsed.nominal_value,
    }


class RegisterRepository:
    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    # ── Companies ──────────────────────────────────────

    def find_company_by_org(self, org_number: str, *, for_update: bool = False) -> Optional[Row]:
        stmt = select(companies).where(companies.c.org_number == org_number)
        if for_update:
            stmt = stmt.with_for_update()
        return self._conn.execute(stmt).first()

    def insert_company(self, parsed: ParsedCompany, org_number: str) -> str:
        company_id = new_id()
        try:
            self._conn.execute(
                insert(companies).values(
                    id=company_id, org_number=org_number, import_generation=1, **_company_values(parsed)
                )
            )
        except IntegrityError as exc:
            # Another import created the company after the lookup above.
            raise ConcurrentImportError(org_number) from exc
        return company_id

    def update_company(self, company_id: str, parsed: ParsedCompany) -> None:
        self._conn.execute(
            update(companies).where(companies.c.id == company_id).values(**_company_values(parsed))
        )

    def advance_generation(self, company: Row) -> int:
        """Compare-and-set the company's import generation.

        Raises :class:`ConcurrentImportError` when another import advanced it
        after ``company`` was read.
        """

        expected = company.import_generation
        result = self._conn.execute(
            update(companies)
            .where(and_(companies.c.id == company.id, companies.c.import_generation == expected))
            .values(import_generation=expected + 1)
        )
        if result.rowcount != 1:
            raise ConcurrentImportError(company.org_number, expected)
        return expected + 1

    # ── Import batches ─────────────────────────────────

    def insert_batch(self, company_id: str, source_file: str, records_imported: int) -> str:
        batch_id = new_id()
        self._conn.execute(
            insert(import_batches).values(
                id=batch_id,
                source_file=source_file,
                company_id=company_id,
                records_imported=records_imported,
                conflicts_found=0,
                effective_date=date.today(),
            )
        )
        return batch_id

    def set_batch_conflicts(self, batch_id: str, conflicts_found: int) -> None:
        self._conn.execute(
            update(import_batches).where(import_batches.c.id == batch_id).values(conflicts_found=conflicts_found)
        )

    # ── Share classes ──────────────────────────────────

    def replace_share_classes(self, company_id: str, classes: Iterable[ParsedShareClass]) -> dict[str, str]:
        """Delete the company's holdings and classes, insert ``classes``; return name → id."""

        # Holdings reference share classes, so they go first.
        self._conn.execute(delete(holdings).where(holdings.c.company_id == company_id))
        self._conn.execute(delete(share_classes).where(share_classes.c.company_id == company_id))

        class_map: dict[str, str] = {}
        for share_class in classes:
            class_id = new_id()
            self._conn.execute(
                insert(share_classes).values(
                    id=class_id,
                    company_id=company_id,
                    name=share_class.name,
                    total_shares=share_class.total_shares,
                    nominal_value=share_class.nominal_value,
                    share_capital=share_class.share_capital,
                    total_votes=share_class.total_votes,
                    remarks=share_class.remarks,
                )
            )
            class_map[share_class.name] = class_id
        return class_map

    # ── Shareholders ───────────────────────────────────

    def find_shareholder_by_org(self, org_number: str) -> Optional[Row]:
        return self._conn.execute(
            select(shareholders).where(shareholders.c.org_number == org_number).limit(1)
        ).first()

    def find_shareholders_by_dob(self, date_of_birth: str, limit: int = DOB_CANDIDATE_LIMIT) -> list[Row]:
        dob = to_date(date_of_birth)
        if dob is None:
            return []
        return list(
            self._conn.execute(
                select(shareholders).where(shareholders.c.date_of_birth == dob).limit(limit)
            )
        )

    def find_shareholder_by_name(self, name_key: str, entity_type: EntityType) -> Optional[Row]:
        return self._conn.execute(
            select(shareholders)
            .where(and_(shareholders.c.entity_type == entity_type, shareholders.c.name_key == name_key))
            .limit(1)
        ).first()

    def insert_shareholder(
        self,
        *,
        canonical_name: str,
        org_number: Optional[str],
        date_of_birth: Optional[str],
        entity_type: EntityType,
        country: Optional[str],
    ) -> str:
        shareholder_id = new_id()
        self._conn.execute(
            insert(shareholders).values(
                id=shareholder_id,
                canonical_name=canonical_name,
                name_key=normalize_name_for_comparison(canonical_name),
                org_number=org_number,
                date_of_birth=to_date(date_of_birth),
                entity_type=entity_type,
                country=country,
            )
        )
        return shareholder_id

    def rename_shareholder(self, shareholder_id: str, canonical_name: str) -> None:
        self._conn.execute(
            update(shareholders)
            .where(shareholders.c.id == shareholder_id)
            .values(canonical_name=canonical_name, name_key=normalize_name_for_comparison(canonical_name))
        )

    def replace_alias(
        self, shareholder_id: str, source_company_id: str, name_variant: str, email: Optional[str]
    ) -> None:
        """Keep exactly one alias per shareholder and source company."""

        self._conn.execute(
            delete(shareholder_aliases).where(
                and_(
                    shareholder_aliases.c.shareholder_id == shareholder_id,
                    shareholder_aliases.c.source_company_id == source_company_id,
                )
            )
        )
        self._conn.execute(
            insert(shareholder_aliases).values(
                id=new_id(),
                shareholder_id=shareholder_id,
                name_variant=name_variant,
                email=email,
                source_company_id=source_company_id,
            )
        )

    def list_contacts(self, shareholder_id: str) -> list[Row]:
        return list(
            self._conn.execute(
                select(shareholder_contacts).where(shareholder_contacts.c.shareholder_id == shareholder_id)
            )
        )

    def insert_contact(
        self, shareholder_id: str, email: Optional[str], phone: Optional[str], address: Optional[str]
    ) -> None:
        self._conn.execute(
            insert(shareholder_contacts).values(
                id=new_id(),
                shareholder_id=shareholder_id,
                email=email,
                phone=phone,
                address=address,
                is_primary=False,
            )
        )

    # ── Holdings ───────────────────────────────────────

    def delete_holdings(self, shareholder_id: str, company_id: str) -> None:
        self._conn.execute(
            delete(holdings).where(
                and_(holdings.c.shareholder_id == shareholder_id, holdings.c.company_id == company_id)
            )
        )

    def insert_holding(self, values: Mapping[str, Any]) -> str:
        holding_id = new_id()
        row = dict(values)
        row["entry_date"] = to_date(row.get("entry_date"))
        self._conn.execute(insert(holdings).values(id=holding_id, **row))
        return holding_id

    # ── History ────────────────────────────────────────

    def insert_snapshot(
        self, company_id: str, import_batch_id: Optional[str], snapshot_data: dict, effective_date: date
    ) -> str:
        snapshot_id = new_id()
        self._conn.execute(
            insert(snapshots).values(
                id=snapshot_id,
                company_id=company_id,
                import_batch_id=import_batch_id,
                snapshot_data=snapshot_data,
                effective_date=effective_date,
            )
        )
        return snapshot_id

    def insert_transaction(self, values: Mapping[str, Any]) -> str:
        transaction_id = new_id()
        self._conn.execute(insert(transactions).values(id=transaction_id, **values))
        return transaction_id


__all__ = ["RegisterRepository", "to_date"]
