"""Read-only queries that support manual review of resolved identities."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from .db import companies, shareholder_aliases, shareholder_contacts, shareholders


@dataclass(slots=True)
class ConflictSource:
    name_variant: str
    email: str
    source_company: Optional[str]


@dataclass(slots=True)
class EmailConflict:
    """A shareholder whose contacts carry more than one distinct email."""

    shareholder_id: str
    canonical_name: str
    org_number: Optional[str]
    entity_type: str
    name_variants: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    sources: list[ConflictSource] = field(default_factory=list)


def list_email_conflicts(conn: Connection) -> list[EmailConflict]:
    email_count = func.count(func.distinct(shareholder_contacts.c.email))
    flagged = conn.execute(
        select(
            shareholders.c.id,
            shareholders.c.canonical_name,
            shareholders.c.org_number,
            shareholders.c.entity_type,
        )
        .join(shareholder_contacts, shareholder_contacts.c.shareholder_id == shareholders.c.id)
        .where(shareholder_contacts.c.email.is_not(None))
        .group_by(
            shareholders.c.id,
            shareholders.c.canonical_name,
            shareholders.c.org_number,
            shareholders.c.entity_type,
        )
        .having(email_count > 1)
        .order_by(shareholders.c.canonical_name)
    ).all()

    conflicts: list[EmailConflict] = []
    for row in flagged:
        aliases = conn.execute(
            select(
                shareholder_aliases.c.name_variant,
                shareholder_aliases.c.email,
                companies.c.name.label("source_company"),
            )
            .outerjoin(companies, shareholder_aliases.c.source_company_id == companies.c.id)
            .where(shareholder_aliases.c.shareholder_id == row.id)
            .order_by(companies.c.name)
        ).all()
        conflicts.append(
            EmailConflict(
                shareholder_id=row.id,
                canonical_name=row.canonical_name,
                org_number=row.org_number,
                entity_type=row.entity_type,
                name_variants=list(dict.fromkeys(alias.name_variant for alias in aliases)),
                emails=list(dict.fromkeys(alias.email for alias in aliases if alias.email)),
                sources=[
                    ConflictSource(alias.name_variant, alias.email, alias.source_company)
                    for alias in aliases
                    if alias.email
                ],
            )
        )
    return conflicts


__all__ = ["ConflictSource", "EmailConflict", "list_email_conflicts"]
