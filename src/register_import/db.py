"""Database integration utilities."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool


metadata = MetaData()

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _id_column() -> Column:
    return Column("id", String(36), primary_key=True, default=new_id)


def _amount(precision: int, scale: int) -> Numeric:
    return Numeric(precision, scale, asdecimal=False)


entity_type_enum = Enum("company", "person", name="entity_type")

companies = Table(
    "companies",
    metadata,
    _id_column(),
    Column("name", Text, nullable=False),
    Column("org_number", String(32), nullable=False, unique=True),
    Column("share_capital", _amount(20, 2), nullable=True),
    Column("total_shares", BigInteger, nullable=True),
    Column("total_votes", BigInteger, nullable=True),
    Column("nominal_value", _amount(20, 6), nullable=True),
    # Advanced by every committed import; guards the share class/holding replace.
    Column("import_generation", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
)

share_classes = Table(
    "share_classes",
    metadata,
    _id_column(),
    Column("company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("total_shares", BigInteger, nullable=True),
    Column("nominal_value", _amount(20, 6), nullable=True),
    Column("share_capital", _amount(20, 2), nullable=True),
    Column("total_votes", BigInteger, nullable=True),
    Column("remarks", Text, nullable=True),
)

shareholders = Table(
    "shareholders",
    metadata,
    _id_column(),
    Column("canonical_name", Text, nullable=False),
    # normalize_name_for_comparison(canonical_name), kept in step with it.
    Column("name_key", Text, nullable=False, index=True),
    Column("org_number", String(32), nullable=True, index=True),
    Column("date_of_birth", Date, nullable=True, index=True),
    Column("entity_type", entity_type_enum, nullable=False),
    Column("country", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
)

shareholder_aliases = Table(
    "shareholder_aliases",
    metadata,
    _id_column(),
    Column("shareholder_id", ForeignKey("shareholders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name_variant", Text, nullable=False),
    Column("email", Text, nullable=True),
    Column("source_company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
)

shareholder_contacts = Table(
    "shareholder_contacts",
    metadata,
    _id_column(),
    Column("shareholder_id", ForeignKey("shareholders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("email", Text, nullable=True),
    Column("phone", Text, nullable=True),
    Column("address", Text, nullable=True),
    Column("is_primary", Boolean, nullable=False, default=False),
)

import_batches = Table(
    "import_batches",
    metadata,
    _id_column(),
    Column("imported_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("source_file", Text, nullable=False),
    Column("company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True),
    Column("records_imported", BigInteger, nullable=True),
    Column("conflicts_found", BigInteger, nullable=True),
    Column("effective_date", Date, nullable=True),
)

holdings = Table(
    "holdings",
    metadata,
    _id_column(),
    Column("shareholder_id", ForeignKey("shareholders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("share_class_id", ForeignKey("share_classes.id"), nullable=True, index=True),
    Column("num_shares", BigInteger, nullable=True),
    # Shareholder-level figures: set on one holding row per shareholder and company only.
    Column("ownership_pct", _amount(18, 12), nullable=True),
    Column("voting_power_pct", _amount(18, 12), nullable=True),
    Column("total_cost_price", _amount(20, 4), nullable=True),
    Column("entry_date", Date, nullable=True),
    Column("share_numbers", Text, nullable=True),
    Column("is_pledged", Boolean, nullable=False, default=False),
    Column("pledge_details", Text, nullable=True),
    Column("import_batch_id", ForeignKey("import_batches.id"), nullable=True, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow),
)

snapshots = Table(
    "snapshots",
    metadata,
    _id_column(),
    Column("company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("import_batch_id", ForeignKey("import_batches.id"), nullable=True),
    Column("snapshot_data", JSON, nullable=False),
    Column("effective_date", Date, nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

transactions = Table(
    "transactions",
    metadata,
    _id_column(),
    Column("company_id", ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("type", String(32), nullable=False, index=True),
    Column("effective_date", Date, nullable=False, index=True),
    Column("description", Text, nullable=True),
    Column("from_shareholder_id", ForeignKey("shareholders.id"), nullable=True),
    Column("to_shareholder_id", ForeignKey("shareholders.id"), nullable=True),
    Column("share_class_id", ForeignKey("share_classes.id", ondelete="SET NULL"), nullable=True),
    Column("share_class_name", Text, nullable=True),
    Column("num_shares", BigInteger, nullable=False, default=0),
    Column("shares_before", BigInteger, nullable=True),
    Column("shares_after", BigInteger, nullable=True),
    Column("source", String(32), nullable=False, default="manual"),
    Column("import_batch_id", ForeignKey("import_batches.id"), nullable=True, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

Index("ix_shareholders_entity_name", shareholders.c.entity_type, shareholders.c.name_key)
Index("ix_aliases_shareholder_source", shareholder_aliases.c.shareholder_id, shareholder_aliases.c.source_company_id)


def create_db_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine."""

    LOGGER.debug("Creating database engine")
    if database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.endswith("://")
    ):
        # One shared connection, otherwise every checkout sees a fresh empty database.
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


@contextmanager
def session(engine: Engine) -> Iterator[Connection]:
    """Provide a transactional scope around a series of operations."""

    with engine.begin() as conn:
        yield conn


def ensure_schema(engine: Engine) -> None:
    """Create tables if they do not exist."""

    LOGGER.debug("Ensuring database schema is present")
    metadata.create_all(engine)


__all__ = [
    "metadata",
    "new_id",
    "create_db_engine",
    "session",
    "ensure_schema",
    "companies",
    "share_classes",
    "shareholders",
    "shareholder_aliases",
    "shareholder_contacts",
    "import_batches",
    "holdings",
    "snapshots",
    "transactions",
]
