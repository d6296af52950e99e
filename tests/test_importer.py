# tests/test_importer.py
#
# End-to-end import, preview and confirm against an in-memory database.
from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine

from register_import.db import companies, holdings, import_batches, share_classes, shareholders, transactions
from register_import.exceptions import ConcurrentImportError, MissingOrgNumberError, RegisterParseError
from register_import.importer import confirm_import, import_file, preview_import
from register_import.parser import parse_file
from register_import.repository import RegisterRepository

from conftest import register_xlsx, xlsx_bytes


def _alpha(*rows: tuple) -> bytes:
    return register_xlsx("Alpha AS", "910000001", list(rows))


BOB = ("Bob Smith", "1980-05-01", 100, 33.33, "bob@example.com")
NORDIC = ("Nordic Holding AS", "910111222", 150, 50.0)
CAROL = ("Carol Jones", "1975-01-31", 50, 16.67)


def _holdings(engine: Engine) -> list:
    with engine.connect() as conn:
        return conn.execute(
            select(shareholders.c.canonical_name, holdings.c.num_shares, holdings.c.share_class_id)
            .join(shareholders, holdings.c.shareholder_id == shareholders.c.id)
            .order_by(shareholders.c.canonical_name)
        ).all()


def test_first_preview_is_all_new(engine: Engine, alpha_first: bytes) -> None:
    """Previewing a company never imported shows three new shareholders and added classes."""
    preview = preview_import(engine, alpha_first, "alpha.xlsx")

    assert preview.existing_company_id is None
    assert preview.diff.is_first_import
    assert [change.type for change in preview.diff.shareholder_changes] == ["new", "new", "new"]
    assert {change.type for change in preview.diff.share_class_changes} == {"added"}
    with engine.connect() as conn:
        assert conn.execute(select(companies)).first() is None


def test_import_file_persists_company_classes_and_holdings(engine: Engine, alpha_first: bytes) -> None:
    """One import writes the company, its class, three shareholders and their holdings."""
    result = import_file(engine, alpha_first, "alpha.xlsx")

    assert result.company_name == "Alpha AS"
    assert result.company_org_number == "910000001"
    assert result.shareholders_imported == 3
    assert result.holdings_created == 3
    assert result.conflicts == []

    with engine.connect() as conn:
        company = conn.execute(select(companies)).one()
        (class_id,) = conn.execute(select(share_classes.c.id)).scalars().all()
        batch = conn.execute(select(import_batches)).one()
    assert company.total_shares == 300
    assert company.import_generation == 1
    assert batch.source_file == "alpha.xlsx"
    assert batch.records_imported == 3
    assert batch.conflicts_found == 0
    # Rows without class columns are attributed to the only share class.
    assert _holdings(engine) == [
        ("Bob Smith", 100, class_id),
        ("Carol Jones", 50, class_id),
        ("Nordic Holding AS", 150, class_id),
    ]


def test_reimport_replaces_holdings_and_advances_generation(engine: Engine, alpha_first: bytes) -> None:
    """Importing the same company again replaces its holdings instead of adding to them."""
    import_file(engine, alpha_first, "alpha.xlsx")
    result = import_file(engine, _alpha(("Bob Smith", "1980-05-01", 150), NORDIC), "alpha-2.xlsx")

    assert result.holdings_created == 2
    assert [(name, shares) for name, shares, _ in _holdings(engine)] == [("Bob Smith", 150), ("Nordic Holding AS", 150)]
    with engine.connect() as conn:
        assert conn.execute(select(companies.c.import_generation)).scalar_one() == 2
        assert len(conn.execute(select(shareholders)).all()) == 3


def test_reimport_increase_is_previewed(engine: Engine, alpha_first: bytes) -> None:
    """Bob going from 100 to 150 shares in the same class is one increase."""
    import_file(engine, alpha_first, "alpha.xlsx")

    preview = preview_import(engine, _alpha(("Bob Smith", "1980-05-01", 150), NORDIC, CAROL), "alpha-2.xlsx")

    assert preview.existing_company_id is not None
    (bob,) = [change for change in preview.diff.shareholder_changes if change.type == "increased"]
    assert bob.shareholder_name == "Bob Smith"
    assert bob.total_shares_before == 100
    assert bob.total_shares_after == 150
    assert preview.diff.summary.changed_holdings == 1
    assert preview.diff.summary.unchanged_holdings == 2


def test_reimport_exit_is_previewed(engine: Engine, alpha_first: bytes) -> None:
    """A shareholder missing from the new file is exited with zero shares after."""
    import_file(engine, alpha_first, "alpha.xlsx")

    preview = preview_import(engine, _alpha(BOB, NORDIC), "alpha-2.xlsx")

    (carol,) = [change for change in preview.diff.shareholder_changes if change.type == "exited"]
    assert carol.shareholder_name == "Carol Jones"
    assert carol.total_shares_after == 0


def test_preview_of_imported_file_is_unchanged(engine: Engine, alpha_first: bytes) -> None:
    """Previewing the file that was just imported shows no changes."""
    import_file(engine, alpha_first, "alpha.xlsx")

    diff = preview_import(engine, alpha_first, "alpha.xlsx").diff

    assert {change.type for change in diff.shareholder_changes} == {"unchanged"}
    assert {change.type for change in diff.share_class_changes} == {"unchanged"}


def test_ownership_is_stored_on_first_class_row_only(engine: Engine) -> None:
    """Shareholder-level percentages land on the first inserted class holding.

    Which row is first follows the class column order of the file; this pins
    the current behaviour rather than endorsing it.
    """
    data = xlsx_bytes(
        [
            ["Beta Invest AS (920000002)"],
            ["A-shares"],
            ["Number of shares", 100],
            ["B-shares"],
            ["Number of shares", 50],
            [],
            ["Name", "Org no", "B-shares", "A-shares", "Ownership", "Voting power"],
            ["Nordic Holding AS", "910111222", 50, 100, 100, 100],
        ]
    )

    result = import_file(engine, data, "beta.xlsx")

    with engine.connect() as conn:
        rows = conn.execute(
            select(share_classes.c.name, holdings.c.ownership_pct, holdings.c.voting_power_pct)
            .join(share_classes, holdings.c.share_class_id == share_classes.c.id)
            .order_by(holdings.c.created_at, share_classes.c.name)
        ).all()
    assert result.holdings_created == 2
    by_class = {name: (ownership, voting) for name, ownership, voting in rows}
    assert by_class == {"B-shares": (100, 100), "A-shares": (None, None)}


def test_zero_share_classes_are_skipped(engine: Engine) -> None:
    """Classes a shareholder holds no shares in get no holding row."""
    data = xlsx_bytes(
        [
            ["Beta Invest AS (920000002)"],
            ["Name", "Org no", "A-shares", "B-shares"],
            ["Dana Olsen", "1990-02-03", 10, 0],
        ]
    )

    result = import_file(engine, data, "beta.xlsx")

    assert result.holdings_created == 1


def test_unclassified_row_with_several_classes_has_no_class(engine: Engine) -> None:
    """A row without class columns keeps its total but no class when the company has several."""
    data = xlsx_bytes(
        [
            ["Beta Invest AS (920000002)"],
            ["A-shares"],
            ["Number of shares", 100],
            ["B-shares"],
            ["Number of shares", 50],
            [],
            ["Name", "Org no", "Number of shares"],
            ["Nordic Holding AS", "910111222", 150],
        ]
    )

    result = import_file(engine, data, "beta.xlsx")

    with engine.connect() as conn:
        class_count = len(conn.execute(select(share_classes)).all())
    assert result.holdings_created == 1
    assert class_count == 2
    assert _holdings(engine) == [("Nordic Holding AS", 150, None)]


def test_conflicts_do_not_fail_the_import(engine: Engine, alpha_first: bytes) -> None:
    """A substantive name change is recorded as a conflict and counted on the batch."""
    import_file(engine, alpha_first, "alpha.xlsx")

    result = import_file(engine, _alpha(BOB, ("Nordic Group AS", "910111222", 150), CAROL), "alpha-2.xlsx")

    assert [conflict.kind for conflict in result.conflicts] == ["name_mismatch"]
    with engine.connect() as conn:
        batch = conn.execute(
            select(import_batches).where(import_batches.c.id == result.import_batch_id)
        ).one()
    assert batch.conflicts_found == 1


def test_company_without_org_number_is_rejected(engine: Engine) -> None:
    """A register without a registration number on the company line is not imported."""
    data = xlsx_bytes([["Alpha AS"], ["Name", "Org no"], ["Bob Smith", "910111222"]])

    with pytest.raises(MissingOrgNumberError, match="Company has no org number: Alpha AS"):
        import_file(engine, data, "alpha.xlsx")
    with engine.connect() as conn:
        assert conn.execute(select(companies)).first() is None


def test_parse_errors_abort_before_writing(engine: Engine) -> None:
    """Structural errors surface before the database is touched."""
    with pytest.raises(RegisterParseError):
        import_file(engine, xlsx_bytes([["nothing to see"]]), "empty.xlsx")
    with engine.connect() as conn:
        assert conn.execute(select(import_batches)).first() is None


def test_failed_import_rolls_back(engine: Engine, alpha_first: bytes, monkeypatch: pytest.MonkeyPatch) -> None:
    """An error part way through leaves no company, batch or shareholder behind."""

    def explode(*args: object, **kwargs: object) -> None:
        raise RuntimeError("disk full")

    monkeypatch.setattr(RegisterRepository, "set_batch_conflicts", explode)

    with pytest.raises(RuntimeError, match="disk full"):
        import_file(engine, alpha_first, "alpha.xlsx")
    with engine.connect() as conn:
        assert conn.execute(select(companies)).first() is None
        assert conn.execute(select(shareholders)).first() is None


def test_stale_generation_is_rejected(engine: Engine, alpha_first: bytes) -> None:
    """A commit based on an outdated company row raises ConcurrentImportError."""
    import_file(engine, alpha_first, "alpha.xlsx")

    with engine.connect() as conn:
        stale = RegisterRepository(conn).find_company_by_org("910000001")
    import_file(engine, alpha_first, "alpha-again.xlsx")

    with engine.begin() as conn:
        with pytest.raises(ConcurrentImportError):
            RegisterRepository(conn).advance_generation(stale)


def test_duplicate_company_insert_is_a_concurrent_import(engine: Engine, alpha_first: bytes) -> None:
    """Losing the race to create a company is reported as a concurrent import."""
    import_file(engine, alpha_first, "alpha.xlsx")
    parsed = parse_file(alpha_first)

    with engine.connect() as conn:
        with pytest.raises(ConcurrentImportError):
            RegisterRepository(conn).insert_company(parsed, "910000001")
        conn.rollback()


def test_confirm_import_records_snapshot_and_ledger(engine: Engine, alpha_first: bytes) -> None:
    """Confirming a changed file stores the previous state and one ledger row per share movement."""
    first = confirm_import(engine, alpha_first, "alpha.xlsx")
    assert first.snapshot_id is None
    assert first.transactions_created == 3

    second = confirm_import(engine, _alpha(("Bob Smith", "1980-05-01", 150), NORDIC), "alpha-2.xlsx")

    assert second.snapshot_id is not None
    assert second.transactions_created == 2
    assert second.result.holdings_created == 2
    with engine.connect() as conn:
        ledger = conn.execute(
            select(transactions).where(transactions.c.import_batch_id == second.result.import_batch_id)
        ).all()
        bob_id = conn.execute(
            select(shareholders.c.id).where(shareholders.c.canonical_name == "Bob Smith")
        ).scalar_one()
        carol_id = conn.execute(
            select(shareholders.c.id).where(shareholders.c.canonical_name == "Carol Jones")
        ).scalar_one()

    by_shareholder = {(row.to_shareholder_id, row.from_shareholder_id): row for row in ledger}
    increase = by_shareholder[(bob_id, None)]
    exit_row = by_shareholder[(None, carol_id)]
    assert (increase.shares_before, increase.shares_after, increase.num_shares) == (100, 150, 50)
    assert (exit_row.shares_before, exit_row.shares_after, exit_row.num_shares) == (50, 0, 50)
    assert increase.type == "import_diff"
    assert increase.source == "import"
    assert increase.share_class_name == "Common shares"
    assert increase.share_class_id is not None
