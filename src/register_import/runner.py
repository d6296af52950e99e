"""Command line entry point for importing shareholder registers."""
from __future__ import annotations

import argparse
from dataclasses import asdict
import json
import logging
from pathlib import Path
import sys
from typing import Any, Iterable

from sqlalchemy.engine import Engine

from .config import Settings
from .db import create_db_engine, ensure_schema
from .exceptions import RegisterImportError
from .importer import confirm_import, import_file, preview_import
from .logging_utils import configure_logging
from .normalize import normalize_org_number
from .repository import RegisterRepository
from .review import list_email_conflicts
from .snapshot import list_snapshots

LOGGER = logging.getLogger(__name__)


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def run_command(options: argparse.Namespace, settings: Settings, engine: Engine) -> Any:
    """Run one subcommand and return a JSON-serialisable result."""

    if options.command in ("preview", "import", "confirm"):
        path = Path(options.file)
        data = path.read_bytes()
        if options.command == "preview":
            preview = preview_import(engine, data, path.name)
            return {"diff": asdict(preview.diff), "existing_company_id": preview.existing_company_id}
        if options.command == "import":
            return asdict(import_file(engine, data, path.name, extra_suffixes=settings.extra_corporate_suffixes))
        return asdict(confirm_import(engine, data, path.name, extra_suffixes=settings.extra_corporate_suffixes))

    with engine.connect() as conn:
        if options.command == "conflicts":
            conflicts = [asdict(conflict) for conflict in list_email_conflicts(conn)]
            return {"total_conflicts": len(conflicts), "conflicts": conflicts}

        org_number = normalize_org_number(options.org_number)
        company = RegisterRepository(conn).find_company_by_org(org_number) if org_number else None
        if company is None:
            raise RegisterImportError(f"Unknown company: {options.org_number}")
        return [asdict(snapshot) for snapshot in list_snapshots(conn, company.id)]


def parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("preview", "Show what importing FILE would change, without writing"),
        ("import", "Import FILE"),
        ("confirm", "Import FILE and record a snapshot and ledger rows"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("file", help="Register export (.xlsx or .csv)")
    commands.add_parser("conflicts", help="List shareholders with conflicting emails")
    snapshots = commands.add_parser("snapshots", help="List stored snapshots of a company")
    snapshots.add_argument("org_number", help="Registration number of the company, spaces and dashes allowed")
    return parser.parse_args(args=args)


def main(argv: Iterable[str] | None = None) -> int:
    options = parse_args(argv)
    configure_logging(logging.DEBUG if options.verbose else None)
    settings = Settings.load()
    engine = create_db_engine(settings.database_url)
    ensure_schema(engine)

    try:
        result = run_command(options, settings, engine)
    except (RegisterImportError, OSError) as exc:
        LOGGER.error("%s failed: %s", options.command, exc)
        print(_dump({"error": str(exc)}), file=sys.stderr)
        return 1
    print(_dump(result))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
