"""Entity resolution: map a parsed shareholder row onto a persistent identity.

Matching runs in priority order:

1. exact registration number,
2. date of birth plus normalized name (persons only),
3. normalized name plus entity type, only when the row carries neither a
   registration number nor a date of birth.

A registration-number match whose stored name differs by more than casing is
cross-validated against a name lookup, to catch source files that put the
wrong registration number next to a shareholder.  Every decision is returned
with its :data:`~register_import.models.MatchMethod` so it can be audited.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from sqlalchemy.engine import Row

from .models import Conflict, EntityType, MatchMethod, ParsedShareholder
from .normalize import (
    CORPORATE_SUFFIXES,
    determine_entity_type,
    is_plausible_org_number,
    normalize_email,
    normalize_name_for_comparison,
    normalize_org_number,
    pick_canonical_name,
)
from .repository import RegisterRepository

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class MatchResult:
    shareholder: Row
    matched_by: MatchMethod


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving one row: the identity used and how it was found."""

    shareholder_id: str
    entity_type: EntityType
    org_number: Optional[str]
    matched_by: Optional[MatchMethod] = None
    created: bool = False


def find_existing_shareholder(
    repo: RegisterRepository,
    org_number: Optional[str],
    date_of_birth: Optional[str],
    name_key: str,
    entity_type: EntityType,
) -> Optional[MatchResult]:
    if org_number:
        by_org = repo.find_shareholder_by_org(org_number)
        if by_org is not None:
            return MatchResult(by_org, "org_number")

    if date_of_birth and entity_type == "person":
        for candidate in repo.find_shareholders_by_dob(date_of_birth):
            if normalize_name_for_comparison(candidate.canonical_name) == name_key:
                return MatchResult(candidate, "date_of_birth")

    if not org_number and not date_of_birth:
        by_name = repo.find_shareholder_by_name(name_key, entity_type)
        if by_name is not None:
            return MatchResult(by_name, "name")

    return None


def cross_validate_org_match(
    repo: RegisterRepository,
    match: MatchResult,
    imported_name: str,
    name_key: str,
    org_number: str,
    entity_type: EntityType,
    conflicts: list[Conflict],
) -> MatchResult:
    """Re-check a registration-number match whose stored name looks unrelated.

    If another shareholder carries exactly the imported name, the source row
    most likely has a wrong registration number: that shareholder is used
    instead and a ``possible_wrong_org`` conflict is recorded.  If there is no
    such shareholder but the number is registered to a company with another
    name, the conflict is still recorded and the original match is kept.
    """

    existing_key = normalize_name_for_comparison(match.shareholder.canonical_name)
    if existing_key == name_key:
        return match

    known_company = repo.find_company_by_org(org_number)
    org_belongs_to_other_company = (
        known_company is not None and normalize_name_for_comparison(known_company.name) != name_key
    )

    by_name = repo.find_shareholder_by_name(name_key, entity_type)
    if by_name is not None and by_name.id != match.shareholder.id:
        conflicts.append(
            Conflict(
                kind="possible_wrong_org",
                shareholder_name=imported_name,
                org_number=org_number,
                details=(
                    f'Source has org {org_number} (belongs to "{match.shareholder.canonical_name}") '
                    f'but name "{imported_name}" matches existing shareholder with org '
                    f"{by_name.org_number}. Using name match instead."
                ),
            )
        )
        return MatchResult(by_name, "name")

    if org_belongs_to_other_company:
        conflicts.append(
            Conflict(
                kind="possible_wrong_org",
                shareholder_name=imported_name,
                org_number=org_number,
                details=(
                    f'Source has org {org_number} (belongs to company "{known_company.name}") '
                    f'but imported name is "{imported_name}". Org number in source may be wrong.'
                ),
            )
        )

    return match


def _record_contact(
    repo: RegisterRepository,
    shareholder_id: str,
    parsed: ParsedShareholder,
    org_number: Optional[str],
    conflicts: list[Conflict],
) -> None:
    if not (parsed.email or parsed.phone or parsed.address):
        return

    email = normalize_email(parsed.email)
    contacts = repo.list_contacts(shareholder_id)

    if email:
        seen = [contact.email for contact in contacts if contact.email]
        if seen and email not in seen:
            conflicts.append(
                Conflict(
                    kind="email_mismatch",
                    shareholder_name=parsed.name,
                    org_number=org_number,
                    details=f"Existing: {', '.join(seen)}, New: {email}",
                )
            )

    duplicate = any(
        contact.email == email and contact.phone == parsed.phone and contact.address == parsed.address
        for contact in contacts
    )
    if not duplicate:
        repo.insert_contact(shareholder_id, email, parsed.phone, parsed.address)


def resolve_shareholder(
    repo: RegisterRepository,
    parsed: ParsedShareholder,
    company_id: str,
    conflicts: list[Conflict],
    *,
    suffixes: frozenset[str] = CORPORATE_SUFFIXES,
) -> Resolution:
    """Find or create the shareholder for ``parsed`` and refresh its alias and contact.

    Conflicts are appended to ``conflicts``; none of them stop the import.
    """

    first_conflict = len(conflicts)
    entity_type = determine_entity_type(parsed.org_number, parsed.date_of_birth, parsed.name, suffixes)
    org_number = normalize_org_number(parsed.org_number)
    name_key = normalize_name_for_comparison(parsed.name)

    if org_number and not is_plausible_org_number(org_number):
        conflicts.append(
            Conflict(
                kind="org_number_format",
                shareholder_name=parsed.name,
                org_number=org_number,
                details=f"Org number {org_number!r} does not look like a registry number.",
            )
        )

    match = find_existing_shareholder(repo, org_number, parsed.date_of_birth, name_key, entity_type)
    if match is not None and match.matched_by == "org_number" and org_number:
        match = cross_validate_org_match(repo, match, parsed.name, name_key, org_number, entity_type, conflicts)

    if match is not None:
        shareholder = match.shareholder
        shareholder_id = shareholder.id
        if normalize_name_for_comparison(shareholder.canonical_name) != name_key:
            already_flagged = any(
                conflict.kind == "possible_wrong_org" for conflict in conflicts[first_conflict:]
            )
            if not already_flagged:
                conflicts.append(
                    Conflict(
                        kind="name_mismatch",
                        shareholder_name=parsed.name,
                        org_number=org_number,
                        details=f'Existing: "{shareholder.canonical_name}", New: "{parsed.name}"',
                    )
                )

        best_name = pick_canonical_name([shareholder.canonical_name, parsed.name])
        if best_name != shareholder.canonical_name:
            repo.rename_shareholder(shareholder_id, best_name)
        LOGGER.debug("Matched %r to shareholder %s by %s", parsed.name, shareholder_id, match.matched_by)
        resolution = Resolution(shareholder_id, entity_type, org_number, match.matched_by)
    else:
        shareholder_id = repo.insert_shareholder(
            canonical_name=parsed.name,
            org_number=org_number,
            date_of_birth=parsed.date_of_birth,
            entity_type=entity_type,
            country=parsed.country,
        )
        LOGGER.debug("Created %s shareholder %s for %r", entity_type, shareholder_id, parsed.name)
        resolution = Resolution(shareholder_id, entity_type, org_number, created=True)

    repo.replace_alias(shareholder_id, company_id, parsed.name, normalize_email(parsed.email))
    _record_contact(repo, shareholder_id, parsed, org_number, conflicts)
    return resolution


__all__ = [
    "MatchResult",
    "Resolution",
    "find_existing_shareholder",
    "cross_validate_org_match",
    "resolve_shareholder",
]
