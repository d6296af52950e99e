"""Normalization of registration numbers, names and emails, and entity typing."""
from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from .models import EntityType

_ORG_NOISE = re.compile(r"[\s\-]")
_JURISDICTION_PREFIX = re.compile(r"^[A-Za-z]{2}")
_DANISH_CVR = re.compile(r"^\d{8}$")
_PLAUSIBLE_ORG = re.compile(r"^(?:[A-Z]{2})?[0-9A-Z]*\d{6,}[0-9A-Z]*$")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_PARENTHETICAL = re.compile(r"\s*\([^)]*\)\s*$")

# Legal-form suffixes across the jurisdictions seen in the registers. Compared
# against the last word of a name, lowercased and without a trailing dot.
CORPORATE_SUFFIXES: frozenset[str] = frozenset({
    # Nordic
    "as", "asa", "ans", "da", "ba", "sa", "ab", "hb", "kb", "aps", "a/s", "i/s", "p/s", "k/s",
    "ivs", "oy", "oyj", "ky", "ehf", "hf", "sf", "sce",
    # German speaking
    "gmbh", "ag", "kg", "kgaa", "ug", "ohg", "gbr", "e.v", "ev",
    # Benelux
    "bv", "b.v", "nv", "n.v", "vof", "bvba", "sprl", "cv",
    # UK, Ireland, US and Commonwealth
    "ltd", "limited", "plc", "llc", "llp", "lp", "inc", "incorporated", "corp", "corporation",
    "co", "company", "pty", "pte", "bhd", "dac", "ulc",
    # Romance languages
    "sarl", "s.a.r.l", "sas", "s.a.s", "s.a", "sca", "snc", "spa", "s.p.a", "srl", "s.r.l",
    "sl", "s.l", "sau", "s.a.u", "lda", "ltda", "sapi",
    # Central and Eastern Europe
    "kft", "zrt", "nyrt", "sro", "s.r.o", "d.o.o", "doo", "ou", "oü", "uab", "sia",
    # Other
    "se", "kk", "k.k",
})


def normalize_org_number(org_number: Optional[str]) -> Optional[str]:
    """Canonicalize a registration number for cross-file matching.

    Whitespace and dashes are removed. Numbers carrying a two-letter
    jurisdiction prefix pass through unchanged; a bare 8-digit number is a
    Danish CVR number and gets a ``DK`` prefix. Norwegian numbers (9 digits)
    are left as they are.
    """

    if not org_number or not org_number.strip():
        return None

    normalized = _ORG_NOISE.sub("", org_number)
    if _JURISDICTION_PREFIX.match(normalized):
        return normalized
    if _DANISH_CVR.match(normalized):
        return f"DK{normalized}"
    return normalized


def is_plausible_org_number(org_number: Optional[str]) -> bool:
    """Whether a normalized registration number looks like a registry identifier."""

    if not org_number:
        return False
    return bool(_PLAUSIBLE_ORG.match(org_number.upper()))


def normalize_name_for_comparison(name: str) -> str:
    return _WHITESPACE.sub(" ", name.strip().lower())


def pick_canonical_name(variants: Sequence[str]) -> str:
    """Pick the display name among variants, preferring anything not in ALL CAPS."""

    if not variants:
        return ""
    for variant in variants:
        if variant != variant.upper():
            return variant
    return variants[0]


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email or not email.strip():
        return None
    return email.strip().lower()


def corporate_suffixes(extra: Iterable[str] = ()) -> frozenset[str]:
    """Return the built-in suffix dictionary extended with configured suffixes."""

    additions = {suffix.strip().lower().rstrip(".") for suffix in extra if suffix.strip()}
    return CORPORATE_SUFFIXES | additions


def has_corporate_suffix(name: str, suffixes: frozenset[str] = CORPORATE_SUFFIXES) -> bool:
    stripped = _TRAILING_PARENTHETICAL.sub("", name.strip())
    words = stripped.replace(",", " ").split()
    if not words:
        return False
    last = words[-1].lower()
    return last in suffixes or last.rstrip(".") in suffixes


def determine_entity_type(
    org_number: Optional[str],
    date_of_birth: Optional[str],
    name: Optional[str] = None,
    suffixes: frozenset[str] = CORPORATE_SUFFIXES,
) -> EntityType:
    """Classify a shareholder as ``company`` or ``person``.

    A date of birth means a person and a registration number means a company.
    Otherwise the name is checked for a legal-form suffix; the default is a person.
    """

    if date_of_birth:
        return "person"
    if org_number:
        return "company"
    if name and has_corporate_suffix(name, suffixes):
        return "company"
    return "person"


__all__ = [
    "CORPORATE_SUFFIXES",
    "normalize_org_number",
    "is_plausible_org_number",
    "normalize_name_for_comparison",
    "pick_canonical_name",
    "normalize_email",
    "corporate_suffixes",
    "has_corporate_suffix",
    "determine_entity_type",
]
