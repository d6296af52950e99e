# tests/test_normalize.py
#
# Registration numbers, names, emails and entity typing.
from __future__ import annotations

import pytest

from register_import.aliases import normalize_header, resolve_column, resolve_share_class
from register_import.normalize import (
    corporate_suffixes,
    determine_entity_type,
    has_corporate_suffix,
    is_plausible_org_number,
    normalize_email,
    normalize_name_for_comparison,
    normalize_org_number,
    pick_canonical_name,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12345678", "DK12345678"),
        ("SE5560001234", "SE5560001234"),
        ("910 000 000", "910000000"),
        ("910-000-000", "910000000"),
        ("DK 1234 5678", "DK12345678"),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_org_number(raw: str | None, expected: str | None) -> None:
    """Whitespace and dashes go; bare 8-digit numbers get the DK prefix."""
    assert normalize_org_number(raw) == expected


def test_norwegian_numbers_are_never_prefixed() -> None:
    """Nine-digit numbers stay bare."""
    assert normalize_org_number("910111222") == "910111222"


def test_is_plausible_org_number() -> None:
    """Registry identifiers carry at least six digits."""
    assert is_plausible_org_number("910111222")
    assert is_plausible_org_number("DK12345678")
    assert not is_plausible_org_number("N/A")
    assert not is_plausible_org_number("12")
    assert not is_plausible_org_number(None)


def test_normalize_name_for_comparison() -> None:
    """Trim, lowercase and collapse internal whitespace."""
    assert normalize_name_for_comparison("  Nordic   Holding\tAS ") == "nordic holding as"


def test_pick_canonical_name_prefers_mixed_case() -> None:
    """Any variant that is not all caps wins; otherwise the first is kept."""
    assert pick_canonical_name(["NORDIC HOLDING AS", "Nordic Holding AS"]) == "Nordic Holding AS"
    assert pick_canonical_name(["Nordic Holding AS", "NORDIC HOLDING AS"]) == "Nordic Holding AS"
    assert pick_canonical_name(["ACME AS", "ACME ASA"]) == "ACME AS"
    assert pick_canonical_name([]) == ""


def test_normalize_email() -> None:
    """Emails are trimmed and lowercased; blanks become None."""
    assert normalize_email("  Bob@Example.COM ") == "bob@example.com"
    assert normalize_email("") is None
    assert normalize_email(None) is None


@pytest.mark.parametrize(
    "name",
    ["Nordic Holding AS", "Acme Ltd.", "Müller GmbH", "Dutch Trading B.V.", "Paris SARL", "Helsinki Oy", "Foo AS (under stiftelse)"],
)
def test_corporate_suffixes_detected(name: str) -> None:
    """Legal-form suffixes are matched as the trailing word, with or without a dot."""
    assert has_corporate_suffix(name)


@pytest.mark.parametrize("name", ["Bob Smith", "Asgeir Hansen", "Ltd Stevens"])
def test_person_names_have_no_suffix(name: str) -> None:
    """Suffix words only count at the end of the name."""
    assert not has_corporate_suffix(name)


def test_determine_entity_type_priority() -> None:
    """Date of birth beats registration number, which beats the name heuristic."""
    assert determine_entity_type("910111222", "1980-05-01", "Odd AS") == "person"
    assert determine_entity_type("910111222", None, "Bob Smith") == "company"
    assert determine_entity_type(None, None, "Nordic Holding AS") == "company"
    assert determine_entity_type(None, None, "Bob Smith") == "person"
    assert determine_entity_type(None, None, None) == "person"


def test_extra_suffixes_extend_the_dictionary() -> None:
    """Configured suffixes are added on top of the built-in list."""
    suffixes = corporate_suffixes(["Stiftung", " e.G. "])

    assert determine_entity_type(None, None, "Kunst Stiftung", suffixes) == "company"
    assert has_corporate_suffix("Bauern e.G.", suffixes)
    assert determine_entity_type(None, None, "Kunst Stiftung") == "person"


def test_header_aliases_are_language_independent() -> None:
    """Norwegian and English headers resolve to the same canonical column."""
    assert normalize_header(" Org. No./Date  of birth ") == "org no date of birth"
    assert resolve_column("Navn") == resolve_column("Name") == "name"
    assert resolve_column("Org nr") == resolve_column("Org no") == "org_dob"
    assert resolve_column("Antall aksjer") == resolve_column("Number of shares") == "num_shares"
    assert resolve_column("Unknown column") is None
    assert resolve_share_class("A-aksjer") == "A-shares"
