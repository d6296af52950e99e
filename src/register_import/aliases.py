"""Header vocabularies for register exports.

Each logical field maps to the header texts it is known to appear under, in
Norwegian and English. Lookups compare normalized text: lowercased, ``.``,
``,`` and ``/`` turned into spaces, whitespace collapsed.
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Optional

_PUNCTUATION = re.compile(r"[.,/]")
_WHITESPACE = re.compile(r"\s+")


def normalize_header(text: str) -> str:
    collapsed = _PUNCTUATION.sub(" ", text.lower().strip())
    return _WHITESPACE.sub(" ", collapsed).strip()


COLUMN_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "name": ("name", "navn", "aksjonær", "aksjonaer", "shareholder", "eier", "owner"),
    "org_dob": (
        "org no date of birth", "org no /date of birth",
        "org. no./date of birth", "org no./date of birth",
        "org  no  fødselsdato", "org  no  foedselsdato",
        "orgnr fødselsdato", "orgnr foedselsdato", "orgnr/fødselsdato",
        "org no", "org nr", "orgnr", "org number", "org nummer", "organisasjonsnummer",
        "organisation number", "organization number", "registration number",
        "date of birth", "fødselsdato",
    ),
    "email": ("email", "e-post", "epost", "e-mail"),
    "phone": ("phone number", "phone", "telefon", "tlf", "telefonnummer", "mobilnummer"),
    "address": ("address", "adresse", "postadresse"),
    "country": ("country", "land"),
    "postal_code": ("postal code", "postnummer", "postnr", "zip"),
    "representative": ("representative name", "representant", "fullmektig"),
    "num_shares": ("number of shares", "antall aksjer", "aksjer", "shares"),
    "ownership": ("ownership", "eierandel", "eierandel %", "ownership %"),
    "num_votes": ("number of votes", "antall stemmer", "stemmer", "votes"),
    "voting_power": ("voting power", "stemmeandel", "stemmeandel %", "voting power %"),
    "total_cost_price": ("total cost price", "total kostpris", "kostpris", "cost price"),
    "entry_date": (
        "entry date", "dato for innføring", "dato for innfoering", "inngangsdato", "registration date",
    ),
    "share_number": ("share number", "share numbers", "aksjenummer", "aksjenumre"),
    "pledged": ("pledged", "pantsatt"),
    "pledge_details": ("pledge details", "detaljer pantsettelse", "pantedetaljer", "pantsettelse"),
    "gender": ("gender", "kjønn", "kjoenn"),
    "employee": ("employee", "ansatt"),
    "other_remarks": ("other remarks", "andre merknader", "merknader", "kommentarer", "comments"),
})

SHARE_CLASS_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "Common shares": ("common shares", "ordinære aksjer", "ordinaere aksjer", "stamaksjer", "aksjer"),
    "A-shares": ("a-shares", "a-aksjer", "klasse a", "class a"),
    "B-shares": ("b-shares", "b-aksjer", "klasse b", "class b"),
    "Preference shares": ("preference shares", "preferanseaksjer", "pref shares"),
})

COMPANY_FIELD_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "num_shares": ("number of shares", "antall aksjer", "aksjer totalt", "total shares"),
    "nominal_value": ("nominal value", "pålydende", "paalydende", "nominell verdi"),
    "share_capital": ("share capital", "aksjekapital"),
    "num_votes": ("number of votes", "antall stemmer", "stemmer totalt", "total votes"),
    "total_share_capital": ("total share capital", "total aksjekapital"),
    "remarks": ("remarks", "merknader", "kommentarer"),
})

# Sub-columns that may follow a share class column in the shareholder table.
CLASS_SUB_COLUMNS = frozenset({"share_number", "total_cost_price", "entry_date"})


def _build_lookup(aliases: Mapping[str, tuple[str, ...]]) -> Mapping[str, str]:
    lookup: dict[str, str] = {}
    for canonical, variants in aliases.items():
        for variant in variants:
            lookup[normalize_header(variant)] = canonical
    return MappingProxyType(lookup)


_COLUMN_LOOKUP = _build_lookup(COLUMN_ALIASES)
_COMPANY_FIELD_LOOKUP = _build_lookup(COMPANY_FIELD_ALIASES)
_SHARE_CLASS_LOOKUP = _build_lookup(SHARE_CLASS_ALIASES)


def resolve_column(text: Optional[str]) -> Optional[str]:
    """Return the canonical column for a header cell, or ``None``."""

    if not text:
        return None
    return _COLUMN_LOOKUP.get(normalize_header(text))


def resolve_company_field(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return _COMPANY_FIELD_LOOKUP.get(normalize_header(text))


def resolve_share_class(text: Optional[str]) -> Optional[str]:
    """Return the canonical share class name (e.g. ``A-shares``), or ``None``."""

    if not text:
        return None
    return _SHARE_CLASS_LOOKUP.get(normalize_header(text))


__all__ = [
    "COLUMN_ALIASES",
    "SHARE_CLASS_ALIASES",
    "COMPANY_FIELD_ALIASES",
    "CLASS_SUB_COLUMNS",
    "normalize_header",
    "resolve_column",
    "resolve_company_field",
    "resolve_share_class",
]
