"""Domain models for parsed registers, snapshots, diffs and import results."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional


EntityType = Literal["company", "person"]
MatchMethod = Literal["org_number", "date_of_birth", "name"]
ConflictKind = Literal["name_mismatch", "email_mismatch", "org_number_format", "possible_wrong_org"]
ShareClassChangeType = Literal["added", "removed", "changed", "unchanged"]
ShareholderChangeType = Literal["new", "exited", "increased", "decreased", "class_changed", "unchanged"]

Number = int | float


# ── Parsed (file scoped) ───────────────────────────────


@dataclass(slots=True)
class ParsedShareClass:
    """A share class block from the top of a register export."""

    name: str
    total_shares: Optional[Number] = None
    nominal_value: Optional[Number] = None
    share_capital: Optional[Number] = None
    total_votes: Optional[Number] = None
    remarks: Optional[str] = None


@dataclass(slots=True)
class ClassHolding:
    """Shares held by one shareholder in one share class."""

    class_name: str
    num_shares: Optional[Number] = None
    share_numbers: Optional[str] = None
    total_cost_price: Optional[Number] = None
    entry_date: Optional[str] = None


@dataclass(slots=True)
class ParsedShareholder:
    """One shareholder row of the register table."""

    name: str
    org_number: Optional[str] = None
    date_of_birth: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    representative_name: Optional[str] = None
    total_shares: Optional[Number] = None
    ownership_pct: Optional[Number] = None
    total_votes: Optional[Number] = None
    voting_power_pct: Optional[Number] = None
    total_cost_price: Optional[Number] = None
    entry_date: Optional[str] = None
    is_pledged: bool = False
    pledge_details: Optional[str] = None
    gender: Optional[str] = None
    is_employee: bool = False
    class_holdings: list[ClassHolding] = field(default_factory=list)


@dataclass(slots=True)
class ParsedCompany:
    """A whole register export: company header, share classes and shareholders."""

    name: str
    org_number: Optional[str]
    total_shares: Optional[Number] = None
    total_votes: Optional[Number] = None
    nominal_value: Optional[Number] = None
    share_capital: Optional[Number] = None
    share_classes: list[ParsedShareClass] = field(default_factory=list)
    shareholders: list[ParsedShareholder] = field(default_factory=list)


# ── Snapshot ───────────────────────────────────────────


@dataclass(slots=True)
class SnapshotCompany:
    share_capital: Optional[float] = None
    total_shares: Optional[int] = None
    total_votes: Optional[int] = None
    nominal_value: Optional[float] = None


@dataclass(slots=True)
class SnapshotShareClass:
    id: str
    name: str
    total_shares: Optional[int] = None
    nominal_value: Optional[float] = None
    share_capital: Optional[float] = None
    total_votes: Optional[int] = None
    remarks: Optional[str] = None


@dataclass(slots=True)
class SnapshotHolding:
    """A holding row with the shareholder and share class denormalized onto it."""

    shareholder_id: str
    shareholder_name: str
    shareholder_org_number: Optional[str] = None
    share_class_id: Optional[str] = None
    share_class_name: Optional[str] = None
    num_shares: Optional[int] = None
    ownership_pct: Optional[float] = None
    voting_power_pct: Optional[float] = None
    total_cost_price: Optional[float] = None
    entry_date: Optional[str] = None
    share_numbers: Optional[str] = None


@dataclass(slots=True)
class SnapshotData:
    """Point-in-time projection of a company's persisted ownership state."""

    company: SnapshotCompany
    share_classes: list[SnapshotShareClass] = field(default_factory=list)
    holdings: list[SnapshotHolding] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SnapshotData":
        return cls(
            company=SnapshotCompany(**data["company"]),
            share_classes=[SnapshotShareClass(**row) for row in data.get("share_classes", [])],
            holdings=[SnapshotHolding(**row) for row in data.get("holdings", [])],
        )


# ── Diff ───────────────────────────────────────────────


@dataclass(slots=True)
class ShareClassFigures:
    total_shares: Optional[Number] = None
    nominal_value: Optional[Number] = None
    share_capital: Optional[Number] = None


@dataclass(slots=True)
class ShareClassChange:
    type: ShareClassChangeType
    name: str
    before: Optional[ShareClassFigures] = None
    after: Optional[ShareClassFigures] = None


@dataclass(slots=True)
class HoldingChange:
    share_class_name: str
    shares_before: Number = 0
    shares_after: Number = 0
    ownership_pct_before: Number = 0
    ownership_pct_after: Number = 0


@dataclass(slots=True)
class ShareholderChange:
    type: ShareholderChangeType
    shareholder_name: str
    shareholder_id: Optional[str] = None
    org_number: Optional[str] = None
    holding_changes: list[HoldingChange] = field(default_factory=list)
    total_shares_before: Number = 0
    total_shares_after: Number = 0
    ownership_pct_before: Number = 0
    ownership_pct_after: Number = 0


@dataclass(slots=True)
class DiffSummary:
    new_shareholders: int = 0
    exited_shareholders: int = 0
    changed_holdings: int = 0
    unchanged_holdings: int = 0
    new_share_classes: int = 0
    removed_share_classes: int = 0
    changed_share_classes: int = 0


@dataclass(slots=True)
class ImportDiff:
    company_name: str
    company_org_number: Optional[str]
    is_first_import: bool
    share_class_changes: list[ShareClassChange] = field(default_factory=list)
    shareholder_changes: list[ShareholderChange] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)


# ── Import results ─────────────────────────────────────


@dataclass(slots=True)
class Conflict:
    """A data-quality issue found while resolving a shareholder, for human review."""

    kind: ConflictKind
    shareholder_name: str
    org_number: Optional[str]
    details: str


@dataclass(slots=True)
class ImportResult:
    company_name: str
    company_org_number: Optional[str]
    shareholders_imported: int
    holdings_created: int
    conflicts: list[Conflict] = field(default_factory=list)
    company_id: Optional[str] = None
    import_batch_id: Optional[str] = None


@dataclass(slots=True)
class PreviewResult:
    diff: ImportDiff
    existing_company_id: Optional[str]
    parsed: ParsedCompany


@dataclass(slots=True)
class ConfirmResult:
    result: ImportResult
    diff: ImportDiff
    snapshot_id: Optional[str] = None
    transactions_created: int = 0


__all__ = [
    "EntityType",
    "MatchMethod",
    "ConflictKind",
    "ParsedShareClass",
    "ClassHolding",
    "ParsedShareholder",
    "ParsedCompany",
    "SnapshotCompany",
    "SnapshotShareClass",
    "SnapshotHolding",
    "SnapshotData",
    "ShareClassFigures",
    "ShareClassChange",
    "HoldingChange",
    "ShareholderChange",
    "DiffSummary",
    "ImportDiff",
    "Conflict",
    "ImportResult",
    "PreviewResult",
    "ConfirmResult",
]
