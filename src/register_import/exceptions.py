"""Exceptions raised by the register import pipeline."""
from __future__ import annotations


class RegisterImportError(Exception):
    """Base class for errors that abort an import or preview."""


class RegisterParseError(RegisterImportError, ValueError):
    """Raised when a file does not look like a shareholder register."""


class MissingOrgNumberError(RegisterImportError, ValueError):
    """Raised when the parsed company carries no registration number."""

    def __init__(self, company_name: str):
        self.company_name = company_name
        super().__init__(f"Company has no org number: {company_name}")


class ConcurrentImportError(RegisterImportError, RuntimeError):
    """Raised when another import for the same company committed first."""

    def __init__(self, org_number: str, expected_generation: int | None = None):
        self.org_number = org_number
        self.expected_generation = expected_generation
        if expected_generation is None:
            message = f"Company {org_number} was created by a concurrent import."
        else:
            message = (
                f"Company {org_number} was modified by a concurrent import "
                f"(expected generation {expected_generation})."
            )
        super().__init__(message)


class CompanyNotFoundError(RegisterImportError, LookupError):
    """Raised when a snapshot is requested for an unknown company."""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")


__all__ = [
    "RegisterImportError",
    "RegisterParseError",
    "MissingOrgNumberError",
    "ConcurrentImportError",
    "CompanyNotFoundError",
]
