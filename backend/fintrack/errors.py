"""
Ledger error types.

Every failure surfaced by the ledger and import services carries a
machine-readable ``kind`` and a human-readable ``message`` so the HTTP
layer can translate it without inspecting exception text.
"""
from typing import List, Optional


class LedgerError(Exception):
    """Base exception for ledger and import operations."""

    kind = "ledger_error"

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerError):
    """Referenced account, category or transaction does not exist."""

    kind = "not_found"


class InvalidInputError(LedgerError):
    """Malformed amount, polarity mismatch, unsupported file, unresolved category."""

    kind = "invalid_input"


class ClassifierError(LedgerError):
    """External statement classifier failed or returned nothing usable."""

    kind = "classifier_error"

    def __init__(self, message: str, no_transactions: bool = False, details: Optional[List[str]] = None):
        super().__init__(message, details)
        self.no_transactions = no_transactions

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["no_transactions"] = self.no_transactions
        return payload


class ConflictError(LedgerError):
    """Account or category still referenced by transactions."""

    kind = "conflict"
