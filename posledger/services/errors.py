"""
Ledger error taxonomy.

Every error raised by the engine services derives from LedgerError and carries
a `details` dict (product id/name, requested vs. available quantities, ids) so a
caller can render a user-facing message. Raising any of these inside a unit of
work rolls the whole unit back.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for engine errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(LedgerError):
    """Malformed input (non-positive quantity, unknown payment method, ...)."""


class NotFoundError(LedgerError):
    status_code = 404


class InvalidStateError(LedgerError):
    """Operation attempted from the wrong lifecycle state."""
    status_code = 409


class InsufficientStockError(LedgerError):
    status_code = 409


class InsufficientPaymentError(LedgerError):
    pass


class OverReturnError(LedgerError):
    status_code = 409


class AlreadyVerifiedError(LedgerError):
    status_code = 409


class AlreadyProcessedError(LedgerError):
    status_code = 409


class AlreadySyncedError(LedgerError):
    status_code = 409


class IneligibleError(LedgerError):
    """Return window or status prerequisites unmet."""
    status_code = 422


class SystemCategoryError(LedgerError):
    status_code = 409
