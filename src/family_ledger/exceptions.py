"""Custom exceptions for Family Ledger."""

from decimal import Decimal


class FamilyLedgerError(Exception):
    """Base exception for all Family Ledger errors."""

    pass


class ConfigurationError(FamilyLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class InvalidRequestError(FamilyLedgerError):
    """Raised when a request breaks a business rule (bad split, bad amount...)."""

    pass


class OverSettlementError(InvalidRequestError):
    """Raised when a settlement amount exceeds the outstanding balance."""

    def __init__(self, amount: Decimal, max_allowed: Decimal, message: str | None = None):
        self.amount = amount
        self.max_allowed = max_allowed
        super().__init__(
            message
            or f"Settlement amount {amount} exceeds the outstanding balance "
            f"(at most {max_allowed})"
        )


class NotFoundError(FamilyLedgerError):
    """Raised when a split, settlement or item does not exist in the workspace."""

    def __init__(self, kind: str, identifier: int | str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class PersistenceError(FamilyLedgerError):
    """Raised when the database fails during a write.

    Writes run inside a transaction, so by the time this is raised the
    transaction has been rolled back and nothing was written.
    """

    def __init__(self, message: str, written: bool = False):
        self.written = written
        super().__init__(message)
