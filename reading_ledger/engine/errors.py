from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the ledger engine."""


class ValidationError(LedgerError):
    def __init__(self, message: str, issues: list[str] | None = None):
        super().__init__(message)
        self.issues: list[str] = list(issues or [])


class PreconditionError(LedgerError):
    def __init__(self, message: str, *, date: str | None = None):
        super().__init__(message)
        self.date = date


class ConcurrencyError(LedgerError):
    pass


class PersistenceError(LedgerError):
    pass
