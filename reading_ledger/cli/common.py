from __future__ import annotations

from pathlib import Path

from reading_ledger.engine.errors import (
    ConcurrencyError,
    LedgerError,
    PersistenceError,
    PreconditionError,
    ValidationError,
)
from reading_ledger.engine.transactions import TransactionCoordinator
from reading_ledger.engine.types import Config
from reading_ledger.store import CommitLogger, JsonFileGateway, ledger_path, load_config


def open_ledger(*, create_config: bool = True) -> tuple[TransactionCoordinator, Config, dict]:
    config, meta = load_config(create_if_missing=create_config)
    path = Path(config.store_path) if config.store_path else ledger_path()
    journal = CommitLogger() if config.commit_log else None
    coordinator = TransactionCoordinator(JsonFileGateway(path), journal=journal)
    meta["ledger"] = str(path)
    return coordinator, config, meta


def report_error(error: LedgerError) -> int:
    """Print a user-facing message for an engine error and return the exit code."""

    if isinstance(error, ConcurrencyError):
        print("ledger is busy with another change; try again shortly")
        return 75
    if isinstance(error, PreconditionError):
        print(f"not applied: {error}")
        return 1
    if isinstance(error, ValidationError):
        print(f"rejected: {error}")
        for issue in error.issues:
            print(f"  - {issue}")
        return 1
    if isinstance(error, PersistenceError):
        print(f"storage error (may be temporary): {error}")
        return 74
    print(f"error: {error}")
    return 1
