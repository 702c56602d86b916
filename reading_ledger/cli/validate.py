from __future__ import annotations

from datetime import date

from reading_ledger.cli.common import open_ledger, report_error
from reading_ledger.engine.errors import LedgerError
from reading_ledger.engine.validation import validate


def main() -> int:
    coordinator, _, meta = open_ledger(create_config=False)

    print(f"config: {meta.get('path')}")
    if meta.get("error"):
        print(f"config error: {meta.get('error')}")
    print(f"ledger: {meta.get('ledger')}")

    try:
        ledger = coordinator.read_persisted()
    except LedgerError as e:
        return report_error(e)

    if ledger is None:
        print("no ledger yet")
        return 0

    report = validate(ledger, today=date.today())
    for issue in report.issues:
        print(f"error: {issue}")
    for warning in report.warnings:
        print(f"warning: {warning}")
    print(f"valid: {'yes' if report.is_valid else 'no'} ({len(ledger.entries)} entries)")
    return 0 if report.is_valid else 1
