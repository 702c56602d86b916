from __future__ import annotations

from datetime import date

from reading_ledger.cli.common import open_ledger, report_error
from reading_ledger.engine.dates import parse_day
from reading_ledger.engine.errors import LedgerError


def _resolve_day(value: str | None) -> date | None:
    if value is None or value == "today":
        return date.today()
    return parse_day(value)


def mark(*, day: str | None = None, note: str | None = None, book_id: int | None = None) -> int:
    target = _resolve_day(day)
    if target is None:
        print(f"invalid date: {day!r} (expected YYYY-MM-DD)")
        return 2

    coordinator, _, _ = open_ledger()
    try:
        ledger = coordinator.mark_read(target, book_id=book_id, notes=note)
    except LedgerError as e:
        return report_error(e)

    print(f"marked {target.isoformat()} ({len(ledger.entries)} reading days)")
    return 0


def unmark(*, day: str) -> int:
    if parse_day(day) is None:
        print(f"invalid date: {day!r} (expected YYYY-MM-DD)")
        return 2

    coordinator, _, _ = open_ledger()
    try:
        ledger = coordinator.remove_entry(day)
    except LedgerError as e:
        return report_error(e)

    print(f"unmarked {day} ({len(ledger.entries)} reading days)")
    return 0


def note(*, day: str, text: str) -> int:
    coordinator, _, _ = open_ledger()
    try:
        coordinator.update_entry(day, notes=text)
    except LedgerError as e:
        return report_error(e)

    print(f"updated notes for {day}")
    return 0
