from __future__ import annotations

from datetime import date

from reading_ledger.cli.common import open_ledger, report_error
from reading_ledger.engine.errors import LedgerError
from reading_ledger.engine.streaks import calculate_streaks, reading_statistics


def _days_label(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


def main() -> int:
    today = date.today()
    coordinator, config, meta = open_ledger(create_config=False)

    try:
        ledger = coordinator.read_persisted()
    except LedgerError as e:
        return report_error(e)

    print("reading-ledger status")
    print(f"ledger: {meta.get('ledger')}")
    if meta.get("error"):
        print(f"config error: {meta.get('error')}")

    if ledger is None:
        print("no reading days recorded yet")
        return 0

    stats = calculate_streaks(ledger, today, grace_days=config.grace_days)
    totals = reading_statistics(ledger)

    print(f"current streak: {_days_label(stats.current_streak)}")
    print(f"longest streak: {_days_label(stats.longest_streak)}")
    last = stats.last_read_date.isoformat() if stats.last_read_date else "never"
    print(f"last read: {last}")
    print(f"read today: {'yes' if ledger.get(today.isoformat()) else 'no'}")
    print(
        "totals: "
        f"days={totals.total_reading_days} "
        f"books={totals.total_books} "
        + " ".join(f"{k}={v}" for k, v in totals.source_breakdown.items())
    )
    print(f"settings: grace_days={config.grace_days} commit_log={config.commit_log}")
    return 0


def history(*, start: str | None = None, end: str | None = None) -> int:
    coordinator, _, _ = open_ledger(create_config=False)

    try:
        ledger = coordinator.read_persisted()
    except LedgerError as e:
        return report_error(e)

    entries = []
    if ledger is not None:
        entries = ledger.entries_between(start or "0000-01-01", end or "9999-12-31")
    if not entries:
        print("no entries in range")
        return 0

    for entry in entries:
        kinds = ",".join(sorted({s.type.value for s in entry.sources}))
        books = ",".join(str(b) for b in sorted(entry.book_ids)) or "-"
        line = f"{entry.date}  sources={kinds}  books={books}"
        if entry.notes:
            line += f"  notes={entry.notes!r}"
        print(line)
    return 0
