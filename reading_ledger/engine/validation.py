from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime

from .dates import parse_day, to_day
from .types import CURRENT_VERSION, Ledger, SourceType

MAX_NOTES_LENGTH = 1000


@dataclass
class ValidationReport:
    is_valid: bool = True
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate(ledger: Ledger, *, today: date | datetime) -> ValidationReport:
    """Check a ledger's structural and temporal invariants.

    Every violation is collected; `issues` are errors that make the ledger
    unfit to commit, `warnings` are reported but never block validity.
    """

    report = ValidationReport()
    today_key = to_day(today).isoformat()

    if ledger.version > CURRENT_VERSION:
        report.issues.append(
            f"ledger version {ledger.version} is newer than supported version {CURRENT_VERSION}"
        )

    mismatched = [
        f"{key} -> {entry.date}" for key, entry in ledger.entries.items() if key != entry.date
    ]
    if mismatched:
        report.issues.append(f"entries stored under the wrong date: {', '.join(mismatched)}")

    counts = Counter(entry.date for entry in ledger.entries.values())
    duplicates = sorted(day for day, n in counts.items() if n > 1)
    if duplicates:
        report.issues.append(f"duplicate reading day entries: {', '.join(duplicates)}")

    invalid = [entry.date for entry in ledger.entries.values() if parse_day(entry.date) is None]
    if invalid:
        report.issues.append(
            f"{len(invalid)} entries have invalid date format: {', '.join(map(str, invalid))}"
        )

    backwards = [e.date for e in ledger.entries.values() if e.modified_at < e.created_at]
    if backwards:
        report.issues.append(
            f"{len(backwards)} entries modified before they were created: {', '.join(backwards)}"
        )

    # Well-formed keys sort chronologically.
    future = sorted(
        e.date for e in ledger.entries.values() if parse_day(e.date) and e.date > today_key
    )
    if future:
        report.warnings.append(f"{len(future)} entries have future dates: {', '.join(future)}")

    entry_dates = ledger.entry_dates()
    missing_from_entries = sorted(set(ledger.reading_days) - entry_dates)
    missing_from_days = sorted(entry_dates - set(ledger.reading_days))
    if missing_from_entries:
        report.warnings.append(
            f"{len(missing_from_entries)} reading days missing from detailed entries"
        )
    if missing_from_days:
        report.warnings.append(
            f"{len(missing_from_days)} detailed entries missing from reading days set"
        )

    untagged = sorted(
        e.date
        for e in ledger.entries.values()
        if not e.book_ids and any(s.type is SourceType.BOOK_COMPLETION for s in e.sources)
    )
    if untagged:
        report.warnings.append(
            f"{len(untagged)} entries marked as book completions have no book ids"
        )

    long_notes = sorted(
        e.date for e in ledger.entries.values() if e.notes and len(e.notes) > MAX_NOTES_LENGTH
    )
    if long_notes:
        report.warnings.append(f"{len(long_notes)} entries have very long notes")

    report.is_valid = not report.issues
    return report
