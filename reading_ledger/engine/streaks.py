from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .dates import parse_day, previous_day, to_day
from .types import DEFAULT_GRACE_DAYS, Ledger, SourceType


@dataclass
class StreakStats:
    current_streak: int = 0
    longest_streak: int = 0
    last_read_date: date | None = None


@dataclass
class ReadingStatistics:
    total_reading_days: int = 0
    total_books: int = 0
    source_breakdown: dict[str, int] = field(
        default_factory=lambda: {t.value: 0 for t in SourceType}
    )
    earliest: str | None = None
    latest: str | None = None


def _distinct_days(source: Ledger | Iterable[str]) -> set[date]:
    if isinstance(source, Ledger):
        keys: Iterable[str] = set(source.reading_days) | source.entry_dates()
    else:
        keys = source

    days: set[date] = set()
    for key in keys:
        day = parse_day(key)
        if day is not None:
            days.add(day)
    return days


def longest_streak(source: Ledger | Iterable[str]) -> int:
    ordered = sorted(_distinct_days(source))
    if not ordered:
        return 0

    longest = 1
    run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if cur - prev == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
    return longest


def current_streak(
    source: Ledger | Iterable[str],
    today: date | datetime,
    *,
    grace_days: int = DEFAULT_GRACE_DAYS,
) -> int:
    """Count consecutive reading days ending at today, or within the grace window.

    With the default single grace day, a streak stays alive when yesterday was
    read but today not yet; two missed days break it.
    """

    if grace_days < 0:
        raise ValueError("grace_days must be >= 0")

    days = _distinct_days(source)
    anchor = to_day(today)

    for _ in range(grace_days + 1):
        if anchor in days:
            break
        anchor = previous_day(anchor)
    else:
        return 0

    count = 0
    while anchor in days:
        count += 1
        anchor = previous_day(anchor)
    return count


def last_read_date(source: Ledger | Iterable[str]) -> date | None:
    days = _distinct_days(source)
    return max(days) if days else None


def calculate_streaks(
    source: Ledger | Iterable[str],
    today: date | datetime,
    *,
    grace_days: int = DEFAULT_GRACE_DAYS,
) -> StreakStats:
    days = _distinct_days(source)
    keys = [d.isoformat() for d in days]
    return StreakStats(
        current_streak=current_streak(keys, today, grace_days=grace_days),
        longest_streak=longest_streak(keys),
        last_read_date=max(days) if days else None,
    )


def reading_statistics(ledger: Ledger) -> ReadingStatistics:
    stats = ReadingStatistics()
    books: set[int] = set()

    for entry in ledger.entries.values():
        books.update(entry.book_ids)
        books.update(s.book_id for s in entry.sources if s.book_id is not None)
        # Each source type counts once per day.
        for source_type in {s.type for s in entry.sources}:
            stats.source_breakdown[source_type.value] += 1

    dates = sorted(ledger.entry_dates())
    stats.total_reading_days = len(dates)
    stats.total_books = len(books)
    if dates:
        stats.earliest = dates[0]
        stats.latest = dates[-1]
    return stats
