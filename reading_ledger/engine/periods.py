from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from .dates import days_between, format_day
from .types import BookInfo, ReadingPeriod

BookLookup = Callable[[int], BookInfo | None]


@dataclass
class PeriodStats:
    total_books: int
    total_days: int
    unique_days: int
    average_days_per_book: int
    overlapping_periods: int


def synthesize_period(
    *, book_id: int, start: date, end: date, lookup: BookLookup | None = None
) -> ReadingPeriod:
    """Build a period for a book, resolving title/author through the catalog."""

    if start > end:
        raise ValueError(f"period for book {book_id} starts after it ends: {start} > {end}")

    info = lookup(book_id) if lookup is not None else None
    return ReadingPeriod(
        book_id=book_id,
        title=info.title if info is not None else "",
        author=info.author if info is not None else "",
        start=format_day(start),
        end=format_day(end),
        # Inclusive of both ends.
        total_days=days_between(start, end) + 1,
    )


def book_ids_for_day(day: date, periods: Iterable[ReadingPeriod]) -> list[int]:
    """Every book whose period covers `day`, in period order, without repeats."""

    seen: list[int] = []
    for period in periods:
        if period.covers(day) and period.book_id not in seen:
            seen.append(period.book_id)
    return seen


def generate_reading_days(periods: Iterable[ReadingPeriod]) -> set[str]:
    days: set[str] = set()
    for period in periods:
        current = period.start_date
        while current <= period.end_date:
            days.add(format_day(current))
            current += timedelta(days=1)
    return days


def period_stats(periods: list[ReadingPeriod]) -> PeriodStats:
    total_days = sum(p.total_days for p in periods)

    overlapping = 0
    for i, first in enumerate(periods):
        for second in periods[i + 1 :]:
            if first.start_date <= second.end_date and second.start_date <= first.end_date:
                overlapping += 1

    return PeriodStats(
        total_books=len(periods),
        total_days=total_days,
        unique_days=len(generate_reading_days(periods)),
        average_days_per_book=round(total_days / len(periods)) if periods else 0,
        overlapping_periods=overlapping,
    )
