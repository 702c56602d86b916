from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Final

from .dates import written_day


CURRENT_VERSION: Final[int] = 1
DEFAULT_GRACE_DAYS: Final[int] = 1


class SourceType(Enum):
    MANUAL = "manual"
    BOOK_COMPLETION = "book_completion"
    PROGRESS_UPDATE = "progress_update"


def utc_now() -> datetime:
    """Current instant in UTC, truncated to milliseconds.

    Timestamps are persisted with millisecond precision, so anything finer
    would not survive a save/load cycle.
    """
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def midnight_utc(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


@dataclass
class Config:
    grace_days: int = DEFAULT_GRACE_DAYS
    commit_log: bool = True
    store_path: str | None = None


@dataclass
class ActivitySource:
    type: SourceType
    timestamp: datetime
    book_id: int | None = None
    metadata: dict = field(default_factory=dict)


# Order of an entry's sources, highest first.
SOURCE_PRIORITY: Final[dict[SourceType, int]] = {
    SourceType.MANUAL: 3,
    SourceType.BOOK_COMPLETION: 2,
    SourceType.PROGRESS_UPDATE: 1,
}


def deduplicate_sources(sources: list[ActivitySource]) -> list[ActivitySource]:
    """Keep the first source per (type, book id), highest priority first."""

    unique: dict[tuple[SourceType, int | None], ActivitySource] = {}
    for source in sources:
        unique.setdefault((source.type, source.book_id), source)
    return sorted(unique.values(), key=lambda s: SOURCE_PRIORITY[s.type], reverse=True)


@dataclass
class ReadingDayEntry:
    date: str
    created_at: datetime
    modified_at: datetime
    sources: list[ActivitySource] = field(default_factory=list)
    book_ids: set[int] = field(default_factory=set)
    notes: str | None = None


@dataclass
class ReadingPeriod:
    book_id: int
    title: str
    author: str
    # Kept exactly as written; legacy data may hold full timestamps.
    start: str
    end: str
    total_days: int

    @property
    def start_date(self) -> date:
        return written_day(self.start)

    @property
    def end_date(self) -> date:
        return written_day(self.end)

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class BookInfo:
    title: str
    author: str


@dataclass
class Ledger:
    version: int
    last_calculated: datetime
    last_sync_date: datetime
    # Canonical per-date records; insertion order is preserved on save.
    entries: dict[str, ReadingDayEntry] = field(default_factory=dict)
    # Derived from `entries`; only rebuilt by engine.sync.synchronize().
    reading_days: frozenset[str] = frozenset()
    book_periods: list[ReadingPeriod] = field(default_factory=list)

    def get(self, day: str) -> ReadingDayEntry | None:
        return self.entries.get(day)

    def entry_dates(self) -> set[str]:
        return {entry.date for entry in self.entries.values()}

    def entries_between(self, start: str, end: str) -> list[ReadingDayEntry]:
        """Entries dated within [start, end], sorted by date."""
        return sorted(
            (e for e in self.entries.values() if start <= e.date <= end),
            key=lambda e: e.date,
        )
