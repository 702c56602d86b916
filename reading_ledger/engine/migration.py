"""One-time upgrade of legacy reading history into the versioned ledger.

Two legacy shapes are understood:

* basic: a bare ``readingDays`` array plus ``bookPeriods`` and
  ``lastCalculated``; no provenance per day.
* enhanced (unversioned): ``readingDayEntries`` already exist but the
  document carries no ``version``/``lastSyncDate``.

Legacy validation was looser than ours, so individual malformed values are
skipped and logged instead of failing the whole migration. Nothing is
invented that cannot be derived from the input.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime

from .dates import parse_day, parse_instant, written_day
from .errors import PersistenceError, ValidationError
from .periods import BookLookup, book_ids_for_day
from .types import (
    CURRENT_VERSION,
    ActivitySource,
    Ledger,
    ReadingDayEntry,
    ReadingPeriod,
    SourceType,
    deduplicate_sources,
    midnight_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

FORMAT_UNKNOWN = "unknown"
FORMAT_BASIC_LEGACY = "basic_legacy"
FORMAT_ENHANCED_LEGACY = "enhanced_legacy"
FORMAT_ENHANCED_CURRENT = "enhanced_current"

MIGRATION_ORIGIN = "legacy_migration"

# Older builds tagged entries with short source names.
_SOURCE_ALIASES = {
    "book": SourceType.BOOK_COMPLETION,
    "progress": SourceType.PROGRESS_UPDATE,
}


@dataclass
class FormatDetection:
    format: str
    version: int = 0
    data_points: int = 0
    issues: list[str] = field(default_factory=list)


@dataclass
class MigrationResult:
    ledger: Ledger
    data_points_migrated: int = 0
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    preserved_metadata: dict = field(default_factory=dict)


def detect_format(raw: object) -> FormatDetection:
    if not isinstance(raw, Mapping):
        return FormatDetection(FORMAT_UNKNOWN, issues=["invalid data: not an object"])

    entries = raw.get("readingDayEntries")

    if raw.get("version") and isinstance(entries, list) and raw.get("lastSyncDate"):
        version = raw["version"] if isinstance(raw["version"], int) else 0
        return FormatDetection(FORMAT_ENHANCED_CURRENT, version=version, data_points=len(entries))

    if isinstance(entries, list):
        return FormatDetection(FORMAT_ENHANCED_LEGACY, data_points=len(entries))

    if "readingDays" in raw or "currentStreak" in raw:
        days = raw.get("readingDays")
        count = len(days) if isinstance(days, list) else 0
        return FormatDetection(FORMAT_BASIC_LEGACY, data_points=count)

    return FormatDetection(FORMAT_UNKNOWN, issues=["unknown or unsupported data format"])


def is_legacy_document(raw: object) -> bool:
    return detect_format(raw).format in {FORMAT_BASIC_LEGACY, FORMAT_ENHANCED_LEGACY}


def create_empty(now: datetime | None = None) -> Ledger:
    stamp = now or utc_now()
    return Ledger(version=CURRENT_VERSION, last_calculated=stamp, last_sync_date=stamp)


def upgrade_version(ledger: Ledger, *, now: datetime | None = None) -> Ledger:
    # No structural changes between known versions yet; only the tag moves.
    return replace(ledger, version=CURRENT_VERSION, last_sync_date=now or utc_now())


def ensure_current(ledger: Ledger, *, now: datetime | None = None) -> Ledger:
    """Return `ledger` itself when already current, upgraded when older.

    A version newer than this build understands is refused rather than
    guessed at.
    """

    if ledger.version > CURRENT_VERSION:
        raise ValidationError(
            f"ledger version {ledger.version} is newer than supported version {CURRENT_VERSION}",
            [f"version {ledger.version} > {CURRENT_VERSION}"],
        )
    if ledger.version < CURRENT_VERSION:
        return upgrade_version(ledger, now=now)
    return ledger


def migrate_legacy(
    raw: Mapping, *, now: datetime | None = None, lookup: BookLookup | None = None
) -> MigrationResult:
    detection = detect_format(raw)
    if detection.format == FORMAT_UNKNOWN:
        raise ValidationError("cannot migrate unknown data format", detection.issues)
    if detection.format == FORMAT_ENHANCED_CURRENT:
        raise ValidationError("document is already in the current format; decode it instead")

    stamp = now or utc_now()
    result = MigrationResult(ledger=create_empty(stamp))

    anchor = parse_instant(raw.get("lastCalculated"))
    if anchor is None:
        result.warnings.append("lastCalculated missing or invalid; entries anchored to their own date")

    periods = _legacy_periods(raw.get("bookPeriods"), lookup=lookup, result=result)
    entries: dict[str, ReadingDayEntry] = {}

    if detection.format == FORMAT_ENHANCED_LEGACY:
        _migrate_enhanced_entries(raw["readingDayEntries"], entries, result)

    for key in _legacy_days(raw.get("readingDays"), result):
        if key in entries:
            continue
        entries[key] = _entry_from_legacy_day(key, periods, anchor)
        result.data_points_migrated += 1

    for name, target in (
        ("currentStreak", "legacy_current_streak"),
        ("longestStreak", "legacy_longest_streak"),
        ("lastReadDate", "legacy_last_read_date"),
    ):
        if raw.get(name) is not None:
            result.preserved_metadata[target] = raw[name]

    result.ledger = Ledger(
        version=CURRENT_VERSION,
        last_calculated=anchor or stamp,
        last_sync_date=stamp,
        entries=entries,
        reading_days=frozenset(entries),
        book_periods=periods,
    )

    logger.info(
        "migrated %s ledger: %d entries, %d skipped",
        detection.format,
        len(entries),
        len(result.skipped),
    )
    return result


def _legacy_days(value: object, result: MigrationResult) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PersistenceError(f"legacy readingDays must be an array, got {type(value).__name__}")

    days: list[str] = []
    for item in value:
        if parse_day(item) is None:
            logger.warning("skipping malformed legacy reading day %r", item)
            result.skipped.append(f"readingDays: {item!r}")
            continue
        if item not in days:
            days.append(item)
    return days


def _legacy_periods(
    value: object, *, lookup: BookLookup | None, result: MigrationResult
) -> list[ReadingPeriod]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PersistenceError(f"legacy bookPeriods must be an array, got {type(value).__name__}")

    periods: list[ReadingPeriod] = []
    for item in value:
        if not isinstance(item, Mapping):
            result.skipped.append(f"bookPeriods: {item!r}")
            continue

        book_id = item.get("bookId")
        start_text = item.get("startDate")
        end_text = item.get("endDate")
        start = written_day(start_text)
        end = written_day(end_text)
        if not _is_int(book_id) or start is None or end is None:
            logger.warning("skipping malformed legacy book period %r", item)
            result.skipped.append(f"bookPeriods: {item!r}")
            continue

        title = item.get("title")
        author = item.get("author")
        if (not isinstance(title, str) or not isinstance(author, str)) and lookup is not None:
            info = lookup(book_id)
            if info is not None:
                title = title if isinstance(title, str) else info.title
                author = author if isinstance(author, str) else info.author

        total_days = item.get("totalDays")
        periods.append(
            ReadingPeriod(
                book_id=book_id,
                title=title if isinstance(title, str) else "",
                author=author if isinstance(author, str) else "",
                start=start_text,
                end=end_text,
                total_days=total_days if _is_int(total_days) else (end - start).days + 1,
            )
        )
    return periods


def _entry_from_legacy_day(
    key: str, periods: list[ReadingPeriod], anchor: datetime | None
) -> ReadingDayEntry:
    day = parse_day(key)
    stamp = anchor or midnight_utc(day)
    book_ids = book_ids_for_day(day, periods)
    meta = {"origin": MIGRATION_ORIGIN}

    if book_ids:
        sources = [
            ActivitySource(SourceType.BOOK_COMPLETION, stamp, book_id=b, metadata=dict(meta))
            for b in book_ids
        ]
    else:
        sources = [ActivitySource(SourceType.MANUAL, stamp, metadata=dict(meta))]

    return ReadingDayEntry(
        date=key,
        created_at=stamp,
        modified_at=stamp,
        sources=sources,
        book_ids=set(book_ids),
    )


def _migrate_enhanced_entries(
    raw_entries: list, entries: dict[str, ReadingDayEntry], result: MigrationResult
) -> None:
    for item in raw_entries:
        key = item.get("date") if isinstance(item, Mapping) else None
        day = parse_day(key)
        if day is None:
            logger.warning("skipping malformed legacy entry %r", item)
            result.skipped.append(f"readingDayEntries: {item!r}")
            continue

        fallback = midnight_utc(day)
        raw_ids = item.get("bookIds")
        raw_sources = item.get("sources")
        book_ids = {b for b in raw_ids if _is_int(b)} if isinstance(raw_ids, list) else set()
        if not isinstance(raw_sources, list):
            raw_sources = []
        sources = [_legacy_source(s, fallback) for s in raw_sources]
        sources = [s for s in sources if s is not None]
        if not sources:
            kind = SourceType.BOOK_COMPLETION if book_ids else SourceType.MANUAL
            sources = [ActivitySource(kind, fallback, metadata={"origin": MIGRATION_ORIGIN})]

        stamps = [s.timestamp for s in sources]
        notes = item.get("notes") if isinstance(item.get("notes"), str) else None
        entry = ReadingDayEntry(
            date=key,
            created_at=min(stamps),
            modified_at=max(stamps),
            sources=deduplicate_sources(sources),
            book_ids=book_ids,
            notes=notes,
        )

        existing = entries.get(key)
        if existing is None:
            entries[key] = entry
            result.data_points_migrated += 1
            continue

        # Legacy data could hold the same day twice; fold it into one entry.
        existing.sources = deduplicate_sources(existing.sources + entry.sources)
        existing.book_ids |= entry.book_ids
        existing.created_at = min(existing.created_at, entry.created_at)
        existing.modified_at = max(existing.modified_at, entry.modified_at)
        if entry.notes:
            existing.notes = f"{existing.notes}; {entry.notes}" if existing.notes else entry.notes
        result.warnings.append(f"merged duplicate legacy entries for {key}")


def _legacy_source(raw: object, fallback: datetime) -> ActivitySource | None:
    if not isinstance(raw, Mapping):
        return None

    kind = raw.get("type")
    if not isinstance(kind, str):
        return None
    try:
        source_type = _SOURCE_ALIASES.get(kind) or SourceType(kind)
    except ValueError:
        logger.warning("skipping legacy source with unknown type %r", kind)
        return None

    book_id = raw.get("bookId")
    metadata = raw.get("metadata")
    return ActivitySource(
        type=source_type,
        timestamp=parse_instant(raw.get("timestamp")) or fallback,
        book_id=book_id if _is_int(book_id) else None,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
