"""Wire format of a persisted ledger.

This is the only place that knows the document shape. Decoding is strict:
anything that does not conform raises PersistenceError instead of being
coerced, except legacy documents, which are routed through the migrator.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime

from reading_ledger.engine.dates import (
    format_instant,
    parse_day,
    parse_instant,
    written_day,
)
from reading_ledger.engine.errors import PersistenceError
from reading_ledger.engine.migration import (
    MigrationResult,
    ensure_current,
    is_legacy_document,
    migrate_legacy,
)
from reading_ledger.engine.periods import BookLookup
from reading_ledger.engine.types import (
    ActivitySource,
    Ledger,
    ReadingDayEntry,
    ReadingPeriod,
    SourceType,
)


def _source_to_dict(source: ActivitySource) -> dict:
    out: dict = {"type": source.type.value, "timestamp": format_instant(source.timestamp)}
    if source.book_id is not None:
        out["bookId"] = source.book_id
    if source.metadata:
        out["metadata"] = source.metadata
    return out


def _entry_to_dict(entry: ReadingDayEntry) -> dict:
    out: dict = {
        "date": entry.date,
        "sources": [_source_to_dict(s) for s in entry.sources],
        "bookIds": sorted(entry.book_ids),
    }
    if entry.notes is not None:
        out["notes"] = entry.notes
    out["createdAt"] = format_instant(entry.created_at)
    out["modifiedAt"] = format_instant(entry.modified_at)
    return out


def _period_to_dict(period: ReadingPeriod) -> dict:
    return {
        "bookId": period.book_id,
        "title": period.title,
        "author": period.author,
        "startDate": period.start,
        "endDate": period.end,
        "totalDays": period.total_days,
    }


def ledger_to_document(ledger: Ledger) -> dict:
    return {
        "version": ledger.version,
        "readingDays": sorted(ledger.reading_days),
        "readingDayEntries": [_entry_to_dict(e) for e in ledger.entries.values()],
        "bookPeriods": [_period_to_dict(p) for p in ledger.book_periods],
        "lastCalculated": format_instant(ledger.last_calculated),
        "lastSyncDate": format_instant(ledger.last_sync_date),
    }


def _require(raw: Mapping, key: str, kind: type | tuple[type, ...], where: str):
    value = raw.get(key)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise PersistenceError(f"{where}: field {key!r} is missing or malformed")
    return value


def _instant(raw: Mapping, key: str, where: str) -> datetime:
    value = parse_instant(raw.get(key))
    if value is None:
        raise PersistenceError(f"{where}: {key!r} is not an ISO-8601 timestamp with offset")
    return value


def _day_text(raw: Mapping, key: str, where: str) -> str:
    value = raw.get(key)
    if written_day(value) is None:
        raise PersistenceError(f"{where}: {key!r} is not a date")
    return value


def _book_id(value: object, where: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise PersistenceError(f"{where}: book id {value!r} is not an integer")
    return value


def _source_from_dict(raw: object, where: str) -> ActivitySource:
    if not isinstance(raw, Mapping):
        raise PersistenceError(f"{where}: source is not an object")
    try:
        source_type = SourceType(raw.get("type"))
    except ValueError as e:
        raise PersistenceError(f"{where}: unknown source type {raw.get('type')!r}") from e

    book_id = raw.get("bookId")
    metadata = raw.get("metadata", {})
    if not isinstance(metadata, dict):
        raise PersistenceError(f"{where}: source metadata is not an object")

    return ActivitySource(
        type=source_type,
        timestamp=_instant(raw, "timestamp", where),
        book_id=_book_id(book_id, where) if book_id is not None else None,
        metadata=metadata,
    )


def _entry_from_dict(raw: object, index: int) -> ReadingDayEntry:
    where = f"readingDayEntries[{index}]"
    if not isinstance(raw, Mapping):
        raise PersistenceError(f"{where}: entry is not an object")

    key = _require(raw, "date", str, where)
    sources = _require(raw, "sources", list, where)
    book_ids = _require(raw, "bookIds", list, where)
    notes = raw.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise PersistenceError(f"{where}: notes must be a string")

    return ReadingDayEntry(
        date=key,
        created_at=_instant(raw, "createdAt", where),
        modified_at=_instant(raw, "modifiedAt", where),
        sources=[_source_from_dict(s, where) for s in sources],
        book_ids={_book_id(b, where) for b in book_ids},
        notes=notes,
    )


def _period_from_dict(raw: object, index: int) -> ReadingPeriod:
    where = f"bookPeriods[{index}]"
    if not isinstance(raw, Mapping):
        raise PersistenceError(f"{where}: period is not an object")
    return ReadingPeriod(
        book_id=_book_id(raw.get("bookId"), where),
        title=_require(raw, "title", str, where),
        author=_require(raw, "author", str, where),
        start=_day_text(raw, "startDate", where),
        end=_day_text(raw, "endDate", where),
        total_days=_require(raw, "totalDays", int, where),
    )


def ledger_from_document(raw: object) -> Ledger:
    if not isinstance(raw, Mapping):
        raise PersistenceError("ledger document is not an object")

    version = _require(raw, "version", int, "ledger")
    reading_days = _require(raw, "readingDays", list, "ledger")
    raw_entries = _require(raw, "readingDayEntries", list, "ledger")
    raw_periods = _require(raw, "bookPeriods", list, "ledger")

    bad_days = [d for d in reading_days if parse_day(d) is None]
    if bad_days:
        raise PersistenceError(f"ledger: readingDays holds malformed dates: {bad_days!r}")

    entries: dict[str, ReadingDayEntry] = {}
    duplicates: list[str] = []
    for index, item in enumerate(raw_entries):
        entry = _entry_from_dict(item, index)
        if entry.date in entries:
            duplicates.append(entry.date)
            continue
        entries[entry.date] = entry
    if duplicates:
        raise PersistenceError(
            f"ledger: duplicate reading day entries: {', '.join(sorted(set(duplicates)))}"
        )

    return Ledger(
        version=version,
        last_calculated=_instant(raw, "lastCalculated", "ledger"),
        last_sync_date=_instant(raw, "lastSyncDate", "ledger"),
        entries=entries,
        # Kept as stored; validate() reports any drift from the entries.
        reading_days=frozenset(reading_days),
        book_periods=[_period_from_dict(p, i) for i, p in enumerate(raw_periods)],
    )


def load_document(
    raw: object, *, now: datetime | None = None, lookup: BookLookup | None = None
) -> MigrationResult:
    """Decode any supported document into a current-version ledger."""

    if is_legacy_document(raw):
        return migrate_legacy(raw, now=now, lookup=lookup)

    decoded = ledger_from_document(raw)
    ledger = ensure_current(decoded, now=now)
    result = MigrationResult(ledger=ledger, data_points_migrated=len(ledger.entries))
    if ledger is decoded:
        result.warnings.append("data already in current format")
    return result


def dumps(ledger: Ledger) -> str:
    return json.dumps(ledger_to_document(ledger), ensure_ascii=False, indent=2)


def loads(text: str) -> Ledger:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"ledger document is not valid JSON: {e}") from e
    return ledger_from_document(raw)
