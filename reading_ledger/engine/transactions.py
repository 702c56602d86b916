"""All-or-nothing mutation of the reading ledger.

Every change goes through `TransactionCoordinator.apply`: operations run in
order against a private deep copy of the last committed ledger, the copy is
synchronized and validated, and only then saved and swapped in. A failure at
any point discards the copy, so the committed ledger never shows a partial
batch.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ConcurrencyError, LedgerError, PreconditionError, ValidationError
from .migration import MigrationResult, create_empty, ensure_current
from .periods import BookLookup
from .sync import synchronize
from .types import (
    ActivitySource,
    Ledger,
    ReadingDayEntry,
    SourceType,
    deduplicate_sources,
    utc_now,
)
from .validation import validate

if TYPE_CHECKING:
    from reading_ledger.store.commit_log import CommitLogger
    from reading_ledger.store.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class OpKind(Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


@dataclass
class EntryBody:
    """Fields supplied by an add or update; None means "not supplied"."""

    sources: list[ActivitySource] | None = None
    book_ids: set[int] | None = None
    notes: str | None = None


@dataclass
class Operation:
    kind: OpKind
    date: str
    body: EntryBody | None = None

    @classmethod
    def add(
        cls,
        date: str,
        *,
        sources: list[ActivitySource] | None = None,
        book_ids: Iterable[int] | None = None,
        notes: str | None = None,
    ) -> Operation:
        ids = set(book_ids) if book_ids is not None else None
        return cls(OpKind.ADD, date, EntryBody(sources=sources, book_ids=ids, notes=notes))

    @classmethod
    def update(
        cls,
        date: str,
        *,
        sources: list[ActivitySource] | None = None,
        book_ids: Iterable[int] | None = None,
        notes: str | None = None,
    ) -> Operation:
        ids = set(book_ids) if book_ids is not None else None
        return cls(OpKind.UPDATE, date, EntryBody(sources=sources, book_ids=ids, notes=notes))

    @classmethod
    def remove(cls, date: str) -> Operation:
        return cls(OpKind.REMOVE, date)

    def describe(self) -> dict:
        kind = self.kind.value if isinstance(self.kind, OpKind) else repr(self.kind)
        return {"op": kind, "date": self.date}


@dataclass
class _Batch:
    operations: list[Operation] = field(default_factory=list)

    def describe(self) -> list[dict]:
        return [
            op.describe() if isinstance(op, Operation) else {"op": repr(op)}
            for op in self.operations
        ]


def _check_operation(op: object, index: int) -> Operation:
    if not isinstance(op, Operation) or not isinstance(op.kind, OpKind):
        raise ValidationError(f"operation #{index} has an unknown type: {op!r}")
    if not isinstance(op.date, str):
        raise ValidationError(f"operation #{index} has a non-string date: {op.date!r}")
    if op.kind in (OpKind.ADD, OpKind.UPDATE) and not isinstance(op.body, EntryBody):
        raise ValidationError(
            f"{op.kind.value} operation for {op.date} is missing its entry data: {op.body!r}"
        )
    return op


class TransactionCoordinator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        clock: Callable[[], datetime] = utc_now,
        today: Callable[[], date] = date.today,
        journal: CommitLogger | None = None,
    ):
        self._gateway = gateway
        self._clock = clock
        self._today = today
        self._journal = journal
        # Held for the whole of a batch; acquired without blocking.
        self._lock = threading.Lock()
        self._committed: Ledger | None = None
        self._loaded = False

    # -- reads --------------------------------------------------------------

    def snapshot(self) -> Ledger | None:
        """The last committed ledger (a private copy). Never waits on a writer."""
        committed = self._committed
        return copy.deepcopy(committed) if committed is not None else None

    def in_progress(self) -> bool:
        return self._lock.locked()

    def entries_in_range(self, start: str, end: str) -> list[ReadingDayEntry]:
        ledger = self.snapshot()
        return ledger.entries_between(start, end) if ledger is not None else []

    def read_persisted(self) -> Ledger | None:
        """The gateway's current snapshot, read without taking the writer lock.

        The committed in-memory state is left alone.
        """
        ledger = self._gateway.load()
        return ensure_current(ledger, now=self._clock()) if ledger is not None else None

    # -- writes -------------------------------------------------------------

    def load(self) -> Ledger | None:
        """Replace the in-memory committed state with the gateway's snapshot."""
        with self._writer():
            ledger = self._gateway.load()
            if ledger is not None:
                ledger = ensure_current(ledger, now=self._clock())
            self._committed = ledger
            self._loaded = True
            return self.snapshot()

    def apply(self, operations: Iterable[Operation]) -> Ledger:
        batch = _Batch(list(operations))
        with self._writer():
            return self._run(batch)

    def add_entry(self, date: str, **fields) -> Ledger:
        return self.apply([Operation.add(date, **fields)])

    def update_entry(self, date: str, **fields) -> Ledger:
        return self.apply([Operation.update(date, **fields)])

    def remove_entry(self, date: str) -> Ledger:
        return self.apply([Operation.remove(date)])

    def mark_read(
        self,
        day: date,
        *,
        source_type: SourceType = SourceType.MANUAL,
        book_id: int | None = None,
        notes: str | None = None,
        metadata: dict | None = None,
    ) -> Ledger:
        source = ActivitySource(
            type=source_type,
            timestamp=self._clock(),
            book_id=book_id,
            metadata=dict(metadata or {}),
        )
        return self.add_entry(
            day.isoformat(),
            sources=[source],
            book_ids=[book_id] if book_id is not None else None,
            notes=notes,
        )

    def migrate(
        self,
        source: Mapping | Ledger,
        *,
        lookup: BookLookup | None = None,
        replace: bool = False,
    ) -> MigrationResult:
        """Upgrade `source` to the current format and commit it.

        Refuses to overwrite a store that already holds entries unless
        `replace` is set.
        """

        # Imported here: the store layer depends on the engine, not the reverse.
        from reading_ledger.store.document import load_document

        with self._writer():
            now = self._clock()
            existing = self._base()
            if existing.entries and not replace:
                raise PreconditionError("the store already holds a ledger with entries")

            if isinstance(source, Ledger):
                result = MigrationResult(
                    ledger=ensure_current(source, now=now), data_points_migrated=len(source.entries)
                )
            else:
                result = load_document(source, now=now, lookup=lookup)

            ledger = synchronize(copy.deepcopy(result.ledger), now=now)
            self._check(ledger)
            self._gateway.save(ledger)
            self._committed = ledger
            logger.info("committed migrated ledger with %d entries", len(ledger.entries))

            result.ledger = copy.deepcopy(ledger)
            return result

    # -- internals ----------------------------------------------------------

    @contextmanager
    def _writer(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ConcurrencyError("another ledger transaction is already in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _base(self) -> Ledger:
        if not self._loaded:
            ledger = self._gateway.load()
            self._committed = ensure_current(ledger, now=self._clock()) if ledger else None
            self._loaded = True
        return self._committed if self._committed is not None else create_empty(self._clock())

    def _check(self, ledger: Ledger) -> None:
        report = validate(ledger, today=self._today())
        for warning in report.warnings:
            logger.info("ledger warning: %s", warning)
        if not report.is_valid:
            raise ValidationError(
                f"batch would leave the ledger invalid: {'; '.join(report.issues)}",
                report.issues,
            )

    def _run(self, batch: _Batch) -> Ledger:
        now = self._clock()
        try:
            for index, op in enumerate(batch.operations):
                _check_operation(op, index)

            working = copy.deepcopy(self._base())
            for op in batch.operations:
                self._apply_one(working, op, now)

            working = synchronize(working, now=now)
            self._check(working)
            self._gateway.save(working)
        except LedgerError as e:
            logger.warning("discarded batch of %d operations: %s", len(batch.operations), e)
            self._log_batch(batch, when=now, committed=False, error=str(e))
            raise

        self._committed = working
        logger.info(
            "committed batch of %d operations (%d entries)",
            len(batch.operations),
            len(working.entries),
        )
        self._log_batch(batch, when=now, committed=True, entry_count=len(working.entries))
        return copy.deepcopy(working)

    def _apply_one(self, working: Ledger, op: Operation, now: datetime) -> None:
        existing = working.entries.get(op.date)

        if op.kind is OpKind.REMOVE:
            working.entries.pop(op.date, None)
            return

        body = copy.deepcopy(op.body)

        if op.kind is OpKind.UPDATE:
            if existing is None:
                raise PreconditionError(
                    f"reading day entry for {op.date} not found", date=op.date
                )
            if body.sources is not None:
                existing.sources = deduplicate_sources(list(body.sources))
            if body.book_ids is not None:
                existing.book_ids = set(body.book_ids)
            if body.notes is not None:
                existing.notes = body.notes
            existing.modified_at = now
            return

        # An add always records at least one activity.
        sources = deduplicate_sources(
            list(body.sources or ()) or [ActivitySource(SourceType.MANUAL, now)]
        )
        book_ids = set(body.book_ids or ())
        book_ids.update(s.book_id for s in sources if s.book_id is not None)

        if existing is None:
            working.entries[op.date] = ReadingDayEntry(
                date=op.date,
                created_at=now,
                modified_at=now,
                sources=sources,
                book_ids=book_ids,
                notes=body.notes,
            )
            return

        # Upsert: merge into the existing day, keeping its creation time.
        existing.sources = deduplicate_sources(existing.sources + sources)
        existing.book_ids |= book_ids
        if body.notes is not None:
            existing.notes = body.notes
        existing.modified_at = now

    def _log_batch(self, batch: _Batch, *, when: datetime, committed: bool, **extra) -> None:
        if self._journal is None:
            return
        try:
            self._journal.log_batch(
                when=when, operations=batch.describe(), committed=committed, **extra
            )
        except OSError:
            # Best effort.
            logger.exception("could not append to the commit log")
