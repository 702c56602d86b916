import json
from datetime import date, datetime, timedelta, timezone
from threading import Event, Thread

import pytest

from reading_ledger.engine.errors import (
    ConcurrencyError,
    PersistenceError,
    PreconditionError,
    ValidationError,
)
from reading_ledger.engine.transactions import Operation, OpKind, TransactionCoordinator
from reading_ledger.engine.types import ActivitySource, SourceType
from reading_ledger.store.commit_log import CommitLogger
from reading_ledger.store.gateway import MemoryGateway


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


def _coordinator(gateway=None, **kwargs):
    gateway = gateway if gateway is not None else MemoryGateway()
    coordinator = TransactionCoordinator(
        gateway, clock=_Clock(), today=lambda: date(2024, 1, 20), **kwargs
    )
    return coordinator, gateway


class _FailingGateway(MemoryGateway):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, ledger):
        if self.fail:
            raise PersistenceError("disk full")
        super().save(ledger)


class _BlockingGateway(MemoryGateway):
    def __init__(self):
        super().__init__()
        self.entered = Event()
        self.release = Event()

    def save(self, ledger):
        self.entered.set()
        assert self.release.wait(timeout=5)
        super().save(ledger)


def test_add_creates_entry_and_derived_day():
    coordinator, gateway = _coordinator()

    ledger = coordinator.add_entry("2024-01-10", notes="chapter 1")

    entry = ledger.entries["2024-01-10"]
    assert entry.notes == "chapter 1"
    assert entry.created_at == entry.modified_at
    assert [s.type for s in entry.sources] == [SourceType.MANUAL]
    assert ledger.reading_days == frozenset({"2024-01-10"})
    assert gateway.saves == 1


def test_add_twice_upserts_one_entry():
    coordinator, _ = _coordinator()

    first = coordinator.add_entry("2024-01-10", notes="first").entries["2024-01-10"]
    ledger = coordinator.add_entry("2024-01-10", notes="second")

    assert list(ledger.entries) == ["2024-01-10"]
    entry = ledger.entries["2024-01-10"]
    assert entry.notes == "second"
    assert entry.created_at == first.created_at
    assert entry.modified_at > first.modified_at
    assert len(entry.sources) == 1


def test_repeated_marks_keep_one_manual_source():
    coordinator, _ = _coordinator()

    for _ in range(5):
        ledger = coordinator.mark_read(date(2024, 1, 10))

    sources = ledger.entries["2024-01-10"].sources
    assert [s.type for s in sources] == [SourceType.MANUAL]


def test_merged_sources_are_ordered_by_kind():
    coordinator, _ = _coordinator()
    stamp = datetime(2024, 1, 10, tzinfo=timezone.utc)

    coordinator.add_entry(
        "2024-01-10", sources=[ActivitySource(SourceType.PROGRESS_UPDATE, stamp, book_id=4)]
    )
    coordinator.add_entry(
        "2024-01-10", sources=[ActivitySource(SourceType.BOOK_COMPLETION, stamp, book_id=4)]
    )
    ledger = coordinator.mark_read(date(2024, 1, 10))

    assert [s.type for s in ledger.entries["2024-01-10"].sources] == [
        SourceType.MANUAL,
        SourceType.BOOK_COMPLETION,
        SourceType.PROGRESS_UPDATE,
    ]


def test_add_merges_book_ids():
    coordinator, _ = _coordinator()
    source = ActivitySource(SourceType.PROGRESS_UPDATE, datetime(2024, 1, 10, tzinfo=timezone.utc), book_id=4)

    coordinator.add_entry("2024-01-10", book_ids=[1])
    ledger = coordinator.add_entry("2024-01-10", sources=[source])

    assert ledger.entries["2024-01-10"].book_ids == {1, 4}
    assert ledger.entries["2024-01-10"].notes is None


def test_batch_with_missing_update_target_changes_nothing():
    coordinator, gateway = _coordinator()
    coordinator.add_entry("2024-01-01", notes="kept")
    before = coordinator.snapshot()
    stored = gateway.text

    with pytest.raises(PreconditionError) as info:
        coordinator.apply(
            [
                Operation.add("2024-01-02"),
                Operation.add("2024-01-03"),
                Operation.update("2024-01-04", notes="nope"),
            ]
        )

    assert info.value.date == "2024-01-04"
    assert coordinator.snapshot() == before
    assert gateway.text == stored
    assert gateway.saves == 1


def test_committed_ledger_keeps_days_in_sync():
    coordinator, gateway = _coordinator()

    coordinator.apply(
        [
            Operation.add("2024-01-01"),
            Operation.add("2024-01-02"),
            Operation.add("2024-01-03"),
            Operation.remove("2024-01-02"),
            Operation.update("2024-01-03", notes="done"),
        ]
    )

    ledger = coordinator.snapshot()
    assert ledger.reading_days == frozenset(ledger.entries) == frozenset({"2024-01-01", "2024-01-03"})
    stored = json.loads(gateway.text)
    assert stored["readingDays"] == ["2024-01-01", "2024-01-03"]
    assert [e["date"] for e in stored["readingDayEntries"]] == ["2024-01-01", "2024-01-03"]


def test_operations_apply_in_order():
    coordinator, _ = _coordinator()

    ledger = coordinator.apply([Operation.remove("2024-01-01"), Operation.add("2024-01-01")])
    assert "2024-01-01" in ledger.entries

    ledger = coordinator.apply([Operation.add("2024-01-02"), Operation.remove("2024-01-02")])
    assert "2024-01-02" not in ledger.entries


def test_remove_missing_date_is_noop():
    coordinator, _ = _coordinator()

    ledger = coordinator.remove_entry("2024-01-05")

    assert ledger.entries == {}


def test_update_replaces_supplied_fields_only():
    coordinator, _ = _coordinator()
    coordinator.add_entry("2024-01-10", notes="draft", book_ids=[2])

    ledger = coordinator.update_entry("2024-01-10", notes="final")

    entry = ledger.entries["2024-01-10"]
    assert entry.notes == "final"
    assert entry.book_ids == {2}
    assert entry.modified_at > entry.created_at


def test_invalid_date_rejects_whole_batch():
    coordinator, gateway = _coordinator()

    with pytest.raises(ValidationError) as info:
        coordinator.apply([Operation.add("2024-01-10"), Operation.add("10/01/2024")])

    assert any("invalid date format" in issue for issue in info.value.issues)
    assert coordinator.snapshot() is None
    assert gateway.saves == 0


def test_malformed_operations_are_validation_errors():
    coordinator, _ = _coordinator()

    with pytest.raises(ValidationError):
        coordinator.apply([Operation(OpKind.ADD, "2024-01-10")])
    with pytest.raises(ValidationError):
        coordinator.apply([Operation(OpKind.UPDATE, "2024-01-10")])
    with pytest.raises(ValidationError):
        coordinator.apply([{"type": "add", "date": "2024-01-10"}])
    with pytest.raises(ValidationError):
        coordinator.apply([Operation(OpKind.ADD, "2024-01-10", {"notes": "x"})])
    assert not coordinator.in_progress()


def test_persistence_failure_propagates_and_releases_lock():
    gateway = _FailingGateway()
    coordinator, _ = _coordinator(gateway)
    coordinator.add_entry("2024-01-01")
    gateway.fail = True

    with pytest.raises(PersistenceError):
        coordinator.add_entry("2024-01-02")

    assert list(coordinator.snapshot().entries) == ["2024-01-01"]
    assert not coordinator.in_progress()

    gateway.fail = False
    assert "2024-01-02" in coordinator.add_entry("2024-01-02").entries


def test_second_writer_fails_fast_and_later_succeeds():
    gateway = _BlockingGateway()
    coordinator, _ = _coordinator(gateway)
    outcome = []

    def _first():
        outcome.append(coordinator.add_entry("2024-01-01"))

    worker = Thread(target=_first)
    worker.start()
    assert gateway.entered.wait(timeout=5)

    with pytest.raises(ConcurrencyError):
        coordinator.add_entry("2024-01-02")
    # Readers see the last committed state while the writer is in flight.
    assert coordinator.snapshot() is None

    gateway.release.set()
    worker.join(timeout=5)

    assert "2024-01-01" in outcome[0].entries
    ledger = coordinator.add_entry("2024-01-02")
    assert set(ledger.entries) == {"2024-01-01", "2024-01-02"}


def test_persisted_state_is_readable_while_writer_runs():
    gateway = _BlockingGateway()
    coordinator, _ = _coordinator(gateway)
    gateway.release.set()
    coordinator.add_entry("2024-01-01")
    gateway.release.clear()
    gateway.entered.clear()

    worker = Thread(target=coordinator.add_entry, args=("2024-01-02",))
    worker.start()
    assert gateway.entered.wait(timeout=5)

    ledger = coordinator.read_persisted()
    assert list(ledger.entries) == ["2024-01-01"]
    with pytest.raises(ConcurrencyError):
        coordinator.load()

    gateway.release.set()
    worker.join(timeout=5)
    assert set(coordinator.read_persisted().entries) == {"2024-01-01", "2024-01-02"}


def test_failed_batch_releases_lock():
    coordinator, _ = _coordinator()

    with pytest.raises(PreconditionError):
        coordinator.update_entry("2024-01-01", notes="x")

    assert not coordinator.in_progress()
    assert "2024-01-01" in coordinator.add_entry("2024-01-01").entries


def test_snapshot_is_isolated_from_callers():
    coordinator, _ = _coordinator()
    coordinator.add_entry("2024-01-01", notes="original")

    copy = coordinator.snapshot()
    copy.entries["2024-01-01"].notes = "tampered"

    assert coordinator.snapshot().entries["2024-01-01"].notes == "original"


def test_mark_read_records_source_and_book():
    coordinator, _ = _coordinator()

    ledger = coordinator.mark_read(date(2024, 1, 12), book_id=5, metadata={"pages": 30})

    entry = ledger.entries["2024-01-12"]
    assert entry.book_ids == {5}
    assert entry.sources[0].type is SourceType.MANUAL
    assert entry.sources[0].metadata == {"pages": 30}


def test_entries_in_range_are_sorted():
    coordinator, _ = _coordinator()
    coordinator.apply([Operation.add(d) for d in ("2024-01-05", "2024-01-01", "2024-01-03")])

    found = coordinator.entries_in_range("2024-01-02", "2024-01-05")

    assert [e.date for e in found] == ["2024-01-03", "2024-01-05"]


def test_load_migrates_legacy_document():
    legacy = {
        "readingDays": ["2024-01-01", "2024-01-02"],
        "bookPeriods": [],
        "lastCalculated": "2024-01-02T10:00:00.000Z",
    }
    coordinator, _ = _coordinator(MemoryGateway(json.dumps(legacy)))

    ledger = coordinator.load()

    assert set(ledger.entries) == {"2024-01-01", "2024-01-02"}
    ledger = coordinator.add_entry("2024-01-03")
    assert len(ledger.entries) == 3


def test_migrate_commits_once():
    coordinator, gateway = _coordinator()
    legacy = {
        "readingDays": ["2024-01-01"],
        "bookPeriods": [],
        "lastCalculated": "2024-01-02T10:00:00.000Z",
    }

    result = coordinator.migrate(legacy)

    assert list(result.ledger.entries) == ["2024-01-01"]
    assert json.loads(gateway.text)["version"] == result.ledger.version

    with pytest.raises(PreconditionError):
        coordinator.migrate(legacy)
    assert coordinator.migrate(legacy, replace=True).ledger.entries.keys() == {"2024-01-01"}


def test_commit_log_records_commits_and_aborts(tmp_path):
    coordinator, _ = _coordinator(journal=CommitLogger(base_dir=tmp_path))

    coordinator.add_entry("2024-01-01")
    with pytest.raises(PreconditionError):
        coordinator.update_entry("2024-01-09", notes="x")

    lines = (tmp_path / "2024-01-10.jsonl").read_text(encoding="utf-8").splitlines()
    events = [json.loads(line) for line in lines]
    assert [e["event"] for e in events] == ["commit", "abort"]
    assert events[0]["operations"] == [{"op": "add", "date": "2024-01-01"}]
    assert events[0]["entries"] == 1
    assert "2024-01-09" in events[1]["error"]
