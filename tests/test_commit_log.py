import json
from datetime import datetime, timezone

from reading_ledger.store.commit_log import CommitLogger


def test_commit_log_appends_one_line_per_batch(tmp_path, monkeypatch):
    # Force commit log path into tmp dir by monkeypatching XDG_DATA_HOME.
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    logger = CommitLogger()
    when = datetime(2024, 1, 10, 9, 30, 0, 250000, tzinfo=timezone.utc)
    ops = [{"op": "add", "date": "2024-01-10"}]
    logger.log_batch(when=when, operations=ops, committed=True, entry_count=1)
    logger.log_batch(when=when, operations=ops, committed=False, error="boom")

    path = tmp_path / "reading-ledger" / "commit-log" / "2024-01-10.jsonl"
    first, second = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]

    assert first == {
        "ts": "2024-01-10T09:30:00.250Z",
        "event": "commit",
        "operations": ops,
        "entries": 1,
    }
    assert second["event"] == "abort"
    assert second["error"] == "boom"
    assert "entries" not in second
