from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from reading_ledger.engine.dates import format_instant
from reading_ledger.store.paths import commit_log_path


@dataclass
class CommitLogger:
    base_dir: Path | None = None

    def _path_for(self, when: datetime) -> Path:
        if self.base_dir is not None:
            return self.base_dir / f"{when.date().isoformat()}.jsonl"
        return commit_log_path(when.date())

    def append(self, *, when: datetime, event: dict) -> None:
        """Append a single JSON object as one line."""

        path = self._path_for(when)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {"ts": format_instant(when), **event}
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

        with path.open("a", encoding="utf-8") as f:
            f.write(line)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

    def log_batch(
        self,
        *,
        when: datetime,
        operations: list[dict],
        committed: bool,
        entry_count: int | None = None,
        error: str | None = None,
    ) -> None:
        event: dict = {
            "event": "commit" if committed else "abort",
            "operations": operations,
        }
        if entry_count is not None:
            event["entries"] = entry_count
        if error is not None:
            event["error"] = error
        self.append(when=when, event=event)
