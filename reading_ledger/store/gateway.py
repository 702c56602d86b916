from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from reading_ledger.engine.errors import PersistenceError
from reading_ledger.engine.periods import BookLookup
from reading_ledger.engine.types import Ledger
from reading_ledger.store.document import dumps, load_document


class PersistenceGateway(Protocol):
    """Durable load/save of one whole ledger snapshot."""

    def load(self) -> Ledger | None: ...

    def save(self, ledger: Ledger) -> None: ...


class JsonFileGateway:
    """Keeps the ledger in a single JSON file, replaced atomically on save."""

    def __init__(self, path: Path, *, lookup: BookLookup | None = None):
        self.path = Path(path)
        self._lookup = lookup

    def load(self) -> Ledger | None:
        if not self.path.exists():
            return None

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"cannot read {self.path}: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceError(f"{self.path} is not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{self.path} is not valid JSON: {e}") from e

        # Legacy files are migrated in memory; the upgraded form is only
        # written back by the next commit.
        return load_document(raw, lookup=self._lookup).ledger

    def save(self, ledger: Ledger) -> None:
        text = dumps(ledger)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(text)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"cannot write {self.path}: {e}") from e


class MemoryGateway:
    """In-process gateway; holds serialized text so callers never share objects."""

    def __init__(self, text: str | None = None):
        self.text = text
        self.saves = 0

    def load(self) -> Ledger | None:
        if self.text is None:
            return None
        try:
            raw = json.loads(self.text)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"stored document is not valid JSON: {e}") from e
        return load_document(raw).ledger

    def save(self, ledger: Ledger) -> None:
        self.text = dumps(ledger)
        self.saves += 1
