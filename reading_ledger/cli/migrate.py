from __future__ import annotations

import json
from pathlib import Path

from reading_ledger.cli.common import open_ledger, report_error
from reading_ledger.engine.errors import LedgerError
from reading_ledger.engine.migration import detect_format


def _read_json(path: Path) -> object | None:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        print(f"cannot read {path}: {e}")
        return None


def main(*, legacy: str | None = None, replace: bool = False) -> int:
    coordinator, _, meta = open_ledger()

    # Without --legacy the store's own file is upgraded in place.
    source_path = Path(legacy) if legacy else Path(meta["ledger"])
    if not source_path.exists():
        print(f"nothing to migrate: {source_path} does not exist")
        return 0

    raw = _read_json(source_path)
    if raw is None:
        return 1

    detection = detect_format(raw)
    print(f"source: {source_path}")
    print(f"format: {detection.format} ({detection.data_points} data points)")

    try:
        result = coordinator.migrate(raw, replace=replace or legacy is None)
    except LedgerError as e:
        return report_error(e)

    print(f"migrated entries: {result.data_points_migrated}")
    print(f"ledger version: {result.ledger.version}")
    for item in result.skipped:
        print(f"skipped: {item}")
    for warning in result.warnings:
        print(f"warning: {warning}")
    for key, value in result.preserved_metadata.items():
        print(f"preserved {key}: {value}")
    return 0
