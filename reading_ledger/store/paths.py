from __future__ import annotations

from datetime import date
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "reading-ledger"


def get_config_dir() -> Path:
    return Path(user_config_dir(APP_NAME))


def get_data_dir() -> Path:
    return Path(user_data_dir(APP_NAME))


def get_commit_log_dir() -> Path:
    return get_data_dir() / "commit-log"


def ledger_path() -> Path:
    return get_data_dir() / "ledger.json"


def commit_log_path(day: date) -> Path:
    return get_commit_log_dir() / f"{day.isoformat()}.jsonl"
