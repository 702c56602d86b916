from __future__ import annotations

import tomllib
from pathlib import Path

from reading_ledger.engine.types import Config
from reading_ledger.store.paths import get_config_dir, ledger_path


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def default_config_toml(config: Config | None = None) -> str:
    cfg = config or Config()
    # Keep it minimal and editable.
    return (
        "# reading-ledger configuration\n"
        "# Location: ~/.config/reading-ledger/config.toml (or XDG_CONFIG_HOME)\n"
        "\n"
        "# Days without reading tolerated before the current streak breaks\n"
        f"grace_days = {cfg.grace_days}\n"
        "# Append one JSON line per committed or rejected batch\n"
        f"commit_log = {str(cfg.commit_log).lower()}\n"
        "\n"
        "[store]\n"
        f'# path = "{ledger_path()}"\n'
    )


def ensure_default_config_file(path: Path | None = None) -> Path:
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    if not config_path.exists():
        config_path.write_text(default_config_toml(), encoding="utf-8")
    return config_path


def load_config(path: Path | None = None, *, create_if_missing: bool = True) -> tuple[Config, dict]:
    """Load config.toml, returning (Config, meta).

    Meta contains useful diagnostics for `validate` output.
    """

    config_path = path or get_config_path()
    meta: dict = {"path": str(config_path), "loaded": False, "created": False}

    if create_if_missing:
        before = config_path.exists()
        ensure_default_config_file(config_path)
        meta["created"] = not before

    if not config_path.exists():
        return Config(), meta

    try:
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        meta["error"] = f"config_read_error: {e}"
        return Config(), meta

    cfg = Config()

    grace = raw.get("grace_days")
    if isinstance(grace, int) and not isinstance(grace, bool) and grace >= 0:
        cfg.grace_days = grace

    if isinstance(raw.get("commit_log"), bool):
        cfg.commit_log = bool(raw["commit_log"])

    store = raw.get("store")
    if isinstance(store, dict):
        store_path = store.get("path")
        if isinstance(store_path, str) and store_path.strip():
            cfg.store_path = str(Path(store_path.strip()).expanduser())

    meta["loaded"] = True
    return cfg, meta
