from .commit_log import CommitLogger
from .config import ensure_default_config_file, get_config_path, load_config
from .document import dumps, ledger_from_document, ledger_to_document, load_document, loads
from .gateway import JsonFileGateway, MemoryGateway, PersistenceGateway
from .paths import (
    commit_log_path,
    get_commit_log_dir,
    get_config_dir,
    get_data_dir,
    ledger_path,
)

__all__ = [
    "CommitLogger",
    "ensure_default_config_file",
    "get_config_path",
    "load_config",
    "dumps",
    "ledger_from_document",
    "ledger_to_document",
    "load_document",
    "loads",
    "JsonFileGateway",
    "MemoryGateway",
    "PersistenceGateway",
    "commit_log_path",
    "get_commit_log_dir",
    "get_config_dir",
    "get_data_dir",
    "ledger_path",
]
