from __future__ import annotations

# mailinglist/db.py
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator

import yaml

# DB path resolution order:
# 1) env MAILINGLIST_DB_PATH (highest priority)
# 2) config.yaml test_db_path (only when running under tests)
# 3) config.yaml db_path (production default)
# 4) fallback: mailinglist.db in the project root
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_ROOT_DB = os.path.join(_PROJECT_ROOT, "mailinglist.db")
_DEFAULT_CONFIG = os.path.join(_PROJECT_ROOT, "config.yaml")

DEFAULTS = {
    "db_timeout": 5.0,
    "default_batch_size": 10,
}


def _config_path(path: str | None = None) -> str:
    return path or os.environ.get("MAILINGLIST_CONFIG") or _DEFAULT_CONFIG


def _read_config_yaml(path: str | None = None) -> dict:
    cfg_path = _config_path(path)
    if not os.path.exists(cfg_path):
        return {}
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return cfg if isinstance(cfg, dict) else {}


def load_settings(config_path: str | None = None) -> dict:
    """Typed settings from config.yaml, falling back to DEFAULTS for bad or missing values."""
    cfg = _read_config_yaml(config_path)
    out = dict(DEFAULTS)
    for k in ("db_path", "test_db_path"):
        v = cfg.get(k)
        if isinstance(v, str) and v.strip():
            out[k] = v.strip()
    try:
        out["db_timeout"] = float(cfg.get("db_timeout", DEFAULTS["db_timeout"]))
    except (TypeError, ValueError):
        pass
    try:
        size = int(cfg.get("default_batch_size", DEFAULTS["default_batch_size"]))
        if size > 0:
            out["default_batch_size"] = size
    except (TypeError, ValueError):
        pass
    return out


def get_db_path(config_path: str | None = None) -> str:
    env_path = os.environ.get("MAILINGLIST_DB_PATH")
    cfg = load_settings(config_path)
    cfg_db = cfg.get("db_path")
    cfg_test = cfg.get("test_db_path")
    is_test = (os.environ.get("APP_ENV") == "test") or (os.environ.get("PYTEST_CURRENT_TEST") is not None)

    if env_path:
        path = env_path
    elif is_test and cfg_test:
        path = cfg_test
    elif cfg_db:
        path = cfg_db
    else:
        path = _ROOT_DB

    # make sure the parent directory exists
    dirn = os.path.dirname(path) or "."
    os.makedirs(dirn, exist_ok=True)
    return path


@contextmanager
def get_conn(db_path: str | None = None, config_path: str | None = None) -> Iterator[sqlite3.Connection]:
    """
    Open a SQLite connection for one unit of work and close it afterwards.
    An explicit db_path wins over get_db_path(); row_factory is sqlite3.Row.
    """
    path = db_path or get_db_path(config_path)
    conn = sqlite3.connect(
        path,
        timeout=load_settings(config_path)["db_timeout"],
        check_same_thread=False,
        isolation_level=None,
    )
    try:
        conn.row_factory = sqlite3.Row
        yield conn
    finally:
        conn.close()
