import os
import sys
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    base = tmp_path_factory.mktemp("db")
    path = base / "mailinglist_test.db"
    # Point the package at this temp DB and away from any real config.yaml
    os.environ["MAILINGLIST_DB_PATH"] = str(path)
    os.environ["MAILINGLIST_CONFIG"] = str(base / "no-config.yaml")
    from mailinglist.logs import ensure_log_schema
    from mailinglist.services.email_svc import ensure_email_schema
    ensure_log_schema()
    ensure_email_schema()
    return str(path)


@pytest.fixture()
def conn(tmp_db_path):
    from mailinglist.db import get_conn
    with get_conn() as c:
        yield c


@pytest.fixture()
def client(tmp_db_path):
    from mailinglist.api import app
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clean_db(tmp_db_path):
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert os.environ.get("MAILINGLIST_DB_PATH") == tmp_db_path, "Refusing to clean non-temp DB"
    import sqlite3
    conn = sqlite3.connect(tmp_db_path)
    try:
        for t in ("emails", "operation_log"):
            conn.execute(f"DELETE FROM {t}")
        conn.commit()
    finally:
        conn.close()
    yield
