"""Operation audit log kept in the same SQLite file as the subscribers."""
from __future__ import annotations

import datetime as dt
import json
import logging
import time
import uuid
from typing import Any, Optional

from .db import get_conn

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS operation_log (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  source TEXT NOT NULL,
  action TEXT NOT NULL,
  email TEXT,
  request_id TEXT,
  before_json TEXT,
  after_json TEXT,
  payload_json TEXT,
  result TEXT,
  err_msg TEXT,
  latency_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_log_ts ON operation_log(ts);
CREATE INDEX IF NOT EXISTS idx_log_action ON operation_log(action);
CREATE INDEX IF NOT EXISTS idx_log_email ON operation_log(email);
"""


def ensure_log_schema():
    with get_conn() as conn:
        conn.executescript(DDL)


def _dump(obj: Any) -> Optional[str]:
    return json.dumps(obj, ensure_ascii=False, default=str) if obj is not None else None


class LogContext:
    """
    Collects one audit record per write operation.

    Either call write() explicitly, or use it as a context manager: a clean
    exit writes "OK", an exception writes "ERROR" with the message and is
    re-raised.
    """

    def __init__(self, action: str, source: str = "api"):
        self.action = action
        self.source = source
        self.request_id = str(uuid.uuid4())
        self.start = time.perf_counter()
        self.email: Optional[str] = None
        self.before: Any = None
        self.after: Any = None
        self.payload: Any = None
        self.written = False

    def set_email(self, email: str): self.email = email
    def set_before(self, obj): self.before = obj
    def set_after(self, obj): self.after = obj
    def set_payload(self, obj): self.payload = obj

    def __enter__(self) -> "LogContext":
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.written:
            if exc is None:
                self.write("OK")
            else:
                self.write("ERROR", f"{type(exc).__name__}: {exc}")
        return False

    def write(self, result: str = "OK", err: Optional[str] = None):
        self.written = True
        rec = {
            "ts": dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds"),
            "source": self.source,
            "action": self.action,
            "email": self.email,
            "request_id": self.request_id,
            "before_json": _dump(self.before),
            "after_json": _dump(self.after),
            "payload_json": _dump(self.payload),
            "result": result,
            "err_msg": err,
            "latency_ms": int((time.perf_counter() - self.start) * 1000),
        }
        if err:
            logger.warning("%s %s failed: %s", self.action, self.email or "-", err)
        with get_conn() as conn:
            conn.execute(
                """INSERT INTO operation_log
                (ts,source,action,email,request_id,before_json,after_json,payload_json,result,err_msg,latency_ms)
                VALUES(:ts,:source,:action,:email,:request_id,:before_json,:after_json,:payload_json,:result,:err_msg,:latency_ms)""",
                rec,
            )


def search_logs(q: str | None, action: str | None, ts_from: str | None, ts_to: str | None,
                page: int = 1, size: int = 20) -> tuple[int, list[dict]]:
    clauses = {
        "(email LIKE :q OR payload_json LIKE :q OR err_msg LIKE :q)": ("q", f"%{q}%" if q else None),
        "action = :action": ("action", action),
        "ts >= :ts_from": ("ts_from", ts_from),
        "ts <= :ts_to": ("ts_to", ts_to),
    }
    where, params = [], {}
    for clause, (key, value) in clauses.items():
        if value:
            where.append(clause)
            params[key] = value
    wh = " WHERE " + " AND ".join(where) if where else ""
    page, size = max(page, 1), max(size, 1)
    with get_conn() as conn:
        total = conn.execute(f"SELECT COUNT(1) AS cnt FROM operation_log{wh}", params).fetchone()["cnt"]
        rows = conn.execute(
            f"SELECT * FROM operation_log{wh} ORDER BY id DESC LIMIT :limit OFFSET :offset",
            {**params, "limit": size, "offset": (page - 1) * size},
        ).fetchall()
    return total, [dict(r) for r in rows]
