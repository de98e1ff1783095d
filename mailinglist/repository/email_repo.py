"""
Subscriber table access: schema creation, row mapping and the
create / get / upsert / soft-delete / paginate operations.

confirmed_at is stored as epoch seconds. There is no NULL state: epoch 0
means "not confirmed yet". opt_out=1 is the soft-delete marker, rows are
never physically removed.
"""
from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from sqlite3 import Connection
from typing import Any, Iterator, List, Optional, Sequence

from ..errors import ConstraintError, DecodeError, SchemaError, StoreError, ValidationError

# largest value SQLite binds as INTEGER
SQLITE_MAX_INT = 2 ** 63 - 1

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

COLUMNS = "id, email, confirmed_at, opt_out"

DDL = """
CREATE TABLE emails (
    id            INTEGER PRIMARY KEY,
    email         TEXT UNIQUE,
    confirmed_at  INTEGER NOT NULL DEFAULT 0,
    opt_out       INTEGER NOT NULL DEFAULT 0
)
"""


@dataclass
class EmailEntry:
    id: Optional[int]
    email: str
    confirmed_at: datetime = EPOCH
    opt_out: bool = False

    @property
    def is_confirmed(self) -> bool:
        return to_epoch(self.confirmed_at) != 0


def to_epoch(value: datetime) -> int:
    """Whole epoch seconds; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.replace(microsecond=0).timestamp())


def to_dict(entry: EmailEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "email": entry.email,
        "confirmed_at": entry.confirmed_at.isoformat(),
        "opt_out": entry.opt_out,
    }


# ---------------- schema ----------------

def is_duplicate_schema_error(exc: BaseException) -> bool:
    """True when exc only says the table is already there (SQLITE_ERROR, "already exists")."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    code = getattr(exc, "sqlite_errorcode", sqlite3.SQLITE_ERROR)
    return code == sqlite3.SQLITE_ERROR and "already exists" in str(exc)


def ensure_schema(conn: Connection):
    try:
        conn.execute(DDL)
    except sqlite3.Error as e:
        if is_duplicate_schema_error(e):
            return
        raise SchemaError(f"cannot create emails table: {e}") from e


# ---------------- row mapping ----------------

def from_row(row: Sequence[Any]) -> EmailEntry:
    try:
        id_, email, confirmed_at, opt_out = tuple(row)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"unexpected emails row shape: {e}") from e

    for name, value, types in (
        ("id", id_, int),
        ("email", email, str),
        ("confirmed_at", confirmed_at, int),
        ("opt_out", opt_out, int),
    ):
        if not isinstance(value, types):
            raise DecodeError(f"column {name}: unexpected {type(value).__name__} value {value!r}")

    try:
        ts = datetime.fromtimestamp(confirmed_at, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise DecodeError(f"column confirmed_at: {confirmed_at!r} is not a valid timestamp") from e

    return EmailEntry(id=id_, email=email, confirmed_at=ts, opt_out=bool(opt_out))


# ---------------- operations ----------------

@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"{action} failed: {e}") from e


def create(conn: Connection, email: str) -> int:
    """Insert an unconfirmed, opted-in row and return its id.

    Raises ConstraintError when the address already exists.
    """
    try:
        cur = conn.execute(
            "INSERT INTO emails(email, confirmed_at, opt_out) VALUES(?, 0, 0)",
            (email,),
        )
    except sqlite3.IntegrityError as e:
        raise ConstraintError(f"email already exists: {email}") from e
    except sqlite3.Error as e:
        raise StoreError(f"create {email} failed: {e}") from e
    return cur.lastrowid


def get(conn: Connection, email: str) -> Optional[EmailEntry]:
    with _store_errors(f"get {email}"):
        with closing(conn.execute(f"SELECT {COLUMNS} FROM emails WHERE email=?", (email,))) as cur:
            row = cur.fetchone()
    if row is None:
        return None
    return from_row(row)


def upsert(conn: Connection, entry: EmailEntry):
    # one statement keyed on the UNIQUE(email) constraint; id and email stay untouched on update
    with _store_errors(f"upsert {entry.email}"):
        conn.execute(
            "INSERT INTO emails(email, confirmed_at, opt_out) VALUES(?, ?, ?) "
            "ON CONFLICT(email) DO UPDATE SET "
            "confirmed_at=excluded.confirmed_at, opt_out=excluded.opt_out",
            (entry.email, to_epoch(entry.confirmed_at), 1 if entry.opt_out else 0),
        )


def confirm(conn: Connection, email: str, confirmed_at: datetime):
    # touches only confirmed_at, so a concurrent opt-out is never overwritten
    with _store_errors(f"confirm {email}"):
        conn.execute(
            "INSERT INTO emails(email, confirmed_at, opt_out) VALUES(?, ?, 0) "
            "ON CONFLICT(email) DO UPDATE SET confirmed_at=excluded.confirmed_at",
            (email, to_epoch(confirmed_at)),
        )


def soft_delete(conn: Connection, email: str):
    # unknown address updates zero rows, which is not an error
    with _store_errors(f"soft delete {email}"):
        conn.execute("UPDATE emails SET opt_out=1 WHERE email=?", (email,))


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


def get_batch(conn: Connection, page: int, count: int) -> List[EmailEntry]:
    """
    One page of opted-in subscribers in ascending id order.

    page is 1-based: the window is [(page-1)*count, (page-1)*count + count).
    Pages past the last row come back empty.
    """
    page = _positive_int("page", page)
    count = min(_positive_int("count", count), SQLITE_MAX_INT)
    offset = (page - 1) * count
    if offset > SQLITE_MAX_INT:
        return []
    with _store_errors(f"get batch page={page} count={count}"):
        with closing(conn.execute(
            f"SELECT {COLUMNS} FROM emails WHERE opt_out=0 ORDER BY id ASC LIMIT ? OFFSET ?",
            (count, offset),
        )) as cur:
            rows = cur.fetchall()
    return [from_row(r) for r in rows]
