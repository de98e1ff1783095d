from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

import pandas as pd

from ..db import get_conn, load_settings
from ..errors import ValidationError
from ..logs import LogContext
from ..repository import email_repo
from ..repository.email_repo import EmailEntry

logger = logging.getLogger(__name__)


def ensure_email_schema():
    with get_conn() as conn:
        email_repo.ensure_schema(conn)


def normalize_email(email: str) -> str:
    addr = (email or "").strip()
    if not addr or "@" not in addr or any(c.isspace() for c in addr):
        raise ValidationError(f"invalid email address: {email!r}")
    return addr


def subscribe(email: str, log: LogContext | None = None) -> EmailEntry:
    """Insert an unconfirmed row. Raises ConstraintError when the address is already subscribed."""
    addr = normalize_email(email)
    with get_conn() as conn:
        email_repo.create(conn, addr)
        entry = email_repo.get(conn, addr)
    logger.info("subscribed %s (id=%s)", addr, entry.id if entry else None)
    if log:
        log.set_after(email_repo.to_dict(entry) if entry else None)
    return entry


def find(email: str) -> EmailEntry | None:
    with get_conn() as conn:
        return email_repo.get(conn, normalize_email(email))


def save(entry: EmailEntry, log: LogContext | None = None) -> EmailEntry:
    """Upsert entry by email and return the stored row."""
    addr = normalize_email(entry.email)
    with get_conn() as conn:
        before = email_repo.get(conn, addr)
        email_repo.upsert(conn, EmailEntry(id=None, email=addr, confirmed_at=entry.confirmed_at, opt_out=entry.opt_out))
        after = email_repo.get(conn, addr)
    if log:
        log.set_before(email_repo.to_dict(before) if before else None)
        log.set_after(email_repo.to_dict(after) if after else None)
    return after


def confirm(email: str, at: datetime | None = None, log: LogContext | None = None) -> EmailEntry:
    """
    Mark an address as confirmed at `at` (default: now).
    The opt-out flag is left alone; an unknown address is inserted already confirmed.
    """
    addr = normalize_email(email)
    with get_conn() as conn:
        before = email_repo.get(conn, addr)
        email_repo.confirm(conn, addr, at or datetime.now(timezone.utc))
        after = email_repo.get(conn, addr)
    if log:
        log.set_before(email_repo.to_dict(before) if before else None)
        log.set_after(email_repo.to_dict(after) if after else None)
    return after


def unsubscribe(email: str, log: LogContext | None = None) -> EmailEntry | None:
    """Soft delete: set opt_out=1 and keep the row. Returns None for an unknown address."""
    addr = normalize_email(email)
    with get_conn() as conn:
        before = email_repo.get(conn, addr)
        email_repo.soft_delete(conn, addr)
        after = email_repo.get(conn, addr)
    if before is None:
        logger.info("opt-out for unknown address %s ignored", addr)
    if log:
        log.set_before(email_repo.to_dict(before) if before else None)
        log.set_after(email_repo.to_dict(after) if after else None)
    return after


def list_active(page: int = 1, count: int | None = None) -> list[EmailEntry]:
    size = count if count is not None else load_settings()["default_batch_size"]
    with get_conn() as conn:
        return email_repo.get_batch(conn, page, size)


def export_active_csv(path: str) -> int:
    """Dump every opted-in subscriber to CSV (ascending id). Returns the row count."""
    with get_conn() as conn:
        conn.row_factory = None  # plain tuples for pandas
        df = pd.read_sql_query(
            f"SELECT {email_repo.COLUMNS} FROM emails WHERE opt_out=0 ORDER BY id",
            conn,
        )
    df["confirmed_at"] = pd.to_datetime(df["confirmed_at"], unit="s", utc=True)
    df["confirmed"] = df["confirmed_at"] > pd.Timestamp(email_repo.EPOCH)
    df["opt_out"] = df["opt_out"].astype(bool)
    dirn = os.path.dirname(path)
    if dirn:
        os.makedirs(dirn, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8-sig")
    return len(df)
