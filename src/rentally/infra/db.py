"""PostgreSQL access through psycopg2.

Every unit of work is one short transaction on a fresh connection. Stores
open theirs with ``ambient_txn()``, so a caller that already holds a
transaction (the advisory-lock admission path, payment reconciliation)
pulls several store calls into it.
"""

import os
import re
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from rentally.infra.settings import get_settings

# Cursor of the transaction currently open in this context (if any)
_ambient_cursor: ContextVar[PgCursor | None] = ContextVar(
    "ambient_cursor", default=None
)

_URL_PASSWORD = re.compile(r"^[a-z0-9+]+://[^:/@]+:[^@]*@")


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(_URL_PASSWORD.match(dsn))
    return "password=" in dsn


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL.

    DB_PASSWORD is supplied separately when the DSN has no password of its own.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    kwargs: dict[str, Any] = {
        "connect_timeout": get_settings().db_connect_timeout_s,
    }
    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        kwargs["password"] = db_password
    return psycopg2.connect(dsn, **kwargs)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Yield a cursor; commit on clean exit, roll back on any exception.

    A connection opened here is closed afterwards; a passed-in ``conn`` is
    left open for the caller.
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


@contextmanager
def ambient_txn() -> Iterator[PgCursor]:
    """Join the ambient transaction, or open one and make it ambient.

    Repositories call this instead of ``txn()`` so that an outer block
    (an advisory lock, a payment reconciliation) can group several store
    operations into one atomic transaction. Only the outermost block
    commits or rolls back.

    Example:
        with ambient_txn():
            store.record(...)      # same transaction
            store.try_promote(...) # same transaction
    """
    existing = _ambient_cursor.get()
    if existing is not None:
        yield existing
        return

    with txn() as cur:
        token = _ambient_cursor.set(cur)
        try:
            yield cur
        finally:
            _ambient_cursor.reset(token)


def set_local_timeouts(
    cur: PgCursor,
    *,
    lock_timeout_ms: int,
    statement_timeout_ms: int,
) -> None:
    """Bound lock waits and statements for the current transaction only.

    SET LOCAL does not accept bind parameters, so values are formatted as
    integers after validation.
    """
    lock_ms = int(lock_timeout_ms)
    stmt_ms = int(statement_timeout_ms)
    if lock_ms <= 0 or stmt_ms <= 0:
        raise ValueError("timeouts must be positive")
    cur.execute(f"SET LOCAL lock_timeout = '{lock_ms}ms'")
    cur.execute(f"SET LOCAL statement_timeout = '{stmt_ms}ms'")
