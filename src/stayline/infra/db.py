"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short, safe transactions
- savepoint(): Nested rollback point inside a transaction
- fetchone/fetchall: Query helpers
- for_update(): SELECT ... FOR UPDATE helper
- is_unique_violation(): Detect the active-night constraint firing
"""

import os
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

import psycopg2
import psycopg2.errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    If the DSN carries no password and DB_PASSWORD is set, the password is
    passed separately (secret-manager mounted credentials).

    Returns:
        psycopg2 connection object.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Args:
        conn: Optional existing connection. If None, creates new one.

    Yields:
        Cursor for executing queries within the transaction.

    Example:
        with txn() as cur:
            cur.execute("INSERT INTO t (x) VALUES (%s)", (1,))
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
def savepoint(cur: PgCursor, name: str | None = None) -> Iterator[str]:
    """Run a block under a SAVEPOINT.

    On exception the transaction is rolled back to the savepoint (undoing
    only the block's writes and clearing an aborted state) and the exception
    is re-raised. On success the savepoint is released.

    Args:
        cur: Cursor inside an open transaction.
        name: Optional savepoint name (generated if omitted).

    Yields:
        The savepoint name.
    """
    sp = name or f"sp_{uuid.uuid4().hex[:12]}"
    cur.execute(f"SAVEPOINT {sp}")
    try:
        yield sp
    except Exception:
        cur.execute(f"ROLLBACK TO SAVEPOINT {sp}")
        raise
    cur.execute(f"RELEASE SAVEPOINT {sp}")


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute query and fetch one row.

    Args:
        cur: Database cursor.
        query: SQL query with %s placeholders.
        params: Query parameters.

    Returns:
        Single row tuple or None if no results.
    """
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    """Execute query and fetch all rows.

    Args:
        cur: Database cursor.
        query: SQL query with %s placeholders.
        params: Query parameters.

    Returns:
        List of row tuples.
    """
    cur.execute(query, params)
    return cur.fetchall()


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
    *,
    nowait: bool = False,
    skip_locked: bool = False,
) -> tuple[Any, ...] | None:
    """Execute SELECT ... FOR UPDATE and fetch one row.

    Appends FOR UPDATE clause to the query. Use within a transaction
    to lock the selected row until commit/rollback.

    Args:
        cur: Database cursor.
        query: SELECT query (without FOR UPDATE).
        params: Query parameters.
        nowait: If True, fail immediately if row is locked.
        skip_locked: If True, skip locked rows.

    Returns:
        Single row tuple or None if no results.

    Raises:
        ValueError: If both nowait and skip_locked are True.
    """
    if nowait and skip_locked:
        raise ValueError("Cannot use both nowait and skip_locked")

    suffix = " FOR UPDATE"
    if nowait:
        suffix += " NOWAIT"
    elif skip_locked:
        suffix += " SKIP LOCKED"

    full_query = query.rstrip().rstrip(";") + suffix
    cur.execute(full_query, params)
    return cur.fetchone()


def is_unique_violation(exc: BaseException, constraint: str | None = None) -> bool:
    """Return True if exc is a unique violation (optionally on a named index).

    Args:
        exc: Exception raised by psycopg2.
        constraint: Optional constraint/index name to match.
    """
    if not isinstance(exc, psycopg2.errors.UniqueViolation):
        return False
    if constraint is None:
        return True
    diag = getattr(exc, "diag", None)
    return getattr(diag, "constraint_name", None) == constraint
