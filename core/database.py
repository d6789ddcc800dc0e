"""
core/database.py -- Shared SQLAlchemy engine, metadata and transaction helper.

auth/store.py and catalog/store.py declare their tables on the one `metadata`
object below and run against one Engine. Sharing the engine is what lets a
link token consume() and its domain effect (password change, ownership
transfer, ...) commit or roll back together: the workflow opens one
transaction and hands the Connection to both stores.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses stay the
authoritative representation. Swapping SQLite for PostgreSQL is a connection
string change.

Layer rule: core/ is the kernel. No project imports.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Connection, Engine

metadata = MetaData()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Create the process-wide Engine.

    Stores call metadata.create_all() on it when they are constructed.

    check_same_thread=False: FastAPI runs sync route handlers in a thread
    pool, so one pooled SQLite connection may be used from several threads
    over its lifetime (never concurrently).
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def transaction(engine: Engine, conn: Connection | None = None) -> Iterator[Connection]:
    """Yield a connection inside a transaction.

    With conn=None a new transaction is opened with engine.begin() and
    committed on clean exit (rolled back on exception). With an existing conn
    the caller's transaction is joined and the caller owns commit/rollback.
    """
    if conn is not None:
        yield conn
        return
    with engine.begin() as new_conn:
        yield new_conn


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    # Fixed-width microseconds keep stored strings lexically sortable.
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    """Parse a stored ISO 8601 timestamp. Naive values are treated as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
