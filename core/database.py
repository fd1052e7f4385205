"""
core/database.py -- Engine construction and the store-call guard.

Both repositories (auth/store.py, rbac/store.py) share one SQLAlchemy Engine
built here. The engine is created once at startup and passed into each store
explicitly -- there is no module-level database handle.

Timeouts:
  Every store call is bounded by Settings.store_timeout_seconds:
    SQLite      -- sqlite3 busy timeout (waiting on a locked database)
    PostgreSQL  -- connect_timeout plus a per-session statement_timeout
    Pooled URLs -- pool_timeout (waiting for a free connection)

Errors:
  guarded() converts any SQLAlchemyError raised inside a store call into
  StoreUnavailable so callers see one failure type that is distinct from the
  auth taxonomy. IntegrityError is the exception: repositories catch it
  themselves to detect duplicate keys, so it passes through untouched.

Layer rule: core/ is the kernel. No imports from api/, auth/ or rbac/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("accessgate.db")


class StoreUnavailable(Exception):
    """A store call failed or exceeded its timeout."""


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind the writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    """Build an Engine for db_url with every wait bounded by timeout_seconds.

    sqlite:///:memory: gets a StaticPool so all threads (TestClient runs sync
    handlers in a threadpool) see the same in-memory database.
    """
    connect_args: dict = {}
    engine_kwargs: dict = {}

    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_seconds
        if ":memory:" in db_url or "mode=memory" in db_url:
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_timeout"] = timeout_seconds
    else:
        engine_kwargs["pool_timeout"] = timeout_seconds
        if db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout_seconds))
            connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"

    engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
    if db_url.startswith("sqlite") and "memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def guarded(engine: Engine) -> Iterator[Connection]:
    """Yield a connection; re-raise database failures as StoreUnavailable."""
    try:
        with engine.connect() as conn:
            yield conn
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Store call failed: %s", type(exc).__name__)
        raise StoreUnavailable("The credential store is unavailable.") from exc


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        with guarded(engine) as conn:
            conn.execute(text("SELECT 1"))
    except StoreUnavailable:
        return False
    return True
