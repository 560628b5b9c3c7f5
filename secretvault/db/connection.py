"""
Pooled PostgreSQL connections for the secret repository.

One process-wide ThreadedConnectionPool, sized from ``DatabaseConfig``, is
created lazily on first use. FastAPI runs the sync handlers in a threadpool,
so each request thread checks a connection out for the length of one
transaction and hands it back.

Usage:
    from secretvault.db import get_connection

    with get_connection() as conn:
        cur = conn.cursor()
        cur.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.extensions
import psycopg2.pool

from secretvault.config import get_config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _open_pool() -> psycopg2.pool.ThreadedConnectionPool:
    cfg = get_config().db
    logger.info(
        "Opening PostgreSQL pool %s@%s:%s/%s (%d-%d connections)",
        cfg.user,
        cfg.host or "unix-socket",
        cfg.port,
        cfg.name,
        cfg.pool_min,
        cfg.pool_max,
    )
    try:
        return psycopg2.pool.ThreadedConnectionPool(cfg.pool_min, cfg.pool_max, **cfg.connect_kwargs)
    except psycopg2.OperationalError as e:
        raise ConnectionError(
            f"Cannot connect to PostgreSQL at {cfg.host or 'unix-socket'}:{cfg.port}/{cfg.name}: {e}"
        ) from e


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Return the shared pool, opening it on first call."""
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            _pool = _open_pool()
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Check out a connection for one transaction.

    Commits when the block exits cleanly, rolls back when it raises. A
    connection whose socket died mid-transaction is discarded instead of
    being returned to the pool.
    """
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        pool.putconn(conn, close=bool(conn.closed))


def close_pool() -> None:
    """Close every pooled connection. The next get_connection() reopens."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            logger.info("PostgreSQL pool closed")
            _pool = None
