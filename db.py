# db.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection
from psycopg2.pool import ThreadedConnectionPool

from settings import settings

# sync routes run on the threadpool; several threads may hit the first get_conn() at once
_pool: ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def init_pool(dsn: str | None = None) -> None:
    """
    Initialize the PostgreSQL connection pool.
    Called lazily by the first get_conn().
    """
    global _pool
    if _pool is not None:
        return

    with _pool_lock:
        if _pool is not None:
            return

        dsn = dsn or settings.DATABASE_URL
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set (or use STORE_BACKEND=memory).")

        psycopg2.extras.register_uuid()
        _pool = ThreadedConnectionPool(minconn=1, maxconn=10, dsn=dsn, connect_timeout=5)


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool:
            _pool.closeall()
            _pool = None


@contextmanager
def get_conn() -> Iterator[Connection]:
    """
    Transactional connection: commits on success, rolls back on error.
    """
    init_pool()
    pool = _pool

    conn = pool.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = '5000ms';")
            cur.execute("SET application_name = 'lnmomo_api';")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        pool.putconn(conn)
