from __future__ import annotations

import threading
import time

import pytest

import db


class CountingPool:
    built = 0

    def __init__(self, *args, **kwargs):
        # widen the window between the None check and the assignment
        time.sleep(0.01)
        type(self).built += 1
        self.kwargs = kwargs
        self.closed = False

    def closeall(self):
        self.closed = True


def test_init_pool_builds_one_pool_under_concurrency(monkeypatch):
    CountingPool.built = 0
    monkeypatch.setattr(db, "ThreadedConnectionPool", CountingPool)
    monkeypatch.setattr(db.psycopg2.extras, "register_uuid", lambda: None)
    monkeypatch.setattr(db, "_pool", None)

    start = threading.Barrier(8)

    def worker():
        start.wait()
        db.init_pool("postgresql://lnmomo@localhost/lnmomo")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert CountingPool.built == 1
    assert isinstance(db._pool, CountingPool)
    assert db._pool.kwargs["maxconn"] == 10

    pool = db._pool
    db.close_pool()
    assert pool.closed
    assert db._pool is None


def test_init_pool_requires_dsn(monkeypatch):
    monkeypatch.setattr(db, "_pool", None)
    monkeypatch.setattr(db.settings, "DATABASE_URL", "")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        db.init_pool()
