# app/reconcile/factory.py
from __future__ import annotations

from datetime import timedelta
from threading import RLock
from typing import Any, Dict

from app.providers.lightning.factory import get_gateway, reset_gateway
from app.reconcile.engine import ReconciliationEngine
from app.reconcile.events import StatusWatcher, TransitionBus, log_transition
from settings import settings

_CACHE: Dict[str, Any] = {}
_lock = RLock()


def _cached(key: str, build):
    if key not in _CACHE:
        with _lock:
            if key not in _CACHE:
                _CACHE[key] = build()
    return _CACHE[key]


def _build_store():
    backend = (settings.STORE_BACKEND or "postgres").strip().lower()
    if backend == "memory":
        from app.transactions.memory import InMemoryTransactionStore
        return InMemoryTransactionStore()

    from app.transactions.repository import PostgresTransactionStore
    return PostgresTransactionStore()


def _build_bus() -> TransitionBus:
    bus = TransitionBus()
    bus.subscribe(log_transition)
    bus.subscribe(get_watcher())
    return bus


def get_store():
    return _cached("store", _build_store)


def get_watcher() -> StatusWatcher:
    return _cached("watcher", StatusWatcher)


def get_bus() -> TransitionBus:
    return _cached("bus", _build_bus)


def get_engine() -> ReconciliationEngine:
    return _cached(
        "engine",
        lambda: ReconciliationEngine(
            get_store(),
            get_gateway(),
            bus=get_bus(),
            payout_stale_after=timedelta(seconds=settings.PAYOUT_STALE_SECONDS),
        ),
    )


def reset() -> None:
    with _lock:
        _CACHE.clear()
    reset_gateway()
