# app/reconcile/events.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from collections import OrderedDict
from threading import Condition, Lock
from typing import Any, Callable, Optional

from app.transactions.state_machine import is_ahead

logger = logging.getLogger("lnmomo.events")


@dataclass(frozen=True)
class TransitionEvent:
    transaction_id: str
    from_status: str
    to_status: str
    at: datetime
    fields: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[TransitionEvent], None]


class TransitionBus:
    """
    In-process publish/subscribe for persisted status transitions.

    Publishing never fails the caller: a subscriber that raises is logged and
    the remaining subscribers still run.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(fn)

        def unsubscribe() -> None:
            with self._lock:
                if fn in self._subscribers:
                    self._subscribers.remove(fn)

        return unsubscribe

    def publish(self, event: TransitionEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for fn in subscribers:
            try:
                fn(event)
            except Exception:
                logger.exception(
                    "transition subscriber failed tx=%s %s->%s",
                    event.transaction_id,
                    event.from_status,
                    event.to_status,
                )


def log_transition(event: TransitionEvent) -> None:
    logger.info(
        "transaction %s: %s -> %s",
        event.transaction_id,
        event.from_status,
        event.to_status,
    )


DEFAULT_WATCHER_CAPACITY = 10_000


class StatusWatcher:
    """
    Remembers the furthest published status per transaction and lets callers
    block until it moves past a status they already know.

    Only transitions published in this process are seen, and only the most
    recently touched `capacity` transactions are kept. Callers fall back to
    the store when this returns None.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        capacity: int = DEFAULT_WATCHER_CAPACITY,
    ) -> None:
        self._cond = Condition()
        self._latest: OrderedDict[str, str] = OrderedDict()
        self._clock = clock
        self._capacity = max(1, capacity)

    def __call__(self, event: TransitionEvent) -> None:
        with self._cond:
            current = self._latest.get(event.transaction_id)
            # events from racing publishers can arrive out of order
            if current is None or is_ahead(event.to_status, current):
                self._latest[event.transaction_id] = event.to_status
            self._latest.move_to_end(event.transaction_id)
            while len(self._latest) > self._capacity:
                self._latest.popitem(last=False)
            self._cond.notify_all()

    def latest(self, transaction_id: str) -> Optional[str]:
        with self._cond:
            return self._latest.get(transaction_id)

    def wait_for_change(self, transaction_id: str, known_status: str, timeout: float) -> Optional[str]:
        """
        Returns a status strictly ahead of known_status, or None if none was
        seen before timeout.
        """
        deadline = self._clock() + max(0.0, timeout)
        with self._cond:
            while True:
                current = self._latest.get(transaction_id)
                if current is not None and is_ahead(current, known_status):
                    return current
                remaining = deadline - self._clock()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
