# app/transactions/memory.py
from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Iterable, Optional

from app.transactions.model import Transaction
from app.transactions.repository import INSERT_FIELDS, check_update_fields


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryTransactionStore:
    """
    Process-local store for STORE_BACKEND=memory (demos) and tests.

    Same contract as PostgresTransactionStore: update() only lands when the
    stored status equals expected_status, and set-once fields stay set.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._lock = Lock()
        self._rows: dict[str, Transaction] = {}

    def get(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._rows.get(str(transaction_id))

    def insert(self, fields: dict[str, Any]) -> Transaction:
        missing = [f for f in INSERT_FIELDS if fields.get(f) is None]
        if missing:
            raise ValueError(f"Missing transaction fields: {', '.join(missing)}")

        now = self._clock()
        tx = Transaction(
            id=str(fields.get("id") or uuid.uuid4()),
            status=fields["status"],
            recipient_phone=fields["recipient_phone"],
            amount=fields["amount"],
            amount_crypto=fields["amount_crypto"],
            invoice_id=fields["invoice_id"],
            invoice_string=fields["invoice_string"],
            invoice_source=fields["invoice_source"],
            expires_at=fields["expires_at"],
            created_at=fields.get("created_at") or now,
            updated_at=fields.get("updated_at") or now,
            paid_at=fields.get("paid_at"),
            mobile_money_reference=fields.get("mobile_money_reference"),
            last_error=fields.get("last_error"),
        )
        with self._lock:
            if tx.id in self._rows:
                raise ValueError(f"Duplicate transaction id: {tx.id}")
            self._rows[tx.id] = tx
        return tx

    def update(self, transaction_id: str, fields: dict[str, Any], *, expected_status: str) -> bool:
        check_update_fields(fields, expected_status)
        with self._lock:
            current = self._rows.get(str(transaction_id))
            if current is None or current.status != expected_status:
                return False

            changes: dict[str, Any] = {"updated_at": self._clock()}
            if fields.get("status") is not None:
                changes["status"] = fields["status"]
            if current.paid_at is None and fields.get("paid_at") is not None:
                changes["paid_at"] = fields["paid_at"]
            if current.mobile_money_reference is None and fields.get("mobile_money_reference"):
                changes["mobile_money_reference"] = fields["mobile_money_reference"]
            if fields.get("last_error") is not None:
                changes["last_error"] = fields["last_error"]

            self._rows[current.id] = dataclasses.replace(current, **changes)
            return True

    def list_by_status(self, statuses: Iterable[str]) -> list[Transaction]:
        wanted = set(statuses)
        with self._lock:
            rows = [tx for tx in self._rows.values() if tx.status in wanted]
        return sorted(rows, key=lambda tx: tx.created_at)

    def ping(self) -> tuple[bool, str | None]:
        return True, None
