# app/transactions/repository.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, ContextManager, Iterable, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from app.errors import PersistenceError
from app.transactions.model import Transaction
from app.transactions.state_machine import assert_transition
from db import get_conn

logger = logging.getLogger("lnmomo.store")

# Columns the reconciliation engine may write. Everything else is set at insert.
MUTABLE_FIELDS = frozenset({"status", "paid_at", "mobile_money_reference", "last_error"})

INSERT_FIELDS = (
    "recipient_phone",
    "amount",
    "amount_crypto",
    "invoice_id",
    "invoice_string",
    "invoice_source",
    "expires_at",
    "status",
)


class TransactionStore(Protocol):
    def get(self, transaction_id: str) -> Optional[Transaction]: ...

    def insert(self, fields: dict[str, Any]) -> Transaction: ...

    def update(self, transaction_id: str, fields: dict[str, Any], *, expected_status: str) -> bool: ...

    def list_by_status(self, statuses: Iterable[str]) -> list[Transaction]: ...


def check_update_fields(fields: dict[str, Any], expected_status: str) -> None:
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Immutable or unknown transaction fields: {', '.join(sorted(unknown))}")
    new_status = fields.get("status")
    if new_status is not None and new_status != expected_status:
        assert_transition(expected_status, new_status)


def _parse_id(transaction_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(transaction_id))
    except (TypeError, ValueError):
        return None


class PostgresTransactionStore:
    """
    app.transactions backed store.

    update() is a compare-and-swap on status: the row is only written when the
    persisted status still equals expected_status. paid_at and
    mobile_money_reference are COALESCEd so a set value is never replaced.
    """

    def __init__(self, conn_factory: Callable[[], ContextManager] = get_conn):
        self._conn = conn_factory

    def get(self, transaction_id: str) -> Optional[Transaction]:
        tx_id = _parse_id(transaction_id)
        if tx_id is None:
            return None
        try:
            with self._conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute("SELECT * FROM app.transactions WHERE id = %s::uuid", (str(tx_id),))
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            logger.exception("transaction read failed id=%s", transaction_id)
            raise PersistenceError(f"read failed: {type(exc).__name__}") from exc
        return Transaction.from_row(dict(row)) if row else None

    def insert(self, fields: dict[str, Any]) -> Transaction:
        missing = [f for f in INSERT_FIELDS if fields.get(f) is None]
        if missing:
            raise ValueError(f"Missing transaction fields: {', '.join(missing)}")

        try:
            with self._conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        """
                        INSERT INTO app.transactions (
                          id, status, recipient_phone, amount, amount_crypto,
                          invoice_id, invoice_string, invoice_source, expires_at,
                          created_at, updated_at
                        )
                        VALUES (%s::uuid, %s, %s, %s, %s, %s, %s, %s, %s, now(), now())
                        RETURNING *
                        """,
                        (
                            str(uuid.uuid4()),
                            fields["status"],
                            fields["recipient_phone"],
                            fields["amount"],
                            fields["amount_crypto"],
                            fields["invoice_id"],
                            fields["invoice_string"],
                            fields["invoice_source"],
                            fields["expires_at"],
                        ),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            logger.exception("transaction insert failed invoice_id=%s", fields.get("invoice_id"))
            raise PersistenceError(f"insert failed: {type(exc).__name__}") from exc
        return Transaction.from_row(dict(row))

    def update(self, transaction_id: str, fields: dict[str, Any], *, expected_status: str) -> bool:
        check_update_fields(fields, expected_status)
        tx_id = _parse_id(transaction_id)
        if tx_id is None:
            return False

        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE app.transactions
                        SET
                          status = COALESCE(%s, status),
                          paid_at = COALESCE(paid_at, %s),
                          mobile_money_reference = COALESCE(mobile_money_reference, %s),
                          last_error = COALESCE(%s, last_error),
                          updated_at = now()
                        WHERE id = %s::uuid
                          AND status = %s
                        """,
                        (
                            fields.get("status"),
                            fields.get("paid_at"),
                            fields.get("mobile_money_reference"),
                            fields.get("last_error"),
                            str(tx_id),
                            expected_status,
                        ),
                    )
                    return cur.rowcount == 1
        except psycopg2.Error as exc:
            logger.exception("transaction update failed id=%s", transaction_id)
            raise PersistenceError(f"update failed: {type(exc).__name__}") from exc

    def list_by_status(self, statuses: Iterable[str]) -> list[Transaction]:
        wanted = list(statuses)
        if not wanted:
            return []
        try:
            with self._conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        """
                        SELECT *
                        FROM app.transactions
                        WHERE status = ANY(%s)
                        ORDER BY created_at ASC
                        """,
                        (wanted,),
                    )
                    rows = cur.fetchall()
        except psycopg2.Error as exc:
            logger.exception("transaction scan failed statuses=%s", wanted)
            raise PersistenceError(f"scan failed: {type(exc).__name__}") from exc
        return [Transaction.from_row(dict(r)) for r in rows]

    def ping(self) -> tuple[bool, str | None]:
        try:
            with self._conn() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1;")
                    cur.fetchone()
            return True, None
        except Exception as exc:
            return False, f"{type(exc).__name__}: {exc}"
