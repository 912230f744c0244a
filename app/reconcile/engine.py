# app/reconcile/engine.py
"""
Transaction reconciliation.

One call to ReconciliationEngine.reconcile() takes a transaction snapshot as far
forward as the provider allows:

    invoice_generated --(expired)--------------------------> failed
    invoice_generated --(invoice paid)--> paid
    paid --(claim)--> sending_mobile_money --(payout ok)----> completed
                                          --(payout error)--> failed
    sending_mobile_money + reference --(payout status)-----> completed | failed

Every write is conditional on the status this call last observed, so when two
callers race on the same row only one of them wins each step. The paid ->
sending_mobile_money claim is written before the payout request goes out;
the loser of that claim never calls the payout API.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from app.errors import UpstreamAuthError
from app.providers.base import PaymentGateway, PayoutResult
from app.reconcile.events import TransitionBus, TransitionEvent
from app.transactions.model import (
    COMPLETED,
    FAILED,
    INVOICE_GENERATED,
    PAID,
    PENDING,
    SENDING_MOBILE_MONEY,
    Transaction,
)
from app.transactions.repository import TransactionStore
from app.transactions.state_machine import assert_completed_invariant, assert_transition, is_terminal

logger = logging.getLogger("lnmomo.reconcile")

DEFAULT_PAYOUT_STALE_AFTER = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconcileOutcome:
    id: str
    status: str
    previous_status: str
    changed_fields: dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status

    def to_response(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "status": self.status}
        for k, v in self.changed_fields.items():
            out[k] = v.isoformat() if isinstance(v, datetime) else v
        if self.message:
            out["message"] = self.message
        return out


class _LostRace(Exception):
    pass


class ReconciliationEngine:
    def __init__(
        self,
        store: TransactionStore,
        gateway: PaymentGateway,
        *,
        clock: Callable[[], datetime] = _utcnow,
        bus: Optional[TransitionBus] = None,
        payout_stale_after: timedelta = DEFAULT_PAYOUT_STALE_AFTER,
    ):
        self.store = store
        self.gateway = gateway
        self.bus = bus
        self.payout_stale_after = payout_stale_after
        self._clock = clock

    def reconcile(self, tx: Transaction) -> ReconcileOutcome:
        if is_terminal(tx.status) or tx.status == PENDING:
            return ReconcileOutcome(id=tx.id, status=tx.status, previous_status=tx.status)

        changed: dict[str, Any] = {}
        try:
            status, message = self._advance(tx, changed)
        except _LostRace:
            current = self.store.get(tx.id) or tx
            logger.info(
                "transaction %s advanced concurrently; persisted status=%s",
                tx.id,
                current.status,
            )
            return ReconcileOutcome(
                id=tx.id,
                status=current.status,
                previous_status=tx.status,
                changed_fields=changed,
                message="Transaction advanced concurrently",
            )

        return ReconcileOutcome(
            id=tx.id,
            status=status,
            previous_status=tx.status,
            changed_fields=changed,
            message=message,
        )

    def _advance(self, tx: Transaction, changed: dict[str, Any]) -> tuple[str, Optional[str]]:
        now = self._clock()
        status = tx.status

        if status == INVOICE_GENERATED and tx.is_expired(now):
            self._transition(tx, INVOICE_GENERATED, FAILED, {})
            return FAILED, "Invoice expired"

        if status == INVOICE_GENERATED:
            if not self._invoice_paid(tx):
                return status, None
            fields = {"paid_at": now}
            self._transition(tx, INVOICE_GENERATED, PAID, fields)
            changed.update(fields)
            status = PAID

        if status == PAID:
            if tx.mobile_money_reference:
                logger.warning("transaction %s is paid but already has a payout reference; not re-sending", tx.id)
                return status, None
            return self._send_payout(tx, changed)

        if status == SENDING_MOBILE_MONEY:
            if tx.mobile_money_reference:
                return self._poll_payout(tx, changed)
            return self._expire_lost_payout(tx, now, changed)

        return status, None

    def _invoice_paid(self, tx: Transaction) -> bool:
        try:
            result = self.gateway.check_invoice_paid(tx.invoice_id, tx.invoice_source)
        except UpstreamAuthError:
            raise
        except Exception:
            logger.exception("invoice check failed tx=%s invoice_id=%s", tx.id, tx.invoice_id)
            return False
        if result.status == "ERROR":
            logger.warning("invoice check error tx=%s invoice_id=%s; retry next pass", tx.id, tx.invoice_id)
        return bool(result.paid)

    def _send_payout(self, tx: Transaction, changed: dict[str, Any]) -> tuple[str, Optional[str]]:
        # claim first: a concurrent caller that still sees "paid" loses the CAS below
        self._transition(tx, PAID, SENDING_MOBILE_MONEY, {})

        try:
            result = self.gateway.initiate_payout(tx.recipient_phone, tx.amount, tx.id, tx.invoice_source)
        except Exception as exc:
            logger.exception("payout initiation raised tx=%s", tx.id)
            result = PayoutResult(success=False, error=f"{type(exc).__name__}: {exc}")

        if result.success and result.payment_reference:
            fields = {"mobile_money_reference": result.payment_reference}
            final, message = COMPLETED, "Mobile money sent successfully"
        else:
            fields = {"last_error": result.error or "Payout initiation failed"}
            final, message = FAILED, "Failed to send mobile money"
            logger.warning("payout failed tx=%s err=%s", tx.id, fields["last_error"])

        try:
            self._transition(tx, SENDING_MOBILE_MONEY, final, fields)
        except Exception:
            logger.error(
                "payout outcome not persisted tx=%s outcome=%s reference=%s",
                tx.id,
                final,
                result.payment_reference,
            )
            raise

        changed.update(fields)
        return final, message

    def _poll_payout(self, tx: Transaction, changed: dict[str, Any]) -> tuple[str, Optional[str]]:
        try:
            result = self.gateway.check_payout_status(tx.mobile_money_reference, tx.invoice_source)
        except UpstreamAuthError:
            raise
        except Exception:
            logger.exception("payout status check failed tx=%s", tx.id)
            return SENDING_MOBILE_MONEY, None

        if not result.success or result.status == "pending":
            return SENDING_MOBILE_MONEY, None

        if result.status == "completed":
            self._transition(tx, SENDING_MOBILE_MONEY, COMPLETED, {})
            return COMPLETED, "Mobile money delivered"

        fields = {"last_error": "Provider reported payout failed"}
        self._transition(tx, SENDING_MOBILE_MONEY, FAILED, fields)
        changed.update(fields)
        return FAILED, "Mobile money payout failed"

    def _expire_lost_payout(self, tx: Transaction, now: datetime, changed: dict[str, Any]) -> tuple[str, Optional[str]]:
        # claimed but the outcome was never written; the payout may or may not
        # have gone out, so it is failed for review instead of being re-sent
        if now - tx.updated_at <= self.payout_stale_after:
            return SENDING_MOBILE_MONEY, None

        fields = {"last_error": "payout outcome unknown"}
        self._transition(tx, SENDING_MOBILE_MONEY, FAILED, fields)
        changed.update(fields)
        logger.error("transaction %s stuck in sending_mobile_money without reference; marked failed", tx.id)
        return FAILED, "Payout outcome unknown"

    def _transition(self, tx: Transaction, from_status: str, to_status: str, fields: dict[str, Any]) -> None:
        assert_transition(from_status, to_status)
        assert_completed_invariant(to_status, fields.get("mobile_money_reference") or tx.mobile_money_reference)

        if not self.store.update(tx.id, {"status": to_status, **fields}, expected_status=from_status):
            raise _LostRace()

        if self.bus is not None:
            self.bus.publish(
                TransitionEvent(
                    transaction_id=tx.id,
                    from_status=from_status,
                    to_status=to_status,
                    at=self._clock(),
                    fields=dict(fields),
                )
            )
