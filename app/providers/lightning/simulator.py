# app/providers/lightning/simulator.py
from __future__ import annotations

import random
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_DOWN
from threading import Lock
from typing import Callable, Optional

from app.providers.base import InvoiceStatus, IssuedInvoice, PayoutResult, PayoutStatus

SATS_PER_BTC = Decimal(100_000_000)

# payment probability ramps to MAX_BASE_CHANCE over RAMP_SECONDS, plus noise
RAMP_SECONDS = 60.0
MAX_BASE_CHANCE = 0.4
RANDOM_CHANCE = 0.2

PAYOUT_SUCCESS_BIAS = 0.8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SimulatedInvoice:
    created_at: datetime
    expires_at: datetime
    amount: Decimal
    paid: bool = False


class InvoiceSimulator:
    """
    Local stand-in for the Lightning provider, used for simulated transactions.

    State lives in process memory; an invoice unknown to this process reports
    INVALID and is left to expire.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = Lock()
        self._invoices: dict[str, SimulatedInvoice] = {}

    def create_invoice(self, amount: Decimal, btc_per_fiat: Decimal) -> IssuedInvoice:
        now = self._clock()
        amount_crypto = (Decimal(amount) * btc_per_fiat).quantize(Decimal("0.000000000001"))
        sats = int((amount_crypto * SATS_PER_BTC).to_integral_value(rounding=ROUND_DOWN))

        ts_ms = int(now.timestamp() * 1000)
        invoice_id = f"sim-{ts_ms}-{int(amount)}-{secrets.token_hex(4)}"
        invoice_string = (
            f"lnbc{sats}{int(now.timestamp()):x}{secrets.token_hex(32)}{secrets.token_hex(64)}"
        )
        expires_at = now + timedelta(minutes=8 + self._rng.randint(0, 4))

        with self._lock:
            self._invoices[invoice_id] = SimulatedInvoice(
                created_at=now, expires_at=expires_at, amount=Decimal(amount)
            )

        return IssuedInvoice(
            invoice_id=invoice_id,
            invoice_string=invoice_string,
            amount_crypto=amount_crypto,
            expires_at=expires_at,
            source="simulated",
        )

    def check_invoice(self, invoice_id: str) -> InvoiceStatus:
        now = self._clock()
        with self._lock:
            inv = self._invoices.get(invoice_id)
            if inv is None:
                return InvoiceStatus(paid=False, status="INVALID")

            if not inv.paid and now > inv.expires_at:
                return InvoiceStatus(paid=False, status="EXPIRED")

            if not inv.paid:
                age_s = max(0.0, (now - inv.created_at).total_seconds())
                chance = min(age_s / RAMP_SECONDS, 1.0) * MAX_BASE_CHANCE + self._rng.random() * RANDOM_CHANCE
                if self._rng.random() < chance:
                    inv.paid = True

            if inv.paid:
                return InvoiceStatus(paid=True, status="PAID", provider_tx_id=f"tx-sim-{uuid.uuid4().hex[:12]}")
            return InvoiceStatus(paid=False, status="PENDING")

    def mark_paid(self, invoice_id: str) -> bool:
        """Demo hook: settle a simulated invoice now, unless unknown or expired."""
        now = self._clock()
        with self._lock:
            inv = self._invoices.get(invoice_id)
            if inv is None or now > inv.expires_at:
                return False
            inv.paid = True
            return True

    def send_payout(self, reference: str) -> PayoutResult:
        return PayoutResult(
            success=True,
            payment_reference=f"sim-momo-{uuid.uuid4().hex}",
            response={"simulated": True, "external_reference": reference},
        )

    def payout_status(self, reference: str) -> PayoutStatus:
        status = "completed" if self._rng.random() < PAYOUT_SUCCESS_BIAS else "pending"
        return PayoutStatus(status=status, success=True)
