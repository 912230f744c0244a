# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Protocol

PayoutState = Literal["pending", "completed", "failed"]


@dataclass(frozen=True)
class IssuedInvoice:
    invoice_id: str
    invoice_string: str
    amount_crypto: Decimal
    expires_at: datetime
    source: str  # "live" | "simulated"

    @property
    def is_simulated(self) -> bool:
        return self.source == "simulated"


@dataclass(frozen=True)
class InvoiceStatus:
    paid: bool
    status: str
    provider_tx_id: Optional[str] = None


@dataclass(frozen=True)
class PayoutResult:
    success: bool
    payment_reference: Optional[str] = None
    error: Optional[str] = None
    response: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class PayoutStatus:
    status: PayoutState
    # False => upstream could not be asked; status is only a placeholder
    success: bool = True


class PaymentGateway(Protocol):
    def issue_invoice(self, amount: Decimal) -> IssuedInvoice: ...

    def check_invoice_paid(self, invoice_id: str, source: str) -> InvoiceStatus: ...

    def initiate_payout(self, phone: str, amount: Decimal, reference: str, source: str) -> PayoutResult: ...

    def check_payout_status(self, reference: str, source: str) -> PayoutStatus: ...
