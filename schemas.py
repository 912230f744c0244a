# schemas.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from app.transactions.model import Transaction
from app.transactions.state_machine import display_status


# -------- ISSUANCE --------
class CreateTransactionRequest(BaseModel):
    # presence/format checked in services.issuance so failures are 400s
    phone: Optional[str] = None
    amount: Optional[Decimal] = None


class CreateTransactionResponse(BaseModel):
    transaction_id: str
    invoice_id: str
    invoice_string: str
    amount_crypto: Decimal
    expires_at: datetime
    is_simulated: bool


# -------- TRANSACTIONS --------
class TransactionResponse(BaseModel):
    id: str
    status: str
    display_status: str
    recipient_phone: str
    amount: Decimal
    amount_crypto: Decimal
    invoice_id: str
    invoice_string: str
    invoice_source: str
    expires_at: datetime
    paid_at: Optional[datetime] = None
    mobile_money_reference: Optional[str] = None
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_transaction(cls, tx: Transaction) -> "TransactionResponse":
        return cls(**tx.to_dict(), display_status=display_status(tx.status))


class CheckPaymentResponse(BaseModel):
    id: str
    status: str
    message: Optional[str] = None
    paid_at: Optional[datetime] = None
    mobile_money_reference: Optional[str] = None
    last_error: Optional[str] = None


class WaitResponse(BaseModel):
    id: str
    status: str
    changed: bool


# -------- SWEEP --------
class SweepItem(BaseModel):
    id: str
    status: str
    ok: bool
    message: Optional[str] = None
    error: Optional[str] = None
    paid_at: Optional[datetime] = None
    mobile_money_reference: Optional[str] = None
    last_error: Optional[str] = None


class SweepSummary(BaseModel):
    transitioned: int
    unchanged: int
    errors: int


class SweepResponse(BaseModel):
    run_at: datetime
    processed_count: int
    summary: SweepSummary
    results: List[SweepItem]
