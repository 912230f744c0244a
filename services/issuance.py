from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from app.errors import ValidationError
from app.providers.base import PaymentGateway
from app.providers.lightning.factory import get_gateway
from app.reconcile.factory import get_store
from app.transactions.model import INVOICE_GENERATED
from app.transactions.repository import TransactionStore
from services.redaction import mask_phone

logger = logging.getLogger("lnmomo.issuance")

MIN_PHONE_DIGITS = 8
MAX_PHONE_DIGITS = 15

# app.transactions.amount is numeric(20, 2)
AMOUNT_QUANTUM = Decimal("0.01")
MAX_AMOUNT = Decimal("1e18")


def validate_phone(phone: Any) -> str:
    value = str(phone or "").strip()
    if not value:
        raise ValidationError("Phone number is required", code="PHONE_REQUIRED")
    digits = re.sub(r"\D", "", value)
    if not (MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS):
        raise ValidationError(
            f"Phone number must contain {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits",
            code="PHONE_INVALID",
        )
    return value


def validate_amount(amount: Any) -> Decimal:
    if amount is None or amount == "":
        raise ValidationError("Amount is required", code="AMOUNT_REQUIRED")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("Amount must be a number", code="AMOUNT_INVALID") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero", code="AMOUNT_INVALID")
    if value >= MAX_AMOUNT:
        raise ValidationError("Amount is too large", code="AMOUNT_INVALID")
    if value != value.quantize(AMOUNT_QUANTUM):
        raise ValidationError("Amount must have at most 2 decimal places", code="AMOUNT_INVALID")
    return value.quantize(AMOUNT_QUANTUM)


def create_transaction(
    phone: Any,
    amount: Any,
    *,
    store: Optional[TransactionStore] = None,
    gateway: Optional[PaymentGateway] = None,
) -> dict[str, Any]:
    phone = validate_phone(phone)
    amount = validate_amount(amount)
    store = store or get_store()
    gateway = gateway or get_gateway()

    invoice = gateway.issue_invoice(amount)
    tx = store.insert(
        {
            "status": INVOICE_GENERATED,
            "recipient_phone": phone,
            "amount": amount,
            "amount_crypto": invoice.amount_crypto,
            "invoice_id": invoice.invoice_id,
            "invoice_string": invoice.invoice_string,
            "invoice_source": invoice.source,
            "expires_at": invoice.expires_at,
        }
    )

    logger.info(
        "transaction created id=%s phone=%s amount=%s source=%s expires_at=%s",
        tx.id,
        mask_phone(phone),
        amount,
        invoice.source,
        invoice.expires_at.isoformat(),
    )
    return {
        "transaction_id": tx.id,
        "invoice_id": tx.invoice_id,
        "invoice_string": tx.invoice_string,
        "amount_crypto": tx.amount_crypto,
        "expires_at": tx.expires_at,
        "is_simulated": tx.is_simulated,
    }
