from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

TransactionStatus = Literal[
    "pending",
    "invoice_generated",
    "paid",
    "sending_mobile_money",
    "completed",
    "failed",
]

PENDING = "pending"
INVOICE_GENERATED = "invoice_generated"
PAID = "paid"
SENDING_MOBILE_MONEY = "sending_mobile_money"
COMPLETED = "completed"
FAILED = "failed"

InvoiceSource = Literal["live", "simulated"]

LIVE = "live"
SIMULATED = "simulated"


@dataclass(frozen=True)
class Transaction:
    id: str
    status: str
    recipient_phone: str
    amount: Decimal
    amount_crypto: Decimal
    invoice_id: str
    invoice_string: str
    invoice_source: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    mobile_money_reference: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def is_simulated(self) -> bool:
        return self.invoice_source == SIMULATED

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Transaction":
        return cls(
            id=str(row["id"]),
            status=row["status"],
            recipient_phone=row["recipient_phone"],
            amount=Decimal(str(row["amount"])),
            amount_crypto=Decimal(str(row["amount_crypto"])),
            invoice_id=row["invoice_id"],
            invoice_string=row["invoice_string"],
            invoice_source=row["invoice_source"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            paid_at=row.get("paid_at"),
            mobile_money_reference=row.get("mobile_money_reference"),
            last_error=row.get("last_error"),
        )
