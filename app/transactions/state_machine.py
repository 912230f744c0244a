# app/transactions/state_machine.py
from __future__ import annotations

from app.transactions.model import (
    COMPLETED,
    FAILED,
    INVOICE_GENERATED,
    PAID,
    PENDING,
    SENDING_MOBILE_MONEY,
)


class InvalidTransition(Exception):
    pass


ALLOWED = {
    PENDING: {INVOICE_GENERATED, FAILED},
    INVOICE_GENERATED: {PAID, FAILED},
    PAID: {SENDING_MOBILE_MONEY},
    SENDING_MOBILE_MONEY: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}

TERMINAL_STATUSES = (COMPLETED, FAILED)

# what the batch sweep picks up; "pending" is legacy and never advanced here
IN_FLIGHT_STATUSES = (INVOICE_GENERATED, PAID, SENDING_MOBILE_MONEY)


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(f"Illegal transaction transition: {old} -> {new}")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def display_status(status: str) -> str:
    if status == PENDING:
        return INVOICE_GENERATED
    return status


def assert_completed_invariant(new_status: str, mobile_money_reference: str | None) -> None:
    """
    Invariant: a completed transaction MUST carry its payout reference.
    """
    if new_status == COMPLETED and not mobile_money_reference:
        raise ValueError("Invariant violation: status=completed requires mobile_money_reference")


# position along the forward-only path; pending is the legacy spelling of invoice_generated
STATUS_RANK = {
    PENDING: 0,
    INVOICE_GENERATED: 0,
    PAID: 1,
    SENDING_MOBILE_MONEY: 2,
    COMPLETED: 3,
    FAILED: 3,
}


def is_ahead(status: str, other: str) -> bool:
    """True when `status` is strictly further along the path than `other`."""
    return STATUS_RANK.get(status, -1) > STATUS_RANK.get(other, -1)
