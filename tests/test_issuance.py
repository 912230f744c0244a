from __future__ import annotations

from decimal import Decimal

import pytest

from app.errors import ValidationError
from services.issuance import create_transaction, validate_amount, validate_phone


def test_validate_phone():
    assert validate_phone(" +237 670 000 001 ") == "+237 670 000 001"
    with pytest.raises(ValidationError) as exc:
        validate_phone(None)
    assert exc.value.code == "PHONE_REQUIRED"
    with pytest.raises(ValidationError) as exc:
        validate_phone("1234")
    assert exc.value.code == "PHONE_INVALID"
    with pytest.raises(ValidationError):
        validate_phone("1" * 16)


def test_validate_amount():
    assert validate_amount("12.50") == Decimal("12.50")
    assert validate_amount(1000) == Decimal("1000")
    for bad, code in [(None, "AMOUNT_REQUIRED"), ("", "AMOUNT_REQUIRED"), ("x", "AMOUNT_INVALID"),
                      ("0", "AMOUNT_INVALID"), ("-1", "AMOUNT_INVALID"), ("NaN", "AMOUNT_INVALID"),
                      ("Infinity", "AMOUNT_INVALID")]:
        with pytest.raises(ValidationError) as exc:
            validate_amount(bad)
        assert exc.value.code == code


def test_create_transaction_persists_invoice(store, gateway, clock):
    created = create_transaction("+237670000001", "1000", store=store, gateway=gateway)

    tx = store.get(created["transaction_id"])
    assert tx.status == "invoice_generated"
    assert tx.invoice_source == "simulated"
    assert created["expires_at"] == tx.expires_at
    assert created["is_simulated"] is True


def test_create_transaction_validation_precedes_issuance(store, gateway):
    with pytest.raises(ValidationError):
        create_transaction("+237670000001", "-1", store=store, gateway=gateway)
    assert gateway.calls["issue"] == 0


def test_creation_log_masks_phone(store, gateway, caplog):
    import logging

    caplog.set_level(logging.INFO, logger="lnmomo.issuance")
    create_transaction("+237670009911", "1000", store=store, gateway=gateway)

    messages = " ".join(r.getMessage() for r in caplog.records)
    assert "****9911" in messages
    assert "237670009911" not in messages


def test_validate_amount_matches_stored_precision():
    assert validate_amount("1000.5") == Decimal("1000.50")
    assert validate_amount("1000.500") == Decimal("1000.50")
    assert validate_amount("1000.5").as_tuple().exponent == -2
    for bad in ("0.004", "1000.555", "1e18", "1e40"):
        with pytest.raises(ValidationError) as exc:
            validate_amount(bad)
        assert exc.value.code == "AMOUNT_INVALID"


def test_sub_cent_amount_never_reaches_provider(store, gateway):
    with pytest.raises(ValidationError):
        create_transaction("+237670000001", "0.004", store=store, gateway=gateway)
    assert gateway.calls["issue"] == 0
    assert store.list_by_status(["invoice_generated"]) == []
