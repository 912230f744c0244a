# app/providers/lightning/ejara.py
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from app.errors import UpstreamAuthError, UpstreamTransientError
from app.providers.base import InvoiceStatus, IssuedInvoice, PayoutResult, PayoutStatus
from app.providers.lightning.auth import Authenticator
from app.providers.lightning.config import (
    EjaraConfig,
    InvoiceConfig,
    PayoutConfig,
    ejara_config,
    invoice_config,
    missing_credentials,
    payout_config,
)
from app.providers.lightning.http import HttpClient, HttpResponse
from app.providers.lightning.simulator import InvoiceSimulator
from services.redaction import mask_phone, redact_dict

logger = logging.getLogger("lnmomo.ejara")

INVOICE_DESCRIPTION = "LNBTC to Mobile Money Payment"
PAID_INVOICE_STATUSES = {"PAID", "COMPLETED"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_phone(phone: str, dial_code: str = "") -> str:
    digits = re.sub(r"\D", "", phone or "")
    if digits and dial_code and not digits.startswith(dial_code):
        digits = dial_code + digits
    return digits


def _json_amount(amount: Decimal) -> int | float:
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def _data(resp: HttpResponse) -> Optional[dict[str, Any]]:
    if isinstance(resp.json, dict) and isinstance(resp.json.get("data"), dict):
        return resp.json["data"]
    return None


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None
    return parsed if parsed > 0 else None


def invoice_payloads(amount: Decimal, currency: str, expiry_minutes: int) -> list[dict[str, Any]]:
    # upstream has accepted both shapes at different times
    base = {
        "amount": _json_amount(amount),
        "currencyCode": currency,
        "description": INVOICE_DESCRIPTION,
    }
    return [
        base,
        {**base, "memo": "Payment to Mobile Money", "expiryInMinutes": expiry_minutes},
    ]


def map_payout_status(value: Any) -> str:
    status = str(value or "").strip().upper()
    if status in ("COMPLETED", "SUCCESSFUL", "SUCCESS"):
        return "completed"
    if status in ("FAILED", "REJECTED", "CANCELLED"):
        return "failed"
    return "pending"


class EjaraGateway:
    """
    Lightning invoice + mobile money payout gateway.

    Dispatch between the live provider and the local simulator is decided by
    the transaction's invoice source, never by the shape of an id. Apart from
    UpstreamAuthError, failures come back as result objects.
    """

    def __init__(
        self,
        cfg: Optional[EjaraConfig] = None,
        *,
        http: Optional[HttpClient] = None,
        authenticator: Optional[Authenticator] = None,
        simulator: Optional[InvoiceSimulator] = None,
        invoices: Optional[InvoiceConfig] = None,
        payouts: Optional[PayoutConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.cfg = cfg or ejara_config()
        self.http = http or HttpClient(timeout_s=self.cfg.timeout_s, max_retries=self.cfg.max_retries)
        self.auth = authenticator or Authenticator(self.cfg, self.http)
        self.simulator = simulator or InvoiceSimulator(clock=clock)
        self.invoices = invoices or invoice_config()
        self.payouts = payouts or payout_config()
        self._clock = clock

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def issue_invoice(self, amount: Decimal) -> IssuedInvoice:
        if self.cfg.mode == "simulated":
            return self._simulated_invoice(amount, reason="LN_MODE=simulated")

        missing = missing_credentials(self.cfg)
        if missing:
            return self._simulated_invoice(amount, reason=f"missing config {','.join(missing)}")

        try:
            token = self.auth.get_token()
        except (UpstreamAuthError, UpstreamTransientError) as exc:
            return self._simulated_invoice(amount, reason=f"authentication failed: {exc}")

        url = f"{self.cfg.base_url}/api/v1/transactions/generate-ln-invoice"
        payloads = invoice_payloads(amount, self.payouts.currency, self.invoices.expiry_minutes)
        for idx, payload in enumerate(payloads, start=1):
            try:
                # not idempotent: a replayed POST can mint a second invoice
                resp = self.http.post(url, headers=self._headers(token), json_body=payload, retry=False)
            except UpstreamTransientError as exc:
                logger.warning("ejara invoice payload=%s transport error: %s", idx, exc)
                continue

            if resp.status_code == 401:
                self.auth.invalidate()

            data = _data(resp)
            if resp.ok and data and data.get("paymentRequest"):
                return self._live_invoice(amount, data)

            logger.warning(
                "ejara invoice payload=%s rejected status=%s body=%s",
                idx,
                resp.status_code,
                resp.text[:300],
            )

        return self._simulated_invoice(amount, reason="all invoice payloads rejected")

    def _live_invoice(self, amount: Decimal, data: dict[str, Any]) -> IssuedInvoice:
        now = self._clock()
        invoice_id = str(data.get("id") or f"ejara-{int(now.timestamp() * 1000)}")
        expires_at = _parse_expiry(data.get("expiresAt")) or now + timedelta(minutes=self.invoices.expiry_minutes)
        amount_crypto = _parse_decimal(data.get("amountBtc")) or Decimal(amount) * self.invoices.btc_per_fiat
        logger.info("ejara invoice issued invoice_id=%s expires_at=%s", invoice_id, expires_at.isoformat())
        return IssuedInvoice(
            invoice_id=invoice_id,
            invoice_string=str(data["paymentRequest"]),
            amount_crypto=amount_crypto,
            expires_at=expires_at,
            source="live",
        )

    def _simulated_invoice(self, amount: Decimal, *, reason: str) -> IssuedInvoice:
        logger.warning("issuing simulated invoice amount=%s reason=%s", amount, reason)
        return self.simulator.create_invoice(amount, self.invoices.btc_per_fiat)

    def check_invoice_paid(self, invoice_id: str, source: str) -> InvoiceStatus:
        if source == "simulated":
            return self.simulator.check_invoice(invoice_id)

        try:
            token = self.auth.get_token()
            resp = self.http.get(
                f"{self.cfg.base_url}/api/v1/transactions/ln-invoice-status/{invoice_id}",
                headers=self._headers(token, json_body=False),
            )
        except UpstreamTransientError as exc:
            logger.warning("ejara invoice status transport error invoice_id=%s err=%s", invoice_id, exc)
            return InvoiceStatus(paid=False, status="ERROR")

        if resp.status_code == 401:
            self.auth.invalidate()

        data = _data(resp)
        if not resp.ok or data is None:
            logger.warning(
                "ejara invoice status failed invoice_id=%s status=%s body=%s",
                invoice_id,
                resp.status_code,
                resp.text[:300],
            )
            return InvoiceStatus(paid=False, status="ERROR")

        status = str(data.get("status") or "PENDING").strip().upper()
        return InvoiceStatus(
            paid=status in PAID_INVOICE_STATUSES,
            status=status,
            provider_tx_id=data.get("transactionId"),
        )

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    def initiate_payout(self, phone: str, amount: Decimal, reference: str, source: str) -> PayoutResult:
        clean_phone = canonical_phone(phone, self.payouts.dial_code)
        if not clean_phone:
            return PayoutResult(success=False, error="Phone number is required")

        if source == "simulated":
            logger.info("simulated payout phone=%s reference=%s", mask_phone(clean_phone), reference)
            return self.simulator.send_payout(reference)

        token = self.auth.get_token()
        payload = {
            "phoneNumber": clean_phone,
            "transactionType": "payin",
            "amount": str(amount),
            "fullName": self.payouts.full_name,
            "emailAddress": self.payouts.email,
            "currencyCode": self.payouts.currency,
            "countryCode": self.payouts.country_code,
            "paymentMode": "MOMO",
            "externalReference": reference,
            "featureCode": "PRO",
        }
        logger.info("ejara payout initiate payload=%s", redact_dict(payload))

        try:
            # never retried: a lost response may still mean money moved
            resp = self.http.post(
                f"{self.cfg.base_url}/api/v1/transactions/initiate-momo-payment",
                headers=self._headers(token),
                json_body=payload,
                retry=False,
            )
        except UpstreamTransientError as exc:
            return self._payout_upstream_error(reference, f"Provider error: {exc}")

        if resp.status_code == 401:
            self.auth.invalidate()

        if not resp.ok:
            return self._payout_upstream_error(
                reference,
                f"API Error: HTTP {resp.status_code}",
                response={"http_status": resp.status_code, "text": resp.text[:500]},
            )

        data = _data(resp)
        if data is None:
            return PayoutResult(success=False, error="Invalid response format from API", response=resp.json)

        payment_reference = data.get("paymentReference")
        if not payment_reference:
            return PayoutResult(success=False, error="Provider returned no paymentReference", response=data)

        logger.info("ejara payout accepted reference=%s payment_reference=%s", reference, payment_reference)
        return PayoutResult(success=True, payment_reference=str(payment_reference), response=data)

    def _payout_upstream_error(
        self,
        reference: str,
        error: str,
        *,
        response: Optional[dict[str, Any]] = None,
    ) -> PayoutResult:
        if self.payouts.upstream_error_policy == "simulate":
            logger.warning(
                "payout upstream error reference=%s err=%s; reporting SIMULATED success per "
                "PAYOUT_UPSTREAM_ERROR_POLICY=simulate",
                reference,
                error,
            )
            return PayoutResult(
                success=True,
                payment_reference=f"sim-momo-{uuid.uuid4().hex}",
                error=error,
                response={"simulated": True, **(response or {})},
            )

        logger.warning("payout upstream error reference=%s err=%s", reference, error)
        return PayoutResult(success=False, error=error, response=response)

    def check_payout_status(self, reference: str, source: str) -> PayoutStatus:
        if source == "simulated":
            return self.simulator.payout_status(reference)

        try:
            token = self.auth.get_token()
            resp = self.http.get(
                f"{self.cfg.base_url}/api/v1/transactions/{reference}",
                headers=self._headers(token, json_body=False),
            )
        except UpstreamTransientError as exc:
            logger.warning("ejara payout status transport error reference=%s err=%s", reference, exc)
            return PayoutStatus(status="pending", success=False)

        if resp.status_code == 401:
            self.auth.invalidate()

        data = _data(resp)
        if not resp.ok or data is None:
            logger.warning(
                "ejara payout status failed reference=%s status=%s body=%s",
                reference,
                resp.status_code,
                resp.text[:300],
            )
            return PayoutStatus(status="pending", success=False)

        return PayoutStatus(status=map_payout_status(data.get("status")), success=True)

    def _headers(self, token: str, *, json_body: bool = True) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "client-key": self.cfg.client_key,
            "client-secret": self.cfg.client_secret,
            "Accept": "application/json",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers
