# app/providers/lightning/config.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from settings import settings


def ln_mode() -> str:
    return (settings.LN_MODE or "live").strip().lower()


def is_strict_startup_validation() -> bool:
    return bool(settings.LN_STRICT_STARTUP_VALIDATION)


@dataclass(frozen=True)
class EjaraConfig:
    mode: str  # "live" | "simulated"
    base_url: str
    client_key: str
    client_secret: str
    email: str
    password: str
    timeout_s: float
    max_retries: int
    token_ttl_s: int


@dataclass(frozen=True)
class InvoiceConfig:
    expiry_minutes: int
    btc_per_fiat: Decimal


@dataclass(frozen=True)
class PayoutConfig:
    currency: str
    country_code: str
    dial_code: str
    full_name: str
    email: str
    upstream_error_policy: str  # "fail" | "simulate"


def ejara_config() -> EjaraConfig:
    return EjaraConfig(
        mode=ln_mode(),
        base_url=(settings.EJARA_BASE_URL or "").strip().rstrip("/"),
        client_key=(settings.EJARA_CLIENT_KEY or "").strip(),
        client_secret=(settings.EJARA_CLIENT_SECRET or "").strip(),
        email=(settings.EJARA_EMAIL or "").strip(),
        password=settings.EJARA_PASSWORD or "",
        timeout_s=float(settings.EJARA_HTTP_TIMEOUT_S),
        max_retries=int(settings.EJARA_MAX_RETRIES),
        token_ttl_s=int(settings.EJARA_TOKEN_TTL_S),
    )


def invoice_config() -> InvoiceConfig:
    return InvoiceConfig(
        expiry_minutes=int(settings.INVOICE_EXPIRY_MINUTES),
        btc_per_fiat=Decimal(str(settings.BTC_PER_FIAT)),
    )


def payout_config() -> PayoutConfig:
    return PayoutConfig(
        currency=(settings.PAYOUT_CURRENCY or "XAF").strip().upper(),
        country_code=(settings.PAYOUT_COUNTRY_CODE or "CM").strip().upper(),
        dial_code="".join(ch for ch in (settings.PAYOUT_DIAL_CODE or "") if ch.isdigit()),
        full_name=(settings.PAYOUT_FULL_NAME or "").strip(),
        email=(settings.PAYOUT_EMAIL or "").strip(),
        upstream_error_policy=(settings.PAYOUT_UPSTREAM_ERROR_POLICY or "fail").strip().lower(),
    )


def missing_credentials(cfg: EjaraConfig) -> list[str]:
    missing = []
    if not cfg.base_url:
        missing.append("EJARA_BASE_URL")
    if not cfg.client_key:
        missing.append("EJARA_CLIENT_KEY")
    if not cfg.client_secret:
        missing.append("EJARA_CLIENT_SECRET")
    if not cfg.email:
        missing.append("EJARA_EMAIL")
    if not cfg.password:
        missing.append("EJARA_PASSWORD")
    return missing
