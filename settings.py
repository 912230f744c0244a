# settings.py
from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = Field(default="")
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"

    # -----------------------
    # Lightning provider (Mode Switch)
    # -----------------------
    LN_MODE: Literal["live", "simulated"] = "live"
    LN_STRICT_STARTUP_VALIDATION: bool = False

    EJARA_BASE_URL: str = "https://testbox-valentines-payment.ejaraapis.xyz"
    EJARA_CLIENT_KEY: str = ""
    EJARA_CLIENT_SECRET: str = ""
    EJARA_EMAIL: str = ""
    EJARA_PASSWORD: str = ""

    # HTTP timeouts / retries
    EJARA_HTTP_TIMEOUT_S: float = 15.0
    EJARA_MAX_RETRIES: int = Field(default=2, ge=0, le=5)
    EJARA_TOKEN_TTL_S: int = Field(default=3600, gt=0)

    # -----------------------
    # Invoices
    # -----------------------
    INVOICE_EXPIRY_MINUTES: int = Field(default=10, gt=0)
    BTC_PER_FIAT: Decimal = Decimal("0.0000000021")

    # -----------------------
    # Payouts
    # -----------------------
    PAYOUT_CURRENCY: str = "XAF"
    PAYOUT_COUNTRY_CODE: str = "CM"
    PAYOUT_DIAL_CODE: str = ""  # e.g. "237"; empty => digits only
    PAYOUT_FULL_NAME: str = "LNBTC Recipient"
    PAYOUT_EMAIL: str = "recipient@example.com"

    # "fail": surface upstream errors to the engine (transaction fails)
    # "simulate": substitute a simulated reference (demo deployments only)
    PAYOUT_UPSTREAM_ERROR_POLICY: Literal["fail", "simulate"] = "fail"
    PAYOUT_STALE_SECONDS: int = Field(default=300, gt=0)

    # -----------------------
    # Drivers
    # -----------------------
    RECONCILE_INTERVAL_SECONDS: int = Field(default=60, gt=0)
    DEMO_AUTO_SETTLE: bool = True
    ADMIN_API_KEY: str = ""

    LOG_LEVEL: str = "INFO"


settings = Settings()
