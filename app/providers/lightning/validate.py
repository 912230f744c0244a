# app/providers/lightning/validate.py
from __future__ import annotations

import logging

from app.providers.lightning.config import (
    ejara_config,
    is_strict_startup_validation,
    ln_mode,
    missing_credentials,
    payout_config,
)

logger = logging.getLogger("lnmomo")


def validate_gateway_startup() -> None:
    mode = ln_mode()
    strict = is_strict_startup_validation()
    payout = payout_config()

    logger.info(
        "lightning gateway startup check: mode=%s strict=%s payout_error_policy=%s",
        mode,
        strict,
        payout.upstream_error_policy,
    )

    if mode not in ("live", "simulated"):
        raise RuntimeError(
            "Lightning gateway startup validation failed. "
            f"Invalid LN_MODE={mode!r}. Allowed: live, simulated"
        )

    if payout.upstream_error_policy == "simulate":
        logger.warning(
            "PAYOUT_UPSTREAM_ERROR_POLICY=simulate: payout upstream errors will be reported as "
            "simulated successes. Do not use with real money."
        )

    if mode == "simulated":
        return

    missing = missing_credentials(ejara_config())
    if not missing:
        return

    if not strict:
        logger.warning(
            "lightning gateway running live without credentials (%s); invoices will fall back to simulated",
            ", ".join(missing),
        )
        return

    raise RuntimeError(
        "Lightning gateway startup validation failed. "
        f"mode={mode} Missing required env vars: " + ", ".join(missing)
    )
