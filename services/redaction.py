from __future__ import annotations

import re
from typing import Any

_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "password",
    "client-key",
)

_PHONE_KEY_MARKERS = ("phone", "msisdn")


def mask_phone(value: str | None) -> str:
    digits = re.sub(r"\D", "", value or "")
    if len(digits) <= 4:
        return "****"
    return f"****{digits[-4:]}"


def _mask_email(match: re.Match) -> str:
    return f"{match.group(1)}***{match.group(3)}"


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def _is_phone_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _PHONE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _EMAIL_RE.sub(_mask_email, value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(k):
            out[k] = "[REDACTED]"
        elif _is_phone_key(k) and isinstance(v, str):
            out[k] = mask_phone(v)
        else:
            out[k] = redact_value(v)
    return out
