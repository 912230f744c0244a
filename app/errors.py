# app/errors.py
from __future__ import annotations

from fastapi import HTTPException


class LnMomoError(Exception):
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.code)
        if code:
            self.code = code


class ValidationError(LnMomoError):
    """Bad or missing input. Nothing was mutated."""

    code = "VALIDATION_ERROR"


class NotFoundError(LnMomoError):
    code = "TRANSACTION_NOT_FOUND"


class UpstreamAuthError(LnMomoError):
    """Provider refused our credentials; the cached token has been dropped."""

    code = "UPSTREAM_AUTH_FAILED"


class UpstreamTransientError(LnMomoError):
    """Network/5xx/malformed payload. Retried by the next reconciliation pass."""

    code = "UPSTREAM_UNAVAILABLE"


class PersistenceError(LnMomoError):
    code = "PERSISTENCE_FAILED"


ERROR_HTTP_MAP: dict[type[LnMomoError], tuple[int, str]] = {
    ValidationError: (400, "Invalid request"),
    NotFoundError: (404, "Transaction not found"),
    UpstreamAuthError: (502, "Payment provider authentication failed"),
    UpstreamTransientError: (502, "Payment provider unavailable"),
    PersistenceError: (500, "Failed to update transaction"),
}


def raise_http_from_error(exc: Exception) -> None:
    """
    Convert known domain errors into HTTP responses; otherwise fail closed.
    """
    for cls in type(exc).__mro__:
        if cls in ERROR_HTTP_MAP:
            status, message = ERROR_HTTP_MAP[cls]
            detail = str(exc) if cls is ValidationError else message
            raise HTTPException(status_code=status, detail=detail) from exc

    raise HTTPException(status_code=500, detail="Internal server error") from exc
