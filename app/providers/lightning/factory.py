# app/providers/lightning/factory.py
from __future__ import annotations

from threading import Lock
from typing import Optional

from app.providers.lightning.ejara import EjaraGateway

_GATEWAY: Optional[EjaraGateway] = None
_lock = Lock()


def get_gateway() -> EjaraGateway:
    """
    Process-wide gateway. One instance means one token cache and one
    simulator table shared by every driver in the process.
    """
    global _GATEWAY
    if _GATEWAY is None:
        with _lock:
            if _GATEWAY is None:
                _GATEWAY = EjaraGateway()
    return _GATEWAY


def reset_gateway() -> None:
    global _GATEWAY
    with _lock:
        if _GATEWAY is not None:
            _GATEWAY.http.close()
        _GATEWAY = None
