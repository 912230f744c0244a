# app/providers/lightning/auth.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from app.errors import UpstreamAuthError
from app.providers.lightning.config import EjaraConfig
from app.providers.lightning.http import HttpClient

logger = logging.getLogger("lnmomo.ejara")

TOKEN_SAFETY_BUFFER_S = 30


def _extract_token(payload) -> tuple[Optional[str], Optional[int]]:
    if not isinstance(payload, dict):
        return None, None
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    token = data.get("token") or data.get("accessToken") or payload.get("token") or payload.get("accessToken")
    expires_in = data.get("expiresIn") or payload.get("expiresIn")
    try:
        expires_in = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None
    return token, expires_in


class Authenticator:
    """
    Owns the provider access token for one gateway instance.

    The token is refreshed lazily when absent or about to expire. Two threads
    may refresh at the same time; the last write wins, and both tokens are valid.
    """

    def __init__(
        self,
        cfg: EjaraConfig,
        http: HttpClient,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.http = http
        self._clock = clock
        self._token: Optional[str] = None
        self._token_exp: float = 0.0

    def get_token(self) -> str:
        now = self._clock()
        token = self._token
        if token and now < (self._token_exp - TOKEN_SAFETY_BUFFER_S):
            return token
        return self._refresh(now)

    def invalidate(self) -> None:
        self._token = None
        self._token_exp = 0.0

    def _refresh(self, now: float) -> str:
        url = f"{self.cfg.base_url}/api/v1/accounts/authenticate"
        headers = {
            "client-key": self.cfg.client_key,
            "client-secret": self.cfg.client_secret,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        body = {"email": self.cfg.email, "password": self.cfg.password}

        logger.info("ejara authenticate")
        resp = self.http.post(url, headers=headers, json_body=body)

        if not resp.ok:
            self.invalidate()
            raise UpstreamAuthError(f"authentication failed: HTTP {resp.status_code}")

        token, expires_in = _extract_token(resp.json)
        if not token:
            self.invalidate()
            raise UpstreamAuthError("authentication response carried no token")

        ttl = expires_in if expires_in and expires_in > 0 else self.cfg.token_ttl_s
        self._token = token
        self._token_exp = now + ttl
        return token
