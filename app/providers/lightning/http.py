# app/providers/lightning/http.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from app.errors import UpstreamTransientError

logger = logging.getLogger("lnmomo.http")

BASE_BACKOFF_SECONDS = 0.5
REDACTED_HEADERS = {"authorization", "client-secret", "client-key"}


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[Any]
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def is_retryable_http(code: int) -> bool:
    # transient / throttling / gateway issues
    return code in (408, 425, 429, 500, 502, 503, 504)


class HttpClient:
    """
    Thin httpx wrapper: every call has a timeout, idempotent calls get bounded
    retries with exponential backoff. Transport failures that survive the
    retries surface as UpstreamTransientError.
    """

    def __init__(
        self,
        timeout_s: float = 15.0,
        max_retries: int = 2,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=True, transport=transport)
        self.max_retries = max_retries
        self._sleep = sleep

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> HttpResponse:
        return self._send("POST", url, headers=headers, json_body=json_body, retry=retry)

    def get(self, url: str, *, headers: dict[str, str], retry: bool = True) -> HttpResponse:
        return self._send("GET", url, headers=headers, json_body=None, retry=retry)

    def close(self) -> None:
        self._client.close()

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None,
        retry: bool,
    ) -> HttpResponse:
        attempts = 1 + (self.max_retries if retry else 0)
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                r = self._client.request(method, url, headers=headers, json=json_body)
            except httpx.TransportError as exc:
                last_exc = exc
                logger.warning(
                    "upstream transport error method=%s url=%s attempt=%s/%s err=%s",
                    method, url, attempt, attempts, type(exc).__name__,
                )
            else:
                resp = self._wrap(r)
                logger.debug(
                    "upstream %s %s headers=%s -> %s",
                    method, url, _safe_headers(headers), resp.status_code,
                )
                if not is_retryable_http(resp.status_code) or attempt == attempts:
                    return resp
                logger.warning(
                    "upstream retryable status method=%s url=%s status=%s attempt=%s/%s",
                    method, url, resp.status_code, attempt, attempts,
                )

            if attempt < attempts:
                self._sleep(BASE_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise UpstreamTransientError(f"{method} {url} failed: {type(last_exc).__name__}: {last_exc}")

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)


def _safe_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: ("REDACTED" if k.lower() in REDACTED_HEADERS else v) for k, v in (headers or {}).items()}
