from __future__ import annotations

import httpx
import pytest

from app.errors import UpstreamAuthError
from app.providers.lightning.auth import Authenticator
from app.providers.lightning.config import EjaraConfig
from app.providers.lightning.http import HttpClient


def _cfg(**overrides) -> EjaraConfig:
    values = dict(
        mode="live",
        base_url="https://ejara.test",
        client_key="ck",
        client_secret="cs",
        email="ops@example.com",
        password="pw",
        timeout_s=5.0,
        max_retries=0,
        token_ttl_s=3600,
    )
    values.update(overrides)
    return EjaraConfig(**values)


class _Clock:
    def __init__(self):
        self.t = 1_000.0

    def __call__(self):
        return self.t


def _auth(handler, clock=None) -> Authenticator:
    http = HttpClient(max_retries=0, transport=httpx.MockTransport(handler), sleep=lambda s: None)
    return Authenticator(_cfg(), http, clock=clock or _Clock())


def test_token_is_cached_until_expiry():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/accounts/authenticate"
        assert request.headers["client-key"] == "ck"
        assert request.headers["client-secret"] == "cs"
        calls["n"] += 1
        return httpx.Response(200, json={"data": {"token": f"tok-{calls['n']}", "expiresIn": 120}})

    clock = _Clock()
    auth = _auth(handler, clock)

    assert auth.get_token() == "tok-1"
    assert auth.get_token() == "tok-1"
    assert calls["n"] == 1

    # refreshed 30s before the provider expiry
    clock.t += 95
    assert auth.get_token() == "tok-2"
    assert calls["n"] == 2


def test_default_ttl_when_provider_omits_expiry():
    def handler(request):
        return httpx.Response(200, json={"token": "tok"})

    clock = _Clock()
    auth = _auth(handler, clock)
    auth.get_token()
    clock.t += 3000
    assert auth.get_token() == "tok"


def test_auth_failure_raises_and_clears_token():
    responses = [
        httpx.Response(200, json={"data": {"accessToken": "tok-1"}}),
        httpx.Response(401, json={"message": "bad credentials"}),
    ]

    def handler(request):
        return responses.pop(0)

    auth = _auth(handler)
    assert auth.get_token() == "tok-1"

    auth.invalidate()
    with pytest.raises(UpstreamAuthError):
        auth.get_token()
    assert auth._token is None


def test_missing_token_in_response_is_auth_error():
    auth = _auth(lambda request: httpx.Response(200, json={"data": {}}))
    with pytest.raises(UpstreamAuthError):
        auth.get_token()
