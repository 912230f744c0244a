from __future__ import annotations

import httpx
import pytest

from app.errors import UpstreamTransientError
from app.providers.lightning.http import HttpClient, is_retryable_http


def _client(handler, max_retries=2):
    sleeps = []
    client = HttpClient(max_retries=max_retries, transport=httpx.MockTransport(handler), sleep=sleeps.append)
    return client, sleeps


def test_retries_with_backoff_then_succeeds():
    responses = [httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"ok": True})]
    client, sleeps = _client(lambda request: responses.pop(0))

    resp = client.get("https://upstream.test/x", headers={})

    assert resp.ok
    assert resp.json == {"ok": True}
    assert sleeps == [0.5, 1.0]


def test_returns_last_retryable_response():
    client, sleeps = _client(lambda request: httpx.Response(429, text="slow down"), max_retries=1)

    resp = client.get("https://upstream.test/x", headers={})

    assert resp.status_code == 429
    assert resp.json is None
    assert resp.text == "slow down"
    assert sleeps == [0.5]


def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"message": "bad"})

    client, sleeps = _client(handler)
    resp = client.post("https://upstream.test/x", headers={}, json_body={"a": 1})

    assert resp.status_code == 400
    assert len(calls) == 1
    assert sleeps == []


def test_retry_disabled_sends_once():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    client, _ = _client(handler)
    resp = client.post("https://upstream.test/x", headers={}, json_body={}, retry=False)

    assert resp.status_code == 503
    assert len(calls) == 1


def test_transport_errors_raise_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client, sleeps = _client(handler, max_retries=2)
    with pytest.raises(UpstreamTransientError):
        client.get("https://upstream.test/x", headers={"Authorization": "Bearer secret"})

    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_retryable_codes():
    assert is_retryable_http(503)
    assert is_retryable_http(429)
    assert not is_retryable_http(401)
    assert not is_retryable_http(404)
