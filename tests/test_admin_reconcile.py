from __future__ import annotations

from fastapi.testclient import TestClient

from app.errors import PersistenceError
from app.providers.base import InvoiceStatus
from app.transactions.model import COMPLETED
from tests.conftest import make_tx


def test_sweep_endpoint(client: TestClient, store, gateway, clock):
    tx = make_tx(store, clock)
    gateway.invoice = InvoiceStatus(paid=True, status="PAID")

    r = client.post("/v1/admin/reconcile/sweep")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["processed_count"] == 1
    assert body["summary"] == {"transitioned": 1, "unchanged": 0, "errors": 0}
    assert body["results"][0]["id"] == tx.id
    assert body["results"][0]["status"] == COMPLETED
    assert body["results"][0]["ok"] is True


def test_sweep_requires_admin_key_when_configured(client: TestClient, monkeypatch):
    monkeypatch.setattr("deps.admin.settings.ADMIN_API_KEY", "s3cret")

    assert client.post("/v1/admin/reconcile/sweep").status_code == 403
    assert client.post("/v1/admin/reconcile/sweep", headers={"X-Admin-Key": "wrong"}).status_code == 403
    assert client.post("/v1/admin/reconcile/sweep", headers={"X-Admin-Key": "s3cret"}).status_code == 200


def test_sweep_store_failure_is_500(client: TestClient, store, monkeypatch):
    def broken(statuses):
        raise PersistenceError("scan failed")

    monkeypatch.setattr(store, "list_by_status", broken)
    r = client.post("/v1/admin/reconcile/sweep")
    assert r.status_code == 500
    assert r.json()["detail"] == "Failed to load transactions"
