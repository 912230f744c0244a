# tests/conftest.py

import os

# settings are read once at import; pin a hermetic config before main is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ["LN_MODE"] = "simulated"
os.environ["DEMO_AUTO_SETTLE"] = "false"
os.environ["ADMIN_API_KEY"] = ""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.providers.base import InvoiceStatus, IssuedInvoice, PayoutResult, PayoutStatus
from app.providers.lightning.factory import get_gateway
from app.reconcile.engine import ReconciliationEngine
from app.reconcile.events import StatusWatcher, TransitionBus
from app.reconcile.factory import get_engine, get_store, get_watcher
from app.transactions.memory import InMemoryTransactionStore
from app.transactions.model import INVOICE_GENERATED, SIMULATED
from main import app


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway:
    """
    Scriptable PaymentGateway. Counts every call so tests can assert what the
    engine did (or did not) ask the provider.
    """

    def __init__(self, clock: FixedClock, *, source: str = SIMULATED):
        self.clock = clock
        self.source = source
        self.invoice = InvoiceStatus(paid=False, status="PENDING")
        self.payout = PayoutResult(success=True, payment_reference="momo-ref-1")
        self.payout_status = PayoutStatus(status="pending", success=True)
        self.invoice_exc: Optional[Exception] = None
        self.payout_exc: Optional[Exception] = None
        self.payout_status_exc: Optional[Exception] = None
        self.calls: Dict[str, int] = {"issue": 0, "check_invoice": 0, "initiate_payout": 0, "check_payout": 0}
        self.payout_args: list = []
        self._lock = Lock()

    def _count(self, name: str) -> None:
        with self._lock:
            self.calls[name] += 1

    def issue_invoice(self, amount: Decimal) -> IssuedInvoice:
        self._count("issue")
        n = self.calls["issue"]
        return IssuedInvoice(
            invoice_id=f"inv-{n}",
            invoice_string=f"lnbc{n}fake",
            amount_crypto=Decimal(amount) * Decimal("0.0000000021"),
            expires_at=self.clock() + timedelta(minutes=10),
            source=self.source,
        )

    def check_invoice_paid(self, invoice_id: str, source: str) -> InvoiceStatus:
        self._count("check_invoice")
        if self.invoice_exc:
            raise self.invoice_exc
        return self.invoice

    def initiate_payout(self, phone: str, amount: Decimal, reference: str, source: str) -> PayoutResult:
        self._count("initiate_payout")
        with self._lock:
            self.payout_args.append((phone, amount, reference, source))
        if self.payout_exc:
            raise self.payout_exc
        return self.payout

    def check_payout_status(self, reference: str, source: str) -> PayoutStatus:
        self._count("check_payout")
        if self.payout_status_exc:
            raise self.payout_status_exc
        return self.payout_status


def make_tx(store, clock: FixedClock, **overrides: Any):
    fields = {
        "status": INVOICE_GENERATED,
        "recipient_phone": "+237670000001",
        "amount": Decimal("1000"),
        "amount_crypto": Decimal("0.0000021"),
        "invoice_id": "inv-1",
        "invoice_string": "lnbc1fake",
        "invoice_source": SIMULATED,
        "expires_at": clock() + timedelta(minutes=10),
    }
    fields.update(overrides)
    return store.insert(fields)


# ---------------------------
# Core fixtures
# ---------------------------

@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def store(clock: FixedClock) -> InMemoryTransactionStore:
    return InMemoryTransactionStore(clock=clock)


@pytest.fixture()
def gateway(clock: FixedClock) -> FakeGateway:
    return FakeGateway(clock)


@pytest.fixture()
def watcher() -> StatusWatcher:
    return StatusWatcher()


@pytest.fixture()
def bus(watcher: StatusWatcher) -> TransitionBus:
    b = TransitionBus()
    b.subscribe(watcher)
    return b


@pytest.fixture()
def engine(store, gateway, clock, bus) -> ReconciliationEngine:
    return ReconciliationEngine(store, gateway, clock=clock, bus=bus)


# ---------------------------
# Client
# ---------------------------

@pytest.fixture()
def client(store, gateway, engine, watcher) -> TestClient:
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_watcher] = lambda: watcher
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()
