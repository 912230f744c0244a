from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from app.providers.base import InvoiceStatus, PayoutResult
from app.reconcile.engine import ReconciliationEngine
from app.transactions.model import COMPLETED, PAID
from services.reconcile import check_transaction, run_reconcile
from tests.conftest import make_tx


WORKERS = 8


def test_concurrent_checks_send_exactly_one_payout(store, gateway, clock):
    gateway.invoice = InvoiceStatus(paid=True, status="PAID")
    start = threading.Barrier(WORKERS)
    slow_payout = gateway.initiate_payout

    def initiate_payout(*args):
        # widen the window between claim and outcome
        time.sleep(0.05)
        return slow_payout(*args)

    gateway.initiate_payout = initiate_payout
    engine = ReconciliationEngine(store, gateway, clock=clock)
    tx = make_tx(store, clock)

    def worker():
        start.wait()
        return check_transaction(tx.id, store=store, engine=engine)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = list(pool.map(lambda _: worker(), range(WORKERS)))

    assert gateway.calls["initiate_payout"] == 1
    assert store.get(tx.id).status == COMPLETED
    assert store.get(tx.id).mobile_money_reference == "momo-ref-1"
    assert all(o.id == tx.id for o in outcomes)


def test_sweep_racing_checks_sends_one_payout_per_transaction(store, gateway, clock):
    gateway.payout = PayoutResult(success=True, payment_reference="momo-ref-x")
    engine = ReconciliationEngine(store, gateway, clock=clock)
    txs = [make_tx(store, clock, status=PAID, paid_at=clock(), invoice_id=f"inv-{i}") for i in range(5)]

    with ThreadPoolExecutor(max_workers=6) as pool:
        sweep = pool.submit(run_reconcile, store=store, engine=engine)
        checks = [pool.submit(check_transaction, tx.id, store=store, engine=engine) for tx in txs]
        sweep.result()
        for f in checks:
            f.result()

    assert gateway.calls["initiate_payout"] == len(txs)
    assert sorted(args[2] for args in gateway.payout_args) == sorted(tx.id for tx in txs)
