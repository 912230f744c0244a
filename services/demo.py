from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional

from app.errors import NotFoundError
from app.providers.lightning.factory import get_gateway
from app.providers.lightning.simulator import InvoiceSimulator
from app.reconcile.engine import ReconcileOutcome, ReconciliationEngine
from app.reconcile.factory import get_store
from app.transactions.model import INVOICE_GENERATED
from app.transactions.repository import TransactionStore
from services.reconcile import check_transaction

logger = logging.getLogger("lnmomo.demo")

MIN_DELAY_S = 5.0
MAX_DELAY_S = 15.0
SETTLE_PROBABILITY = 0.5


def simulate_settlement(
    transaction_id: str,
    *,
    store: Optional[TransactionStore] = None,
    simulator: Optional[InvoiceSimulator] = None,
    engine: Optional[ReconciliationEngine] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[ReconcileOutcome]:
    """
    Demo driver for simulated invoices: after a random 5-15s delay, settle the
    invoice with probability 0.5, then run the on-demand check once.

    Live invoices and transactions already past invoice_generated are left
    alone (returns None).
    """
    store = store or get_store()
    simulator = simulator or get_gateway().simulator
    rng = rng or random.Random()

    tx = store.get(transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    if not tx.is_simulated or tx.status != INVOICE_GENERATED:
        logger.info("demo settle skipped tx=%s source=%s status=%s", tx.id, tx.invoice_source, tx.status)
        return None

    delay = rng.uniform(MIN_DELAY_S, MAX_DELAY_S)
    sleep(delay)

    if rng.random() < SETTLE_PROBABILITY:
        settled = simulator.mark_paid(tx.invoice_id)
        logger.info("demo settle tx=%s invoice_id=%s settled=%s after=%.1fs", tx.id, tx.invoice_id, settled, delay)

    return check_transaction(tx.id, store=store, engine=engine)


def simulate_settlement_task(transaction_id: str) -> None:
    try:
        simulate_settlement(transaction_id)
    except Exception:
        logger.exception("demo settle failed tx=%s", transaction_id)
