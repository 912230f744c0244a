from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from app.errors import LnMomoError, NotFoundError
from app.reconcile.engine import ReconcileOutcome, ReconciliationEngine
from app.reconcile.factory import get_engine, get_store
from app.transactions.repository import TransactionStore
from app.transactions.state_machine import IN_FLIGHT_STATUSES

logger = logging.getLogger("lnmomo.reconcile")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_transaction(
    transaction_id: str,
    *,
    store: Optional[TransactionStore] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> ReconcileOutcome:
    """
    On-demand driver: load one transaction and reconcile it once.
    """
    store = store or get_store()
    engine = engine or get_engine()

    tx = store.get(transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return engine.reconcile(tx)


def run_reconcile(
    *,
    store: Optional[TransactionStore] = None,
    engine: Optional[ReconciliationEngine] = None,
) -> dict[str, Any]:
    """
    Batch sweep: reconcile every in-flight transaction once, oldest first.
    A failure on one transaction is reported in its result and does not stop
    the sweep.
    """
    store = store or get_store()
    engine = engine or get_engine()
    run_at = _utcnow()

    transactions = store.list_by_status(IN_FLIGHT_STATUSES)
    results: list[dict[str, Any]] = []
    summary = {"transitioned": 0, "unchanged": 0, "errors": 0}

    for tx in transactions:
        try:
            outcome = engine.reconcile(tx)
        except Exception as exc:
            if isinstance(exc, LnMomoError):
                logger.warning("sweep: transaction %s failed: %s", tx.id, exc)
            else:
                logger.exception("sweep: transaction %s failed", tx.id)
            summary["errors"] += 1
            results.append(
                {
                    "id": tx.id,
                    "status": tx.status,
                    "ok": False,
                    "error": getattr(exc, "code", type(exc).__name__),
                }
            )
            continue

        summary["transitioned" if outcome.changed else "unchanged"] += 1
        results.append({**outcome.to_response(), "ok": True})

    logger.info(
        "sweep done processed=%s transitioned=%s unchanged=%s errors=%s",
        len(results),
        summary["transitioned"],
        summary["unchanged"],
        summary["errors"],
    )
    return {
        "run_at": run_at.isoformat(),
        "processed_count": len(results),
        "summary": summary,
        "results": results,
    }
