# routes/transactions.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from app.errors import LnMomoError, raise_http_from_error
from app.providers.lightning.factory import get_gateway
from app.reconcile.events import StatusWatcher
from app.reconcile.factory import get_engine, get_store, get_watcher
from schemas import (
    CheckPaymentResponse,
    CreateTransactionRequest,
    CreateTransactionResponse,
    TransactionResponse,
    WaitResponse,
)
from services.demo import simulate_settlement_task
from services.issuance import create_transaction
from services.reconcile import check_transaction
from settings import settings

logger = logging.getLogger("lnmomo")
router = APIRouter(prefix="/v1/transactions", tags=["transactions"])

MAX_WAIT_SECONDS = 60


def _load(store, transaction_id: str):
    try:
        tx = store.get(transaction_id)
    except LnMomoError as exc:
        raise_http_from_error(exc)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


@router.post("", response_model=CreateTransactionResponse, status_code=201)
def create_transaction_route(
    req: CreateTransactionRequest,
    background: BackgroundTasks,
    store=Depends(get_store),
    gateway=Depends(get_gateway),
):
    try:
        created = create_transaction(req.phone, req.amount, store=store, gateway=gateway)
    except LnMomoError as exc:
        raise_http_from_error(exc)

    if created["is_simulated"] and settings.DEMO_AUTO_SETTLE:
        background.add_task(simulate_settlement_task, created["transaction_id"])

    return created


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction_route(transaction_id: str, store=Depends(get_store)):
    return TransactionResponse.from_transaction(_load(store, transaction_id))


@router.get("/{transaction_id}/check", response_model=CheckPaymentResponse, response_model_exclude_none=True)
def check_transaction_route(
    transaction_id: str,
    store=Depends(get_store),
    engine=Depends(get_engine),
):
    try:
        outcome = check_transaction(transaction_id, store=store, engine=engine)
    except LnMomoError as exc:
        logger.warning("check failed tx=%s code=%s err=%s", transaction_id, exc.code, exc)
        raise_http_from_error(exc)
    return outcome.to_response()


@router.get("/{transaction_id}/wait", response_model=WaitResponse)
def wait_for_transaction_route(
    transaction_id: str,
    since: Optional[str] = None,
    timeout: float = Query(default=25.0, ge=0, le=MAX_WAIT_SECONDS),
    store=Depends(get_store),
    watcher: StatusWatcher = Depends(get_watcher),
):
    """
    Long-poll: returns as soon as the status differs from `since`, or after
    `timeout` seconds with the current status.
    """
    tx = _load(store, transaction_id)
    if since is None or tx.status != since:
        return WaitResponse(id=tx.id, status=tx.status, changed=since is not None)

    new_status = watcher.wait_for_change(tx.id, since, timeout)
    if new_status is not None:
        return WaitResponse(id=tx.id, status=new_status, changed=True)

    # a transition made by another process never reaches this watcher
    tx = _load(store, transaction_id)
    return WaitResponse(id=tx.id, status=tx.status, changed=tx.status != since)


@router.post("/{transaction_id}/simulate", status_code=202)
def simulate_transaction_route(
    transaction_id: str,
    background: BackgroundTasks,
    store=Depends(get_store),
):
    tx = _load(store, transaction_id)
    if not tx.is_simulated:
        raise HTTPException(status_code=409, detail="Only simulated invoices can be settled by the demo driver")

    background.add_task(simulate_settlement_task, tx.id)
    return {"id": tx.id, "status": tx.status, "scheduled": True}
