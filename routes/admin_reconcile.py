from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.errors import PersistenceError
from app.reconcile.factory import get_engine, get_store
from deps.admin import require_admin_key
from schemas import SweepResponse
from services.reconcile import run_reconcile


router = APIRouter(prefix="/v1/admin/reconcile", tags=["admin-reconcile"])


@router.post("/sweep", response_model=SweepResponse, response_model_exclude_none=True)
def sweep(
    _: None = Depends(require_admin_key),
    store=Depends(get_store),
    engine=Depends(get_engine),
):
    try:
        return run_reconcile(store=store, engine=engine)
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Failed to load transactions")
