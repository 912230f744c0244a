from __future__ import annotations

import os

from fastapi import APIRouter, Depends

from app.providers.lightning.config import ln_mode
from app.reconcile.factory import get_store
from settings import settings

router = APIRouter(tags=["health"])


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/healthz")
def healthz(store=Depends(get_store)):
    store_ok, store_error = store.ping()
    return {
        "ok": store_ok,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "store": {"backend": settings.STORE_BACKEND, "ok": store_ok, "error": store_error},
        "ln_mode": ln_mode(),
    }
