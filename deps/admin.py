# deps/admin.py
import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from settings import settings


def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    expected = (settings.ADMIN_API_KEY or "").strip()
    if not expected:
        # open in dev; set ADMIN_API_KEY anywhere reachable from outside
        return

    if not x_admin_key or not hmac.compare_digest(x_admin_key.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
