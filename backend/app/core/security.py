"""
Shared-secret check for internal routes.

The booking event webhook and the manual sweep trigger are called by other
backend components, not by end users, so a static token is enough.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import get_settings


async def verify_internal_token(x_internal_token: Optional[str] = Header(default=None)) -> None:
    expected = get_settings().INTERNAL_API_TOKEN
    if not expected:
        return
    if not x_internal_token or not hmac.compare_digest(x_internal_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal token",
        )
