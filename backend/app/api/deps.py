"""
API dependencies (auth, shared DI).

Clerk-based auth:
- Verifies the Clerk session token sent by the Next.js frontend
  (``Authorization: Bearer`` header or ``__session`` cookie)
- Returns the Clerk user id, or the full Clerk user for routes that need
  email and metadata
"""
import hmac
from typing import Any

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.integrations import clerk_api
from app.integrations.clerk_api import IdentityProviderError

PLACEHOLDER_ADMIN_KEY = "change-me-in-production"


def get_current_user_id(request: Request) -> str:
    try:
        user_id = clerk_api.authenticate(request)
    except IdentityProviderError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id


def get_current_user(user_id: str = Depends(get_current_user_id)) -> Any:
    try:
        return clerk_api.get_user(user_id)
    except IdentityProviderError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


def verify_admin_key(admin_key: str | None) -> None:
    """500 when no real admin key is configured, 401 on mismatch."""
    expected = settings.ADMIN_API_KEY
    if not expected or expected == PLACEHOLDER_ADMIN_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin API key not configured",
        )
    if not admin_key or not hmac.compare_digest(admin_key.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
