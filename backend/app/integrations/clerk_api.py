"""
Clerk user management through the clerk-backend-api SDK.

Every SDK failure is re-raised as IdentityProviderError so callers can branch
on Clerk error codes (``form_password_pwned`` and friends) without importing
SDK types.
"""
from functools import lru_cache
from typing import Any

from clerk_backend_api import Clerk
from clerk_backend_api.security.types import AuthenticateRequestOptions

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

PASSWORD_BREACHED_CODES = frozenset({"form_password_pwned"})


class IdentityProviderError(Exception):
    def __init__(self, message: str, codes: list[str] | None = None):
        super().__init__(message)
        self.codes = codes or []

    @property
    def password_breached(self) -> bool:
        return any(code in PASSWORD_BREACHED_CODES for code in self.codes)


@lru_cache(maxsize=1)
def _client() -> Clerk:
    if not settings.CLERK_SECRET_KEY:
        raise IdentityProviderError("CLERK_SECRET_KEY not configured")
    return Clerk(bearer_auth=settings.CLERK_SECRET_KEY)


def error_codes(exc: BaseException) -> list[str]:
    """Clerk error codes carried by an SDK exception, if any."""
    data = getattr(exc, "data", None)
    errors = getattr(data, "errors", None) or []
    return [e.code for e in errors if getattr(e, "code", None)]


def _wrap(action: str, exc: Exception) -> IdentityProviderError:
    codes = error_codes(exc)
    logger.warning("Clerk %s failed: %s (codes=%s)", action, exc, codes)
    return IdentityProviderError(f"Clerk {action} failed: {exc}", codes)


def authenticate(request: Any) -> str | None:
    """Clerk user id of the session token on the request, or None."""
    try:
        state = _client().authenticate_request(
            request,
            AuthenticateRequestOptions(authorized_parties=settings.authorized_parties),
        )
    except IdentityProviderError:
        raise
    except Exception as e:
        logger.warning("Clerk session verification failed: %s", e)
        return None
    if not state.is_signed_in or not state.payload:
        return None
    return state.payload.get("sub")


def find_user_by_email(email: str) -> Any | None:
    try:
        users = _client().users.list(request={"email_address": [email], "limit": 1})
    except Exception as e:
        raise _wrap("user lookup", e) from e
    return users[0] if users else None


def find_user_by_username(username: str) -> Any | None:
    try:
        users = _client().users.list(request={"username": [username], "limit": 1})
    except Exception as e:
        raise _wrap("user lookup", e) from e
    return users[0] if users else None


def get_user(user_id: str) -> Any:
    try:
        return _client().users.get(user_id=user_id)
    except Exception as e:
        raise _wrap("get user", e) from e


def create_user(
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    public_metadata: dict[str, Any] | None = None,
    private_metadata: dict[str, Any] | None = None,
) -> Any:
    try:
        return _client().users.create(
            request={
                "email_address": [email],
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
                "public_metadata": public_metadata or {},
                "private_metadata": private_metadata or {},
            }
        )
    except Exception as e:
        raise _wrap("create user", e) from e


def update_user_metadata(
    user_id: str,
    *,
    public_metadata: dict[str, Any] | None = None,
    private_metadata: dict[str, Any] | None = None,
) -> Any:
    """Merge metadata into the user's existing public/private metadata."""
    params: dict[str, Any] = {"user_id": user_id}
    if public_metadata is not None:
        params["public_metadata"] = public_metadata
    if private_metadata is not None:
        params["private_metadata"] = private_metadata
    try:
        return _client().users.update_metadata(**params)
    except Exception as e:
        raise _wrap("update metadata", e) from e


def update_user_name(user_id: str, first_name: str, last_name: str) -> Any:
    try:
        return _client().users.update(user_id=user_id, first_name=first_name, last_name=last_name)
    except Exception as e:
        raise _wrap("update user", e) from e


def primary_email(user: Any) -> str | None:
    addresses = getattr(user, "email_addresses", None) or []
    primary_id = getattr(user, "primary_email_address_id", None)
    for address in addresses:
        if primary_id and getattr(address, "id", None) == primary_id:
            return address.email_address
    return addresses[0].email_address if addresses else None


def public_metadata(user: Any) -> dict[str, Any]:
    return dict(getattr(user, "public_metadata", None) or {})


def private_metadata(user: Any) -> dict[str, Any]:
    return dict(getattr(user, "private_metadata", None) or {})
