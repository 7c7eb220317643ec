"""Strapi CMS lookups for subscription plans."""
from typing import Any

import requests

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class CMSError(Exception):
    pass


def _headers() -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.STRAPI_API_TOKEN:
        headers["Authorization"] = f"Bearer {settings.STRAPI_API_TOKEN}"
    return headers


def _get(path: str, params: dict[str, str]) -> list[dict[str, Any]]:
    url = f"{settings.STRAPI_URL.rstrip('/')}{path}"
    try:
        resp = requests.get(url, params=params, headers=_headers(), timeout=settings.HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as e:
        logger.error("Strapi request %s failed: %s", path, e)
        raise CMSError(f"Strapi request failed: {e}") from e
    except ValueError as e:
        raise CMSError("Strapi returned invalid JSON") from e
    return payload.get("data") or []


def get_subscription_plan(document_id: str) -> dict[str, Any] | None:
    """Plan record (name, stripePriceId, freeTrialDays, ...) or None when unknown."""
    plans = _get(
        "/api/subscriptions",
        {"filters[documentId][$eq]": document_id, "populate": "*"},
    )
    return plans[0] if plans else None


def list_active_plans() -> list[dict[str, Any]]:
    return _get("/api/subscriptions", {"filters[active][$eq]": "true", "populate": "*"})
