"""User roles stored in Clerk public metadata and how Stripe status maps onto them."""
from enum import Enum
from typing import Any, Mapping

from app.core.logging import get_logger

logger = get_logger(__name__)


class UserRole(str, Enum):
    customer = "customer"
    subscriber = "subscriber"


ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})
# A guest with one of these cannot start a second subscription
GUEST_BLOCKING_STATUSES = frozenset({"active", "trialing", "past_due"})
# Signed-in users are also blocked while a first payment is still incomplete
CHECKOUT_BLOCKING_STATUSES = frozenset({"active", "trialing", "past_due", "incomplete"})


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def get_user_role(public_metadata: Mapping[str, Any] | None) -> UserRole:
    """Read the role from Clerk public metadata, defaulting to customer."""
    raw = (public_metadata or {}).get("role")
    if not raw:
        return UserRole.customer
    try:
        return UserRole(str(raw).lower())
    except ValueError:
        logger.warning("Unknown role %r in Clerk metadata, treating as customer", raw)
        return UserRole.customer


def role_for_subscription_status(status: str | None, *, invoice_failed: bool = False) -> UserRole | None:
    """
    Role a subscription status implies, or None when the status must not
    change the current role.

    past_due only downgrades when it comes from a failed invoice; other
    transitional statuses (incomplete, unpaid, ...) leave the role alone
    until a terminal event arrives.
    """
    if status in ACTIVE_SUBSCRIPTION_STATUSES:
        return UserRole.subscriber
    if status == "canceled":
        return UserRole.customer
    if status == "past_due" and invoice_failed:
        return UserRole.customer
    return None
