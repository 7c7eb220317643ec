"""Linking Clerk users to Stripe customers."""
from typing import Any

from app.core.logging import get_logger
from app.core.roles import normalize_email
from app.integrations import clerk_api, stripe_api

logger = get_logger(__name__)


def linked_customer_id(user: Any) -> str | None:
    """Stripe customer id stored on the Clerk user, else found by email."""
    customer_id = clerk_api.private_metadata(user).get("stripeCustomerId")
    if customer_id:
        return customer_id
    email = normalize_email(clerk_api.primary_email(user))
    if not email:
        return None
    customer = stripe_api.find_customer_by_email(email)
    return customer.id if customer is not None else None


def ensure_customer(user: Any) -> tuple[str, bool]:
    """
    Find or create the Stripe customer for a Clerk user and record the link on
    both sides. Returns (customer_id, created).
    """
    private = clerk_api.private_metadata(user)
    customer_id = private.get("stripeCustomerId")
    if customer_id:
        return customer_id, False

    email = normalize_email(clerk_api.primary_email(user))
    if not email:
        raise ValueError("User has no email address")

    created = False
    customer = stripe_api.find_customer_by_email(email)
    if customer is None:
        name = " ".join(p for p in (getattr(user, "first_name", None), getattr(user, "last_name", None)) if p)
        customer = stripe_api.create_customer(email, name=name or None, metadata={"clerkUserId": user.id})
        created = True
        logger.info("Created Stripe customer %s for Clerk user %s", customer.id, user.id)
    elif stripe_api.metadata_of(customer).get("clerkUserId") != user.id:
        stripe_api.update_customer(customer.id, metadata={"clerkUserId": user.id})

    clerk_api.update_user_metadata(user.id, private_metadata={"stripeCustomerId": customer.id})
    return customer.id, created


def blocking_subscription(customer_id: str, statuses: frozenset[str]) -> Any | None:
    for subscription in stripe_api.list_subscriptions(customer_id, status="all"):
        if subscription.get("status") in statuses:
            return subscription
    return None
