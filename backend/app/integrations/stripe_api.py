"""Stripe calls used by the checkout routes and webhook handlers."""
from typing import Any

import stripe

from app.core.config import settings

stripe.api_key = settings.STRIPE_SECRET_KEY


def construct_event(payload: bytes, sig_header: str | None) -> Any:
    """Verify the signature and parse the event; raises ValueError or SignatureVerificationError."""
    return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)


# --- customers ---

def find_customer_by_email(email: str) -> Any | None:
    customers = stripe.Customer.list(email=email, limit=1)
    return customers.data[0] if customers.data else None


def create_customer(email: str, *, name: str | None = None, metadata: dict[str, str] | None = None) -> Any:
    params: dict[str, Any] = {"email": email, "metadata": metadata or {}}
    if name:
        params["name"] = name
    return stripe.Customer.create(**params)


def retrieve_customer(customer_id: str) -> Any:
    return stripe.Customer.retrieve(customer_id)


def update_customer(customer_id: str, **params: Any) -> Any:
    return stripe.Customer.modify(customer_id, **params)


def list_customers_with_subscriptions(limit: int) -> list[Any]:
    customers = stripe.Customer.list(limit=limit, expand=["data.subscriptions"])
    return list(customers.data)


# --- subscriptions ---

def list_subscriptions(customer_id: str, status: str = "all") -> list[Any]:
    """Every subscription of the customer, across all result pages."""
    subscriptions = stripe.Subscription.list(customer=customer_id, status=status, limit=100)
    return list(subscriptions.auto_paging_iter())


def retrieve_subscription(subscription_id: str) -> Any:
    return stripe.Subscription.retrieve(subscription_id)


def update_subscription(subscription_id: str, **params: Any) -> Any:
    return stripe.Subscription.modify(subscription_id, **params)


def cancel_at_period_end(subscription_id: str) -> Any:
    return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)


# --- checkout ---

def create_checkout_session(**params: Any) -> Any:
    return stripe.checkout.Session.create(**params)


def list_checkout_sessions(customer_id: str | None = None, limit: int = 100) -> list[Any]:
    params: dict[str, Any] = {"limit": limit}
    if customer_id:
        params["customer"] = customer_id
    return list(stripe.checkout.Session.list(**params).data)


def list_line_items(session_id: str) -> list[Any]:
    items = stripe.checkout.Session.list_line_items(session_id, expand=["data.price.product"])
    return list(items.data)


def create_billing_portal_session(customer_id: str, return_url: str) -> Any:
    return stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)


# --- invoices ---

def finalize_invoice(invoice_id: str) -> Any:
    return stripe.Invoice.finalize_invoice(invoice_id)


def send_invoice(invoice_id: str) -> Any:
    return stripe.Invoice.send_invoice(invoice_id)


def metadata_of(obj: Any) -> dict[str, Any]:
    """Plain dict copy of a Stripe object's metadata (empty when absent)."""
    metadata = obj.get("metadata") if obj is not None else None
    return dict(metadata or {})
