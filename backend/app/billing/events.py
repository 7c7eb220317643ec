"""
Verified Stripe events as a closed set of variants.

``parse_event`` turns the raw event into exactly one of the dataclasses
below; ``app.billing.webhooks`` keeps one handler per variant.
"""
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session: Any
    mode: str


@dataclass(frozen=True)
class SubscriptionCreated:
    event_id: str
    subscription: Any


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    subscription: Any


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription: Any


@dataclass(frozen=True)
class InvoiceSucceeded:
    event_id: str
    invoice: Any


@dataclass(frozen=True)
class InvoiceFailed:
    event_id: str
    invoice: Any


@dataclass(frozen=True)
class InvoiceCreated:
    event_id: str
    invoice: Any


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


WebhookEvent = Union[
    CheckoutCompleted,
    SubscriptionCreated,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoiceSucceeded,
    InvoiceFailed,
    InvoiceCreated,
    UnhandledEvent,
]

_BY_TYPE = {
    "customer.subscription.created": SubscriptionCreated,
    "customer.subscription.updated": SubscriptionUpdated,
    "customer.subscription.deleted": SubscriptionDeleted,
    "invoice.payment_succeeded": InvoiceSucceeded,
    "invoice.payment_failed": InvoiceFailed,
    "invoice.created": InvoiceCreated,
}


def parse_event(event: Any) -> WebhookEvent:
    event_id = event["id"]
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type == "checkout.session.completed":
        return CheckoutCompleted(event_id=event_id, session=obj, mode=obj.get("mode") or "")

    variant = _BY_TYPE.get(event_type)
    if variant is None:
        return UnhandledEvent(event_id=event_id, event_type=event_type)
    return variant(event_id, obj)
