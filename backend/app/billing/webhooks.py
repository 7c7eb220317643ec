"""
Handlers for verified Stripe webhook events, one per event variant.
Handlers may raise; ``process_event`` logs the failure, marks the event row
failed and still acknowledges the delivery.
"""
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.billing import idempotency, provisioning
from app.billing.events import (
    CheckoutCompleted,
    InvoiceCreated,
    InvoiceFailed,
    InvoiceSucceeded,
    SubscriptionCreated,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledEvent,
    WebhookEvent,
    parse_event,
)
from app.core.logging import get_logger
from app.core.roles import UserRole, normalize_email, role_for_subscription_status
from app.integrations import clerk_api, stripe_api
from app.notifications.email_sender import EmailSendError, send_email
from app.notifications.templates import order_confirmation_email

logger = get_logger(__name__)


def _id_of(value: Any) -> str | None:
    """Stripe fields hold either an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def resolve_clerk_user_id(subscription: Any) -> str | None:
    """Clerk user behind a subscription: its metadata, the customer's metadata, then email lookup."""
    clerk_user_id = stripe_api.metadata_of(subscription).get("clerkUserId")
    if clerk_user_id:
        return clerk_user_id

    customer_id = _id_of(subscription.get("customer"))
    if not customer_id:
        return None
    customer = stripe_api.retrieve_customer(customer_id)
    clerk_user_id = stripe_api.metadata_of(customer).get("clerkUserId")
    if clerk_user_id:
        return clerk_user_id

    email = normalize_email(customer.get("email"))
    if not email:
        return None
    user = clerk_api.find_user_by_email(email)
    return user.id if user is not None else None


def set_role(clerk_user_id: str, role: UserRole, customer_id: str | None = None) -> None:
    private = {"stripeCustomerId": customer_id} if customer_id else None
    clerk_api.update_user_metadata(
        clerk_user_id,
        public_metadata={"role": role.value},
        private_metadata=private,
    )
    logger.info("Set Clerk user %s role to %s", clerk_user_id, role.value)


def _apply_subscription_role(subscription: Any, role: UserRole | None, reason: str) -> None:
    if role is None:
        logger.info(
            "Subscription %s status %s (%s) leaves the role unchanged",
            subscription["id"],
            subscription.get("status"),
            reason,
        )
        return
    clerk_user_id = resolve_clerk_user_id(subscription)
    if clerk_user_id is None:
        logger.warning("No Clerk user found for subscription %s (%s)", subscription["id"], reason)
        return
    set_role(clerk_user_id, role, _id_of(subscription.get("customer")))


def _invoice_subscription_id(invoice: Any) -> str | None:
    subscription = invoice.get("subscription")
    if subscription:
        return _id_of(subscription)
    # Newer API versions nest it under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _id_of(details.get("subscription"))


# --- checkout ---

def _subscription_checkout(db: Session, session: Any) -> None:
    if provisioning.is_pending_signup(session):
        result = provisioning.complete_guest_signup(db, session)
        if result is not None:
            logger.info(
                "Guest signup for session %s: user=%s created=%s password_reset=%s",
                session["id"],
                result.clerk_user_id,
                result.created,
                result.needs_password_reset,
            )
        return

    clerk_user_id = stripe_api.metadata_of(session).get("clerkUserId")
    if not clerk_user_id:
        logger.error("Subscription checkout %s has neither clerkUserId nor a pending signup", session["id"])
        return
    set_role(clerk_user_id, UserRole.subscriber, _id_of(session.get("customer")))


def _payment_checkout(db: Session, session: Any) -> None:
    items = stripe_api.list_line_items(session["id"])
    customer_id = _id_of(session.get("customer"))
    clerk_user_id = stripe_api.metadata_of(session).get("clerkUserId")
    logger.info("Product purchase %s: %d line item(s), customer %s", session["id"], len(items), customer_id)

    if clerk_user_id and customer_id:
        clerk_api.update_user_metadata(clerk_user_id, private_metadata={"stripeCustomerId": customer_id})

    details = session.get("customer_details") or {}
    email = details.get("email") or session.get("customer_email")
    if not email:
        logger.warning("Product purchase %s has no customer email, skipping confirmation", session["id"])
        return
    subject, text, html = order_confirmation_email(
        details.get("name") or "",
        session["id"],
        [
            {
                "name": item.get("description") or "Item",
                "quantity": item.get("quantity") or 1,
                "amount": item.get("amount_total") or 0,
            }
            for item in items
        ],
        session.get("amount_total") or 0,
    )
    try:
        send_email(email, subject, text, html)
    except EmailSendError as e:
        logger.error("Failed to send order confirmation for %s: %s", session["id"], e)


def handle_checkout_completed(db: Session, event: CheckoutCompleted) -> None:
    if event.mode == "subscription":
        _subscription_checkout(db, event.session)
    elif event.mode == "payment":
        _payment_checkout(db, event.session)
    else:
        logger.info("Ignoring checkout session %s in mode %r", event.session["id"], event.mode)


# --- subscription lifecycle ---

def handle_subscription_changed(db: Session, event: SubscriptionCreated | SubscriptionUpdated) -> None:
    subscription = event.subscription
    _apply_subscription_role(subscription, role_for_subscription_status(subscription.get("status")), "status change")


def handle_subscription_deleted(db: Session, event: SubscriptionDeleted) -> None:
    _apply_subscription_role(event.subscription, UserRole.customer, "deleted")


# --- invoices ---

def handle_invoice_succeeded(db: Session, event: InvoiceSucceeded) -> None:
    subscription_id = _invoice_subscription_id(event.invoice)
    if not subscription_id:
        return
    subscription = stripe_api.retrieve_subscription(subscription_id)
    role = role_for_subscription_status(subscription.get("status"))
    _apply_subscription_role(subscription, role if role is UserRole.subscriber else None, "invoice paid")


def handle_invoice_failed(db: Session, event: InvoiceFailed) -> None:
    subscription_id = _invoice_subscription_id(event.invoice)
    if not subscription_id:
        return
    subscription = stripe_api.retrieve_subscription(subscription_id)
    role = role_for_subscription_status(subscription.get("status"), invoice_failed=True)
    _apply_subscription_role(subscription, role if role is UserRole.customer else None, "invoice failed")


def handle_invoice_created(db: Session, event: InvoiceCreated) -> None:
    invoice = event.invoice
    if invoice.get("billing_reason") != "manual":
        return
    if invoice.get("status") == "draft":
        stripe_api.finalize_invoice(invoice["id"])
    stripe_api.send_invoice(invoice["id"])
    logger.info("Finalized and sent manual invoice %s", invoice["id"])


def handle_unhandled(db: Session, event: UnhandledEvent) -> None:
    logger.info("Unhandled Stripe event type %s (%s)", event.event_type, event.event_id)


HANDLERS: dict[type, Callable[[Session, Any], None]] = {
    CheckoutCompleted: handle_checkout_completed,
    SubscriptionCreated: handle_subscription_changed,
    SubscriptionUpdated: handle_subscription_changed,
    SubscriptionDeleted: handle_subscription_deleted,
    InvoiceSucceeded: handle_invoice_succeeded,
    InvoiceFailed: handle_invoice_failed,
    InvoiceCreated: handle_invoice_created,
    UnhandledEvent: handle_unhandled,
}


def dispatch(db: Session, event: WebhookEvent) -> None:
    HANDLERS[type(event)](db, event)


def _claim(db: Session, event_id: str, event_type: str) -> bool:
    try:
        return idempotency.claim_event(db, event_id, event_type)
    except SQLAlchemyError:
        db.rollback()
        # Handlers tolerate repeats, so an unclaimed event is still processed
        logger.exception("Event store unavailable for %s (%s), processing without dedup", event_id, event_type)
        return True


def _record(db: Session, event_id: str, error: str | None = None) -> None:
    try:
        idempotency.finish_event(db, event_id, error=error)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not record outcome of %s (error=%s)", event_id, error)


def process_event(db: Session, raw_event: Any) -> dict[str, Any]:
    """Claim, dispatch and record a verified event. Never raises once the signature is verified."""
    event_id = raw_event["id"]
    event_type = raw_event["type"]

    if not _claim(db, event_id, event_type):
        logger.info("Duplicate delivery of %s (%s), skipping", event_id, event_type)
        return {"received": True, "duplicate": True}

    logger.info("Processing Stripe event %s (%s)", event_id, event_type)
    try:
        dispatch(db, parse_event(raw_event))
    except Exception as e:
        db.rollback()
        logger.exception("Handler for %s (%s) failed", event_id, event_type)
        _record(db, event_id, error=f"{type(e).__name__}: {e}")
    else:
        _record(db, event_id)
    return {"received": True}
