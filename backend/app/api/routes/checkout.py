"""Checkout routes: guest signup, signed-in subscription and cart checkout."""
from typing import Any
from urllib.parse import urlparse

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.billing import customers, pending_signups
from app.core.config import settings
from app.core.logging import get_logger
from app.core.roles import CHECKOUT_BLOCKING_STATUSES, GUEST_BLOCKING_STATUSES
from app.db.session import get_db
from app.integrations import clerk_api, stripe_api, strapi_api
from app.integrations.clerk_api import IdentityProviderError
from app.integrations.strapi_api import CMSError
from app.schemas.checkout import (
    CartCheckoutRequest,
    CartItem,
    CheckoutSessionResponse,
    GuestCheckoutRequest,
    SubscriptionCheckoutRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["checkout"])

MIN_PASSWORD_LENGTH = 8
SHIPPING_COUNTRIES = ["US", "CA", "GB", "AU", "NZ"]


def _origin(request: Request) -> str:
    return (request.headers.get("origin") or settings.SITE_URL).rstrip("/")


def _fetch_plan(subscription_id: str) -> dict[str, Any]:
    try:
        plan = strapi_api.get_subscription_plan(subscription_id)
    except CMSError as e:
        raise HTTPException(status_code=500, detail="Failed to load subscription plan") from e
    if plan is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if not plan.get("stripePriceId"):
        logger.error("Plan %s has no stripePriceId", subscription_id)
        raise HTTPException(status_code=500, detail="Subscription configuration error: missing Stripe Price ID")
    return plan


def _trial_days(plan: dict[str, Any]) -> int:
    try:
        return max(int(plan.get("freeTrialDays") or 0), 0)
    except (TypeError, ValueError):
        return 0


@router.post("/guest-checkout", response_model=CheckoutSessionResponse)
def guest_checkout(body: GuestCheckoutRequest, request: Request, db: Session = Depends(get_db)):
    """
    Start a subscription for a visitor without an account.

    Nothing is created in Clerk or as a Stripe customer here: Stripe creates
    the customer when payment succeeds and the webhook provisions the account
    from the pending signup saved below.
    """
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    email = body.email

    try:
        if clerk_api.find_user_by_email(email) is not None:
            raise HTTPException(status_code=409, detail="An account with this email already exists. Please sign in.")
    except IdentityProviderError as e:
        raise HTTPException(status_code=500, detail="Could not verify account status") from e

    try:
        customer = stripe_api.find_customer_by_email(email)
        if customer is not None and customers.blocking_subscription(customer.id, GUEST_BLOCKING_STATUSES):
            raise HTTPException(
                status_code=409,
                detail="This email already has an active subscription. Please sign in to manage it.",
            )
    except stripe.StripeError as e:
        logger.error("Stripe pre-check failed for %s: %s", email, e)
        raise HTTPException(status_code=500, detail="Could not verify subscription status") from e

    plan = _fetch_plan(body.subscription_id)
    trial_days = _trial_days(plan)
    plan_name = plan.get("name") or ""
    origin = _origin(request)

    subscription_data: dict[str, Any] = {
        "metadata": {
            "pendingSignup": "true",
            "subscriptionName": plan_name,
            "email": email,
            "firstName": body.first_name,
            "lastName": body.last_name,
        },
    }
    if trial_days:
        subscription_data["trial_period_days"] = trial_days

    try:
        session = stripe_api.create_checkout_session(
            mode="subscription",
            customer_email=email,
            payment_method_types=["card"],
            line_items=[{"price": plan["stripePriceId"], "quantity": 1}],
            success_url=f"{origin}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/signup?cancelled=true",
            subscription_data=subscription_data,
            metadata={
                "pendingSignup": "true",
                "firstName": body.first_name,
                "lastName": body.last_name,
                "email": email,
                "subscriptionName": plan_name,
            },
        )
    except stripe.StripeError as e:
        logger.error("Guest checkout session for %s failed: %s", email, e)
        raise HTTPException(status_code=500, detail=str(e.user_message or "Failed to create checkout session")) from e

    try:
        pending_signups.save_pending_signup(
            db,
            checkout_session_id=session.id,
            email=email,
            first_name=body.first_name,
            last_name=body.last_name,
            password=body.password,
            plan_id=body.subscription_id,
            plan_name=plan_name,
            trial_days=trial_days,
        )
    except (SQLAlchemyError, RuntimeError) as e:
        db.rollback()
        logger.error("Could not store pending signup for session %s: %s", session.id, e)
        raise HTTPException(status_code=500, detail="Could not start checkout, please try again") from e

    logger.info("Guest checkout session %s created for %s", session.id, email)
    return {"sessionId": session.id, "url": session.url}


@router.post("/subscription-checkout", response_model=CheckoutSessionResponse)
def subscription_checkout(
    body: SubscriptionCheckoutRequest,
    request: Request,
    user: Any = Depends(get_current_user),
):
    try:
        customer_id, _ = customers.ensure_customer(user)
        if customers.blocking_subscription(customer_id, CHECKOUT_BLOCKING_STATUSES):
            raise HTTPException(status_code=409, detail="You already have an active subscription")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (stripe.StripeError, IdentityProviderError) as e:
        logger.error("Customer setup for %s failed: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to create customer") from e

    plan = _fetch_plan(body.subscription_id)
    trial_days = _trial_days(plan)
    origin = _origin(request)
    metadata = {"clerkUserId": user.id, "strapiSubscriptionId": body.subscription_id}

    subscription_data: dict[str, Any] = {"metadata": metadata}
    if trial_days:
        subscription_data["trial_period_days"] = trial_days

    try:
        session = stripe_api.create_checkout_session(
            mode="subscription",
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": plan["stripePriceId"], "quantity": 1}],
            success_url=f"{origin}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/upgrade",
            subscription_data=subscription_data,
            metadata=metadata,
        )
    except stripe.StripeError as e:
        logger.error("Subscription checkout for %s failed: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to create checkout session") from e

    return {"sessionId": session.id, "url": session.url}


def _image_url(image: str | None, origin: str) -> str | None:
    if not image:
        return None
    if image.startswith(("http://", "https://")):
        url = image
    elif image.startswith("/uploads/"):
        url = f"{settings.STRAPI_URL.rstrip('/')}{image}"
    elif image.startswith("/"):
        url = f"{origin}{image}"
    else:
        return None
    parsed = urlparse(url)
    return url if parsed.scheme and parsed.netloc else None


def _line_item(item: CartItem, origin: str) -> dict[str, Any]:
    if item.stripe_price_id:
        return {"price": item.stripe_price_id, "quantity": item.quantity}

    options = [
        f"{label}: {value}"
        for label, value in (("Hand", item.selected_hand), ("Size", item.selected_size), ("Color", item.selected_color))
        if value
    ]
    product_data: dict[str, Any] = {
        "name": item.name,
        "metadata": {"product_id": str(item.id or ""), "sku": item.sku or ""},
    }
    if options:
        product_data["description"] = ", ".join(options)
    image = _image_url(item.image, origin)
    if image:
        product_data["images"] = [image]

    return {
        "price_data": {
            "currency": "usd",
            "product_data": product_data,
            "unit_amount": round(item.price * 100),
        },
        "quantity": item.quantity,
    }


@router.post("/checkout", response_model=CheckoutSessionResponse)
def cart_checkout(body: CartCheckoutRequest, request: Request, user: Any = Depends(get_current_user)):
    if not body.items:
        raise HTTPException(status_code=400, detail="No items in cart")

    origin = _origin(request)
    line_items = [_line_item(item, origin) for item in body.items]

    try:
        customer_id, _ = customers.ensure_customer(user)
        session = stripe_api.create_checkout_session(
            mode="payment",
            customer=customer_id,
            payment_method_types=["card"],
            line_items=line_items,
            success_url=f"{origin}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/cart",
            client_reference_id=user.id,
            shipping_address_collection={"allowed_countries": SHIPPING_COUNTRIES},
            billing_address_collection="required",
            allow_promotion_codes=True,
            metadata={"clerkUserId": user.id, "userEmail": clerk_api.primary_email(user) or ""},
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except (stripe.StripeError, IdentityProviderError) as e:
        logger.error("Cart checkout for %s failed: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to create checkout session") from e

    logger.info("Cart checkout session %s for %s (%d item(s))", session.id, user.id, len(line_items))
    return {"sessionId": session.id, "url": session.url}
