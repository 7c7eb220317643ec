"""Account endpoints for signed-in users: billing portal, cancellation, role repair, orders."""
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_current_user
from app.billing import customers
from app.billing.entitlements import paid_sessions
from app.core.config import settings
from app.core.logging import get_logger
from app.core.roles import ACTIVE_SUBSCRIPTION_STATUSES, UserRole, get_user_role, normalize_email
from app.integrations import clerk_api, stripe_api
from app.schemas.account import CheckUserEmailRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["account"])


def _iso(timestamp: int | None) -> str | None:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _period_end(subscription: Any) -> int | None:
    end = subscription.get("current_period_end")
    if end:
        return end
    # Newer API versions keep the period on the subscription items
    items = (subscription.get("items") or {}).get("data") or []
    return items[0].get("current_period_end") if items else None


def _subscription_summary(subscription: Any) -> dict[str, Any]:
    return {
        "id": subscription["id"],
        "status": subscription.get("status"),
        "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end")),
        "currentPeriodEnd": _iso(_period_end(subscription)),
        "trialEnd": _iso(subscription.get("trial_end")),
        "created": _iso(subscription.get("created")),
    }


def _require_email(user: Any) -> str:
    email = normalize_email(clerk_api.primary_email(user))
    if not email:
        raise HTTPException(status_code=400, detail="No email address found")
    return email


@router.post("/billing-portal")
def billing_portal(request: Request, user: Any = Depends(get_current_user)):
    _require_email(user)
    customer_id = customers.linked_customer_id(user)
    if not customer_id:
        raise HTTPException(status_code=404, detail="No billing information found. Please make a purchase first.")

    origin = (request.headers.get("origin") or settings.SITE_URL).rstrip("/")
    session = stripe_api.create_billing_portal_session(customer_id, f"{origin}/my-account")
    return {"url": session.url, "sessionId": session.id}


@router.post("/cancel-subscription")
def cancel_subscription(user: Any = Depends(get_current_user)):
    """Cancel at period end; the role changes when Stripe reports the subscription deleted."""
    _require_email(user)
    customer_id = customers.linked_customer_id(user)
    if not customer_id:
        raise HTTPException(status_code=404, detail="No Stripe customer found")

    active = [
        s for s in stripe_api.list_subscriptions(customer_id, status="all")
        if s.get("status") in ACTIVE_SUBSCRIPTION_STATUSES
    ]
    if not active:
        raise HTTPException(status_code=404, detail="No active subscription found")

    cancelled = []
    for subscription in active:
        updated = stripe_api.cancel_at_period_end(subscription["id"])
        logger.info("Subscription %s of %s set to cancel at period end", updated["id"], user.id)
        cancelled.append({
            "id": updated["id"],
            "status": updated.get("status"),
            "cancelAtPeriodEnd": bool(updated.get("cancel_at_period_end")),
            "accessUntil": _iso(updated.get("trial_end") or _period_end(updated)) or "Unknown",
        })

    return {
        "success": True,
        "message": "Subscription cancelled successfully",
        "subscriptions": cancelled,
    }


@router.post("/link-stripe-customer")
def link_stripe_customer(user: Any = Depends(get_current_user)):
    existing = clerk_api.private_metadata(user).get("stripeCustomerId")
    if existing:
        return {"customerId": existing, "alreadyLinked": True}

    try:
        customer_id, created = customers.ensure_customer(user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    logger.info("Linked Clerk user %s to Stripe customer %s (created=%s)", user.id, customer_id, created)
    return {"customerId": customer_id, "linked": True, "wasCreated": created}


@router.post("/sync-name-from-stripe")
def sync_name_from_stripe(user: Any = Depends(get_current_user)):
    email = _require_email(user)
    customer = stripe_api.find_customer_by_email(email)
    if customer is None:
        raise HTTPException(status_code=404, detail="No Stripe customer found for this email")

    name = (customer.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Stripe customer has no name set")

    first_name, _, last_name = name.partition(" ")
    last_name = last_name.strip()
    clerk_api.update_user_name(user.id, first_name, last_name)
    if not clerk_api.private_metadata(user).get("stripeCustomerId"):
        clerk_api.update_user_metadata(user.id, private_metadata={"stripeCustomerId": customer.id})

    return {
        "synced": True,
        "firstName": first_name,
        "lastName": last_name,
        "stripeCustomerId": customer.id,
    }


@router.post("/fix-subscription-role")
def fix_subscription_role(user: Any = Depends(get_current_user)):
    """Re-derive the role from live Stripe data. Only ever grants subscriber."""
    email = _require_email(user)
    previous_role = get_user_role(clerk_api.public_metadata(user)).value

    customer = stripe_api.find_customer_by_email(email)
    if customer is None:
        return {"message": "No Stripe customer found", "currentRole": previous_role}

    subscriptions = stripe_api.list_subscriptions(customer.id, status="all")
    active = next((s for s in subscriptions if s.get("status") in ACTIVE_SUBSCRIPTION_STATUSES), None)

    new_role = previous_role
    details = None
    if active is not None:
        new_role = UserRole.subscriber.value
        details = _subscription_summary(active)
        clerk_api.update_user_metadata(user.id, public_metadata={"role": new_role})
        logger.info("Role for %s repaired to subscriber from subscription %s", user.id, active["id"])

    return {
        "success": True,
        "previousRole": previous_role,
        "newRole": new_role,
        "subscriptionDetails": details,
        "allSubscriptions": [
            {"id": s["id"], "status": s.get("status"), "created": _iso(s.get("created"))}
            for s in subscriptions
        ],
    }


@router.get("/subscription-status")
def subscription_status(user: Any = Depends(get_current_user)):
    role = get_user_role(clerk_api.public_metadata(user))
    customer_id = customers.linked_customer_id(user)
    subscriptions = stripe_api.list_subscriptions(customer_id, status="all") if customer_id else []
    summaries = [_subscription_summary(s) for s in subscriptions]
    return {
        "role": role.value,
        "hasActiveSubscription": any(s["status"] in ACTIVE_SUBSCRIPTION_STATUSES for s in summaries),
        "subscriptions": summaries,
    }


@router.get("/orders")
def orders(user: Any = Depends(get_current_user)):
    email = clerk_api.primary_email(user)
    customer_id = clerk_api.private_metadata(user).get("stripeCustomerId")
    result = []
    for session in paid_sessions(customer_id, email):
        items = stripe_api.list_line_items(session["id"])
        shipping = session.get("shipping_details") or (session.get("collected_information") or {}).get("shipping_details")
        result.append({
            "id": session["id"],
            "date": _iso(session.get("created")),
            "total": (session.get("amount_total") or 0) / 100,
            "currency": (session.get("currency") or "usd").upper(),
            "status": session.get("payment_status"),
            "items": [
                {
                    "name": item.get("description"),
                    "quantity": item.get("quantity"),
                    "amount": (item.get("amount_total") or 0) / 100,
                }
                for item in items
            ],
            "shipping": (shipping or {}).get("address"),
        })
    result.sort(key=lambda order: order["date"] or "", reverse=True)
    return {"orders": result}


@router.post("/check-user-email")
def check_user_email(body: CheckUserEmailRequest):
    """Whether an account exists, and its WordPress migration flags for the login page."""
    identifier = (body.email or body.username or "").strip().lower()
    if "@" in identifier:
        user = clerk_api.find_user_by_email(identifier)
    else:
        user = clerk_api.find_user_by_username(identifier)

    if user is None:
        return {"exists": False, "migratedFromWordPress": False}

    metadata = clerk_api.public_metadata(user)
    return {
        "exists": True,
        "migratedFromWordPress": metadata.get("migratedFromWordPress") is True,
        "originalWordPressRole": metadata.get("originalWordPressRole"),
        "accountStatus": metadata.get("accountStatus"),
    }
