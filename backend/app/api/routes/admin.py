"""Admin remediation for paid Stripe subscriptions without a working Clerk account."""
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import verify_admin_key
from app.billing import pending_signups
from app.billing.provisioning import SignupDetails, provision_account
from app.core.crypto import DecryptionError, generate_random_password
from app.core.logging import get_logger
from app.core.roles import GUEST_BLOCKING_STATUSES, UserRole, get_user_role, normalize_email
from app.db.session import get_db
from app.integrations import clerk_api, stripe_api
from app.integrations.clerk_api import IdentityProviderError
from app.schemas.account import AdminRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

MAX_CUSTOMERS = 100


def _split_name(name: str | None, email: str) -> tuple[str, str]:
    parts = (name or "").split()
    if not parts:
        return email.split("@")[0], ""
    return parts[0], " ".join(parts[1:])


def _signup_details(db: Session, customer: Any, email: str, plan_name: str | None) -> tuple[SignupDetails, bool]:
    """Details to provision a missing account; second value is True when a random password was used."""
    record = pending_signups.latest_signup_for_email(db, email)
    if record is not None:
        try:
            password = pending_signups.stored_password(record)
        except DecryptionError:
            password = None
        if password:
            return (
                SignupDetails(
                    email=email,
                    first_name=record.first_name,
                    last_name=record.last_name,
                    password=password,
                    plan_name=record.plan_name or plan_name,
                    trial_days=record.trial_days or 0,
                ),
                False,
            )

    first_name, last_name = _split_name(customer.get("name"), email)
    details = SignupDetails(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password=generate_random_password(),
        plan_name=plan_name,
    )
    return details, True


def _active_subscriptions(customer: Any) -> list[Any]:
    subscriptions = customer.get("subscriptions") or {}
    return [s for s in (subscriptions.get("data") or []) if s.get("status") in GUEST_BLOCKING_STATUSES]


@router.post("/fix-missing-clerk-accounts")
def fix_missing_clerk_accounts(
    body: AdminRequest,
    dry_run: bool = Query(default=False, alias="dryRun"),
    limit: int = Query(default=MAX_CUSTOMERS),
    db: Session = Depends(get_db),
):
    verify_admin_key(body.admin_key)
    limit = max(1, min(limit, MAX_CUSTOMERS))
    mode = "dry_run" if dry_run else "fix"
    logger.info("Checking up to %d Stripe customers for missing Clerk accounts (mode=%s)", limit, mode)

    try:
        customers = stripe_api.list_customers_with_subscriptions(limit)
    except stripe.StripeError as e:
        logger.error("Listing Stripe customers failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e

    issues: list[dict[str, Any]] = []
    for customer in customers:
        email = normalize_email(customer.get("email"))
        if not email:
            continue
        active = _active_subscriptions(customer)
        if not active:
            continue
        subscription = active[0]

        try:
            user = clerk_api.find_user_by_email(email)
        except IdentityProviderError as e:
            logger.error("Clerk lookup for %s failed: %s", email, e)
            issues.append({
                "customerId": customer["id"],
                "email": email,
                "issue": "Error checking Clerk",
                "error": str(e),
            })
            continue

        if user is None:
            issue: dict[str, Any] = {
                "customerId": customer["id"],
                "email": email,
                "subscriptionId": subscription["id"],
                "status": subscription.get("status"),
                "issue": "Has active Stripe subscription but no Clerk account",
            }
            if not dry_run:
                plan_name = stripe_api.metadata_of(subscription).get("subscriptionName")
                details, random_password = _signup_details(db, customer, email, plan_name)
                result = provision_account(
                    details,
                    customer_id=customer["id"],
                    subscription_id=subscription["id"],
                    force_password_reset=random_password,
                )
                issue["fixed"] = result.ok
                if result.ok:
                    issue["clerkUserId"] = result.clerk_user_id
                    issue["passwordResetRequired"] = result.needs_password_reset
                else:
                    issue["error"] = result.error
            issues.append(issue)
            continue

        role = get_user_role(clerk_api.public_metadata(user))
        if role is UserRole.subscriber:
            continue
        issue = {
            "customerId": customer["id"],
            "email": email,
            "subscriptionId": subscription["id"],
            "status": subscription.get("status"),
            "clerkUserId": user.id,
            "currentRole": role.value,
            "issue": "Clerk account is missing the subscriber role",
        }
        if not dry_run:
            try:
                clerk_api.update_user_metadata(
                    user.id,
                    public_metadata={"role": UserRole.subscriber.value},
                    private_metadata={"stripeCustomerId": customer["id"]},
                )
                issue["fixed"] = True
            except IdentityProviderError as e:
                logger.error("Failed to fix role for %s: %s", email, e)
                issue["fixed"] = False
                issue["error"] = str(e)
        issues.append(issue)

    logger.info("Checked %d customers, %d issue(s) found (mode=%s)", len(customers), len(issues), mode)
    if not issues:
        message = "No issues found. All customers with active subscriptions have Clerk accounts."
    elif dry_run:
        message = "Issues found. Re-run without dryRun to provision missing accounts and repair roles."
    else:
        message = "Issues processed. Accounts created with a random password were sent reset instructions."
    return {
        "success": True,
        "mode": mode,
        "customersChecked": len(customers),
        "issuesFound": len(issues),
        "issues": issues,
        "message": message,
    }
