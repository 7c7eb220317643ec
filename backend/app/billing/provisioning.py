"""
Account provisioning after a paid guest checkout.

A guest pays before any Clerk account exists. When Stripe reports the
completed checkout, ``complete_guest_signup`` recovers the signup details
(server-side pending record, else legacy session metadata), creates or links
the Clerk user with role ``subscriber`` and ties the new Stripe customer to it.

Nothing here raises for provisioning failures: the payment has already been
taken, so every failure is logged (``MANUAL INTERVENTION REQUIRED`` when no
account could be produced) and reported through ``ProvisioningResult``.
"""
from dataclasses import dataclass
from typing import Any

import stripe
from sqlalchemy.orm import Session

from app.billing import pending_signups
from app.core.crypto import DecryptionError, decrypt, generate_random_password, is_encrypted
from app.core.logging import get_logger
from app.core.roles import UserRole, normalize_email
from app.db.models.pending_signup import PendingSignup
from app.integrations import clerk_api, stripe_api
from app.integrations.clerk_api import IdentityProviderError
from app.notifications.email_sender import EmailSendError, send_email
from app.notifications.templates import welcome_email

logger = get_logger(__name__)

MANUAL_INTERVENTION = "MANUAL INTERVENTION REQUIRED"


@dataclass
class SignupDetails:
    email: str
    first_name: str
    last_name: str
    password: str
    plan_name: str | None = None
    trial_days: int = 0
    from_legacy_metadata: bool = False


@dataclass
class ProvisioningResult:
    clerk_user_id: str | None = None
    created: bool = False
    needs_password_reset: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.clerk_user_id is not None


def is_pending_signup(session: Any) -> bool:
    metadata = stripe_api.metadata_of(session)
    return metadata.get("pendingSignup") == "true" and not metadata.get("clerkUserId")


def _legacy_details(session: Any, subscription: Any) -> SignupDetails | None:
    """Signup fields written into Stripe metadata by older checkouts."""
    metadata = {**stripe_api.metadata_of(subscription), **stripe_api.metadata_of(session)}
    email = normalize_email(metadata.get("email") or session.get("customer_email"))
    first_name = (metadata.get("firstName") or "").strip()
    last_name = (metadata.get("lastName") or "").strip()
    raw_password = metadata.get("password") or ""

    if not (email and first_name and last_name and raw_password):
        logger.error(
            "Checkout session %s is a pending signup but has no stored record and incomplete metadata",
            session["id"],
        )
        return None

    password = raw_password
    if is_encrypted(raw_password):
        try:
            password = decrypt(raw_password)
        except DecryptionError:
            logger.error("Could not decrypt signup password for checkout session %s", session["id"])
            return None
    else:
        logger.warning("Checkout session %s carries a legacy plaintext password", session["id"])

    return SignupDetails(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password=password,
        plan_name=metadata.get("subscriptionName"),
        from_legacy_metadata=True,
    )


def _stored_details(record: PendingSignup) -> SignupDetails | None:
    try:
        password = pending_signups.stored_password(record)
    except DecryptionError:
        logger.error("Could not decrypt stored password for pending signup %s", record.id)
        return None
    if not password:
        logger.error("Pending signup %s has no stored password", record.id)
        return None
    return SignupDetails(
        email=record.email,
        first_name=record.first_name,
        last_name=record.last_name,
        password=password,
        plan_name=record.plan_name,
        trial_days=record.trial_days or 0,
    )


def _link_existing_user(user_id: str, customer_id: str | None) -> None:
    private = {"stripeCustomerId": customer_id} if customer_id else None
    clerk_api.update_user_metadata(
        user_id,
        public_metadata={"role": UserRole.subscriber.value},
        private_metadata=private,
    )


def _create_user(details: SignupDetails, customer_id: str | None) -> tuple[Any, bool]:
    """Create the Clerk user; returns (user, needs_password_reset)."""
    kwargs = dict(
        email=details.email,
        first_name=details.first_name,
        last_name=details.last_name,
        public_metadata={"role": UserRole.subscriber.value},
        private_metadata={"stripeCustomerId": customer_id} if customer_id else {},
    )
    try:
        return clerk_api.create_user(password=details.password, **kwargs), False
    except IdentityProviderError as e:
        if not e.password_breached:
            raise
        logger.warning("Password for %s was rejected as breached, retrying with a random password", details.email)
    return clerk_api.create_user(password=generate_random_password(), **kwargs), True


def _update_stripe_records(
    customer_id: str | None,
    subscription_id: str | None,
    clerk_user_id: str,
    details: SignupDetails,
) -> None:
    metadata = {"clerkUserId": clerk_user_id, "pendingSignup": "false"}
    if details.from_legacy_metadata:
        # Empty string unsets the key in Stripe
        metadata["password"] = ""

    if customer_id:
        try:
            stripe_api.update_customer(
                customer_id,
                name=f"{details.first_name} {details.last_name}".strip(),
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error("Failed to update Stripe customer %s for %s: %s", customer_id, clerk_user_id, e)

    if subscription_id:
        try:
            stripe_api.update_subscription(subscription_id, metadata=metadata)
        except stripe.StripeError as e:
            logger.error("Failed to update Stripe subscription %s for %s: %s", subscription_id, clerk_user_id, e)


def _send_welcome(details: SignupDetails, needs_password_reset: bool) -> None:
    subject, text, html = welcome_email(
        details.first_name,
        details.plan_name,
        trial_days=details.trial_days,
        needs_password_reset=needs_password_reset,
    )
    try:
        send_email(details.email, subject, text, html)
    except EmailSendError as e:
        logger.error("Failed to send welcome email to %s: %s", details.email, e)


def provision_account(
    details: SignupDetails,
    *,
    customer_id: str | None,
    subscription_id: str | None,
    force_password_reset: bool = False,
) -> ProvisioningResult:
    """Create or link the Clerk subscriber for a paid signup, then tie Stripe records to it."""
    result = ProvisioningResult()

    try:
        existing = clerk_api.find_user_by_email(details.email)
    except IdentityProviderError as e:
        existing = None
        logger.warning("Clerk lookup for %s failed before provisioning: %s", details.email, e)

    if existing is not None:
        logger.info("Clerk user %s already exists for %s, linking subscription", existing.id, details.email)
        try:
            _link_existing_user(existing.id, customer_id)
        except IdentityProviderError as e:
            logger.error("Failed to set subscriber role on %s: %s", existing.id, e)
        result.clerk_user_id = existing.id
    else:
        try:
            user, breached = _create_user(details, customer_id)
            result.clerk_user_id = user.id
            result.created = True
            result.needs_password_reset = breached
            logger.info("Created Clerk user %s for %s", user.id, details.email)
        except IdentityProviderError as e:
            logger.warning("Clerk user creation for %s failed (%s), re-checking", details.email, e)
            try:
                recheck = clerk_api.find_user_by_email(details.email)
            except IdentityProviderError:
                recheck = None
            if recheck is None:
                result.error = str(e)
                logger.error(
                    "%s: paid signup for %s (customer %s, subscription %s) has no Clerk account: %s",
                    MANUAL_INTERVENTION,
                    details.email,
                    customer_id,
                    subscription_id,
                    e,
                )
                return result
            try:
                _link_existing_user(recheck.id, customer_id)
            except IdentityProviderError as link_error:
                logger.error("Failed to set subscriber role on %s: %s", recheck.id, link_error)
            result.clerk_user_id = recheck.id

    result.needs_password_reset = result.needs_password_reset or force_password_reset
    _update_stripe_records(customer_id, subscription_id, result.clerk_user_id, details)
    _send_welcome(details, result.needs_password_reset)
    return result


def complete_guest_signup(db: Session, session: Any) -> ProvisioningResult | None:
    """
    Provision the account for a completed subscription checkout that started
    as a guest signup. Returns None when the signup details could not be
    recovered (logged, nothing to provision).
    """
    subscription_id = session.get("subscription")
    subscription = None
    if subscription_id:
        try:
            subscription = stripe_api.retrieve_subscription(subscription_id)
        except stripe.StripeError as e:
            logger.error("Failed to retrieve subscription %s for session %s: %s", subscription_id, session["id"], e)

    record = pending_signups.get_pending_signup(db, session["id"])
    if record is not None:
        details = _stored_details(record)
    else:
        details = _legacy_details(session, subscription or {})
    if details is None:
        if record is not None:
            pending_signups.fail_pending_signup(db, record, "signup details unavailable")
        return None

    result = provision_account(
        details,
        customer_id=session.get("customer"),
        subscription_id=subscription_id,
    )

    if record is not None:
        if result.ok:
            pending_signups.complete_pending_signup(db, record, result.clerk_user_id)
        else:
            pending_signups.fail_pending_signup(db, record, result.error or "account provisioning failed")
    return result
