"""Server-side store for guest signups awaiting payment."""
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.crypto import decrypt, encrypt
from app.db.models.pending_signup import PendingSignup


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def save_pending_signup(
    db: Session,
    *,
    checkout_session_id: str,
    email: str,
    first_name: str,
    last_name: str,
    password: str,
    plan_id: str,
    plan_name: str | None = None,
    trial_days: int = 0,
) -> PendingSignup:
    now = _utcnow()
    record = PendingSignup(
        checkout_session_id=checkout_session_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_encrypted=encrypt(password),
        plan_id=plan_id,
        plan_name=plan_name,
        trial_days=trial_days,
        status="pending",
        created_at=now,
        expires_at=now + timedelta(hours=settings.PENDING_SIGNUP_TTL_HOURS),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_pending_signup(db: Session, checkout_session_id: str) -> PendingSignup | None:
    return db.execute(
        select(PendingSignup).where(
            PendingSignup.checkout_session_id == checkout_session_id,
            PendingSignup.status == "pending",
            PendingSignup.expires_at > _utcnow(),
        )
    ).scalar_one_or_none()


def latest_signup_for_email(db: Session, email: str) -> PendingSignup | None:
    """Most recent unexpired record that still holds a password, any status."""
    return db.execute(
        select(PendingSignup)
        .where(
            PendingSignup.email == email,
            PendingSignup.password_encrypted.is_not(None),
            PendingSignup.expires_at > _utcnow(),
        )
        .order_by(PendingSignup.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def stored_password(record: PendingSignup) -> str | None:
    if not record.password_encrypted:
        return None
    return decrypt(record.password_encrypted)


def complete_pending_signup(db: Session, record: PendingSignup, clerk_user_id: str) -> None:
    record.status = "completed"
    record.clerk_user_id = clerk_user_id
    record.password_encrypted = None
    record.last_error = None
    record.completed_at = _utcnow()
    db.commit()


def fail_pending_signup(db: Session, record: PendingSignup, error: str) -> None:
    # Password is kept until expiry so the admin remediation can retry
    record.status = "failed"
    record.last_error = error[:2000]
    db.commit()


def purge_expired_signups(db: Session) -> int:
    result = db.execute(delete(PendingSignup).where(PendingSignup.expires_at < _utcnow()))
    db.commit()
    return result.rowcount or 0
