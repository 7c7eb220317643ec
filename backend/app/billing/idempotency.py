"""
Webhook event dedup backed by the stripe_webhook_events table.

Stripe redelivers events it considers unacknowledged and may deliver the same
event to several instances at once. Claiming an event inserts its id under a
primary key, so exactly one claim wins across all processes. Rows expire after
WEBHOOK_EVENT_TTL_HOURS, well past Stripe's retry window.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.db.models.webhook_event import StripeWebhookEvent

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def claim_event(db: Session, event_id: str, event_type: str) -> bool:
    """Return True if this caller owns the event, False if it was already seen."""
    now = _utcnow()

    existing = db.get(StripeWebhookEvent, event_id)
    if existing is not None:
        if _as_utc(existing.expires_at) > now:
            return False
        db.delete(existing)
        db.flush()

    db.add(
        StripeWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            status="processing",
            received_at=now,
            expires_at=now + timedelta(hours=settings.WEBHOOK_EVENT_TTL_HOURS),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Event %s claimed concurrently by another worker", event_id)
        return False
    return True


def finish_event(db: Session, event_id: str, error: str | None = None) -> None:
    row = db.get(StripeWebhookEvent, event_id)
    if row is None:
        return
    row.status = "failed" if error else "processed"
    row.last_error = error[:2000] if error else None
    row.processed_at = _utcnow()
    db.commit()


def purge_expired_events(db: Session) -> int:
    result = db.execute(
        delete(StripeWebhookEvent).where(StripeWebhookEvent.expires_at < _utcnow())
    )
    db.commit()
    return result.rowcount or 0
