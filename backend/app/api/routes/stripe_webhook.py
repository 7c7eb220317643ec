"""Stripe webhook receiver."""
import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.billing.webhooks import process_event
from app.core.config import settings
from app.core.logging import get_logger
from app.db.session import get_db
from app.integrations import stripe_api

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["webhooks"])


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = stripe_api.construct_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    # Handlers call the synchronous SDKs
    return await run_in_threadpool(process_event, db, event)
