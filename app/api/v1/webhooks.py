"""
Stripe webhook endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.billing import BillingEvent, WebhookResponse
from app.services.stripe_service import WebhookSignatureError, stripe_service
from app.services.webhook_service import webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db)
):
    """
    Receive a Stripe event. A failed reconciliation answers 5xx so Stripe
    re-delivers the event later.
    """
    payload = await request.body()

    try:
        raw_event = stripe_service.construct_event(payload, stripe_signature)
        event = BillingEvent.model_validate(raw_event)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ValueError as e:
        logger.warning(f"Malformed Stripe event: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed event")

    outcome = await webhook_service.handle_billing_event(db, event)
    return WebhookResponse(event_id=event.id, outcome=outcome)
