"""
Stripe webhook dispatcher: de-duplicates deliveries and routes each event to
exactly one reconciler
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from app.database import insert_for, transaction
from app.models.subscription import AuthorSubscription, ProcessedBillingEvent
from app.schemas.billing import BillingEvent, invoice_subscription_details, invoice_subscription_id, metadata_of
from app.services.author_subscription_webhook_service import author_subscription_webhook_service
from app.services.payment_service import payment_service
from app.services.subscription_webhook_service import subscription_webhook_service
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DUPLICATE = "duplicate"


class WebhookService:
    """Entry point for verified Stripe events"""

    def claim_event(self, db: Session, event: BillingEvent, now: datetime) -> bool:
        """
        Record the event id before handling it. Returns False when another
        delivery of the same event already holds the id.
        """
        with transaction(db):
            stmt = insert_for(db, ProcessedBillingEvent).values(
                event_id=event.id, event_type=event.type, processed_at=now
            )
            result = db.execute(stmt.on_conflict_do_nothing(index_elements=[ProcessedBillingEvent.event_id]))
            claimed = result.rowcount == 1
        return claimed

    def release_event(self, db: Session, event_id: str) -> None:
        """Forget a claimed event so the provider's redelivery is handled again."""
        db.rollback()
        with transaction(db):
            db.query(ProcessedBillingEvent).filter(
                ProcessedBillingEvent.event_id == event_id
            ).delete(synchronize_session=False)

    def is_author_event(self, db: Session, event: BillingEvent) -> bool:
        """
        Whether a subscription or invoice event belongs to an author
        subscription. Author subscriptions carry `author_id` metadata; invoices
        inherit it through their subscription details, and otherwise are
        matched by the subscription id already stored locally.
        """
        obj = event.object
        if event.type.startswith("customer.subscription."):
            return bool(metadata_of(obj).get("author_id"))

        details = invoice_subscription_details(obj)
        if metadata_of(details).get("author_id"):
            return True
        stripe_subscription_id = invoice_subscription_id(obj)
        if not stripe_subscription_id:
            return False
        return db.query(AuthorSubscription.id).filter(
            AuthorSubscription.stripe_subscription_id == stripe_subscription_id
        ).first() is not None

    async def handle_billing_event(
        self, db: Session, event: Union[BillingEvent, Dict[str, Any]], now: Optional[datetime] = None
    ) -> str:
        """
        Apply one event. The event id is claimed first, so concurrent or later
        deliveries of the same id are skipped. Handler failures release the
        claim and propagate so the provider re-delivers.
        """
        if not isinstance(event, BillingEvent):
            event = BillingEvent.model_validate(event)
        now = now or utc_now()

        if not self.claim_event(db, event, now):
            logger.info(f"[Webhook] Event {event.id} ({event.type}) already processed")
            return DUPLICATE

        logger.info(f"[Webhook] Processing event {event.id}: {event.type}")

        try:
            return await self._dispatch(db, event, now)
        except Exception:
            logger.error(f"[Webhook] Event {event.id} ({event.type}) failed, releasing it for redelivery")
            self.release_event(db, event.id)
            raise

    async def _dispatch(self, db: Session, event: BillingEvent, now: datetime) -> str:
        if event.is_subscription_event:
            if self.is_author_event(db, event):
                return await author_subscription_webhook_service.handle_event(db, event, now)
            return await subscription_webhook_service.handle_event(db, event, now)
        if event.type in payment_service.HANDLED_EVENTS:
            return await payment_service.handle_event(db, event, now)

        logger.info(f"[Webhook] Unhandled event type: {event.type}")
        return "ignored"


# Global webhook service instance
webhook_service = WebhookService()
