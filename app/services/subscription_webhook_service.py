"""
Platform (premium) subscription reconciler for Stripe webhook events
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.plans import FREE_TIER, PREMIUM_TIER
from app.database import insert_for, transaction
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.models.user import User
from app.schemas.billing import BillingEvent, invoice_subscription_id, metadata_of, object_id
from app.schemas.notification import EmailMessage
from app.services.email_service import email_service
from app.services.email_templates import EmailTemplates
from app.services.subscription_service import parse_user_id, subscription_fields
from app.utils.time_utils import from_unix_timestamp, utc_now

logger = logging.getLogger(__name__)

PLATFORM_PAYMENT_TYPE = "platform_subscription"


def revenue_type_for(invoice: Dict[str, Any]) -> str:
    return "initial_subscription" if invoice.get("billing_reason") == "subscription_create" else "renewal"


async def notify_user(user: Optional[User], message: EmailMessage) -> None:
    """Best-effort email to a user; failures are logged, never raised."""
    if user is None:
        return
    try:
        result = await email_service.send_message(user.email, message)
        if not result.success:
            logger.warning(f"Email '{message.subject}' to user {user.id} failed: {result.error}")
    except Exception as e:
        logger.error(f"Failed to send '{message.subject}' to user {user.id}: {e}", exc_info=True)


class SubscriptionWebhookService:
    """Applies subscription and invoice events to platform subscriptions"""

    HANDLED_EVENTS = (
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
        "invoice.payment_succeeded",
        "invoice.payment_failed",
    )

    async def handle_event(self, db: Session, event: BillingEvent, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        obj = event.object
        logger.info(f"[Subscription Webhook] Processing {event.type} for {obj.get('id')}")

        if event.type == "customer.subscription.created":
            return await self.handle_subscription_created(db, obj, now)
        if event.type == "customer.subscription.updated":
            return await self.handle_subscription_updated(db, obj, now)
        if event.type == "customer.subscription.deleted":
            return await self.handle_subscription_deleted(db, obj, now)
        if event.type == "invoice.payment_succeeded":
            return await self.handle_invoice_payment_succeeded(db, obj, now)
        if event.type == "invoice.payment_failed":
            return await self.handle_invoice_payment_failed(db, obj, now)

        logger.info(f"[Subscription Webhook] Unhandled event type: {event.type}")
        return "ignored"

    async def handle_subscription_created(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        user_id = parse_user_id(metadata_of(subscription).get("user_id"))
        if not user_id:
            logger.error(f"No user_id in subscription metadata: {subscription.get('id')}")
            return "ignored"

        fields = subscription_fields(subscription)
        values = {
            **fields,
            "user_id": user_id,
            "stripe_subscription_id": subscription.get("id"),
            "stripe_customer_id": object_id(subscription.get("customer")),
            "created_at": now,
            "updated_at": now,
        }
        update_values = {k: v for k, v in values.items() if k not in ("user_id", "created_at")}

        with transaction(db):
            stmt = insert_for(db, Subscription).values(**values)
            db.execute(stmt.on_conflict_do_update(index_elements=[Subscription.user_id], set_=update_values))
            db.query(User).filter(User.id == user_id).update(
                {
                    User.subscription_tier: fields["tier"],
                    User.subscription_status: fields["status"],
                    User.trial_ends_at: fields["trial_end"],
                },
                synchronize_session=False,
            )

        user = db.get(User, user_id)
        if fields["tier"] == PREMIUM_TIER:
            await notify_user(user, EmailTemplates.premium_welcome(user.display_name if user else ""))
        return "subscription_created"

    async def handle_subscription_updated(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        user_id = parse_user_id(metadata_of(subscription).get("user_id"))
        if not user_id:
            logger.error(f"No user_id in subscription metadata: {subscription.get('id')}")
            return "ignored"

        fields = subscription_fields(subscription)
        with transaction(db):
            updated = db.query(Subscription).filter(
                Subscription.stripe_subscription_id == subscription.get("id")
            ).update(
                {
                    Subscription.tier: fields["tier"],
                    Subscription.status: fields["status"],
                    Subscription.current_period_start: fields["current_period_start"],
                    Subscription.current_period_end: fields["current_period_end"],
                    Subscription.cancel_at_period_end: fields["cancel_at_period_end"],
                    Subscription.updated_at: now,
                },
                synchronize_session=False,
            )
            db.query(User).filter(User.id == user_id).update(
                {User.subscription_tier: fields["tier"], User.subscription_status: fields["status"]},
                synchronize_session=False,
            )

        if not updated:
            logger.warning(f"No local subscription row for {subscription.get('id')}; user cache updated only")
        return "subscription_updated"

    async def handle_subscription_deleted(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        user_id = parse_user_id(metadata_of(subscription).get("user_id"))
        if not user_id:
            logger.error(f"No user_id in subscription metadata: {subscription.get('id')}")
            return "ignored"

        canceled_at = from_unix_timestamp(subscription.get("canceled_at")) or now
        with transaction(db):
            db.query(Subscription).filter(
                Subscription.stripe_subscription_id == subscription.get("id")
            ).update(
                {
                    Subscription.tier: FREE_TIER,
                    Subscription.status: "canceled",
                    Subscription.canceled_at: func.coalesce(Subscription.canceled_at, canceled_at),
                    Subscription.updated_at: now,
                },
                synchronize_session=False,
            )
            db.query(User).filter(User.id == user_id).update(
                {User.subscription_tier: FREE_TIER, User.subscription_status: "canceled"},
                synchronize_session=False,
            )

        user = db.get(User, user_id)
        await notify_user(user, EmailTemplates.premium_canceled(user.display_name if user else ""))
        return "subscription_deleted"

    async def handle_invoice_payment_succeeded(self, db: Session, invoice: Dict[str, Any], now: datetime) -> str:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id:
            return "ignored"

        local = db.query(Subscription).filter(
            Subscription.stripe_subscription_id == stripe_subscription_id
        ).first()
        if not local:
            logger.warning(f"Invoice {invoice.get('id')} for unknown subscription {stripe_subscription_id}")
            return "ignored"
        user_id = local.user_id

        with transaction(db):
            db.query(Subscription).filter(Subscription.id == local.id).update(
                {
                    Subscription.status: "active",
                    Subscription.tier: PREMIUM_TIER,
                    Subscription.cancel_at_period_end: False,
                    Subscription.updated_at: now,
                },
                synchronize_session=False,
            )
            db.query(User).filter(User.id == user_id).update(
                {User.subscription_tier: PREMIUM_TIER, User.subscription_status: "active"},
                synchronize_session=False,
            )
            self.record_invoice_payment(db, user_id, invoice, now)

        user = db.get(User, user_id)
        await notify_user(
            user,
            EmailTemplates.premium_receipt(
                user.display_name if user else "",
                int(invoice.get("amount_paid") or 0),
                invoice.get("currency") or "eur",
                invoice.get("hosted_invoice_url"),
            ),
        )
        return "invoice_paid"

    def record_invoice_payment(self, db: Session, user_id: int, invoice: Dict[str, Any], now: datetime) -> None:
        """Ledger row for a paid subscription invoice, at most one per invoice."""
        stmt = insert_for(db, Payment).values(
            user_id=user_id,
            amount=int(invoice.get("amount_paid") or 0),
            currency=invoice.get("currency") or "eur",
            payment_type=PLATFORM_PAYMENT_TYPE,
            status="succeeded",
            stripe_invoice_id=invoice.get("id"),
            stripe_payment_intent_id=object_id(invoice.get("payment_intent")),
            revenue_type=revenue_type_for(invoice),
            completed_at=now,
            created_at=now,
            updated_at=now,
        )
        db.execute(stmt.on_conflict_do_nothing(index_elements=[Payment.stripe_invoice_id]))

    async def handle_invoice_payment_failed(self, db: Session, invoice: Dict[str, Any], now: datetime) -> str:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id:
            return "ignored"

        local = db.query(Subscription).filter(
            Subscription.stripe_subscription_id == stripe_subscription_id
        ).first()
        if not local:
            logger.warning(f"Invoice {invoice.get('id')} for unknown subscription {stripe_subscription_id}")
            return "ignored"
        user_id = local.user_id

        with transaction(db):
            db.query(Subscription).filter(Subscription.id == local.id).update(
                {
                    Subscription.status: "past_due",
                    Subscription.tier: FREE_TIER,
                    Subscription.updated_at: now,
                },
                synchronize_session=False,
            )
            db.query(User).filter(User.id == user_id).update(
                {User.subscription_tier: FREE_TIER, User.subscription_status: "past_due"},
                synchronize_session=False,
            )

        user = db.get(User, user_id)
        await notify_user(
            user,
            EmailTemplates.premium_payment_failed(
                user.display_name if user else "", invoice.get("hosted_invoice_url")
            ),
        )
        return "invoice_failed"


# Global subscription webhook service instance
subscription_webhook_service = SubscriptionWebhookService()
