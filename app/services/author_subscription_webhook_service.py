"""
Author content subscription reconciler for Stripe webhook events
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.plans import PREMIUM_TIER
from app.database import insert_for, transaction
from app.models.payment import Payment
from app.models.subscription import AuthorSubscription, AuthorSubscriptionRevenue
from app.models.user import User
from app.schemas.billing import (
    BillingEvent,
    invoice_subscription_id,
    metadata_of,
    object_id,
    subscription_period,
    subscription_unit_amount,
)
from app.services.email_templates import EmailTemplates
from app.services.subscription_service import parse_user_id
from app.services.subscription_webhook_service import notify_user, revenue_type_for
from app.utils.time_utils import from_unix_timestamp, utc_now

logger = logging.getLogger(__name__)

AUTHOR_PAYMENT_TYPE = "author_subscription"
AUTHOR_TIERS = ("monthly", "annual")


def monthly_value(tier: str, amount: int) -> int:
    """Contribution of one subscription to monthly recurring revenue, in cents."""
    if tier == "annual":
        return int(round((amount or 0) / 12))
    return amount or 0


class AuthorSubscriptionWebhookService:
    """Applies subscription and invoice events to author subscriptions"""

    async def handle_event(self, db: Session, event: BillingEvent, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        obj = event.object
        logger.info(f"[Author Subscription Webhook] Processing {event.type} for {obj.get('id')}")

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

        logger.info(f"[Author Subscription Webhook] Unhandled event type: {event.type}")
        return "ignored"

    def update_author_metrics(self, db: Session, author_id: int) -> None:
        """Recompute the author's cached active-subscriber count and MRR."""
        active = (
            db.query(AuthorSubscription.tier, AuthorSubscription.amount)
            .filter(AuthorSubscription.author_id == author_id, AuthorSubscription.status == "active")
            .all()
        )
        mrr = sum(monthly_value(tier, amount) for tier, amount in active)

        db.query(User).filter(User.id == author_id).update(
            {User.paid_subscribers_count: len(active), User.monthly_recurring_revenue: mrr},
            synchronize_session=False,
        )

    async def handle_subscription_created(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        metadata = metadata_of(subscription)
        author_id = parse_user_id(metadata.get("author_id"))
        subscriber_id = parse_user_id(metadata.get("subscriber_id"))
        tier = metadata.get("tier")

        if not author_id or not subscriber_id or tier not in AUTHOR_TIERS:
            logger.error(f"Missing required metadata in author subscription {subscription.get('id')}: {metadata}")
            return "ignored"

        amount = subscription_unit_amount(subscription)
        currency = subscription.get("currency") or "eur"
        period_start, period_end = subscription_period(subscription)
        values = {
            "stripe_subscription_id": subscription.get("id"),
            "stripe_customer_id": object_id(subscription.get("customer")),
            "status": subscription.get("status"),
            "tier": tier,
            "amount": amount,
            "currency": currency,
            "current_period_start": from_unix_timestamp(period_start),
            "current_period_end": from_unix_timestamp(period_end),
            "trial_start": from_unix_timestamp(subscription.get("trial_start")),
            "trial_end": from_unix_timestamp(subscription.get("trial_end")),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "updated_at": now,
        }
        latest_invoice = object_id(subscription.get("latest_invoice"))

        with transaction(db):
            stmt = insert_for(db, AuthorSubscription).values(
                author_id=author_id, subscriber_id=subscriber_id, created_at=now, **values
            )
            db.execute(
                stmt.on_conflict_do_update(
                    index_elements=[AuthorSubscription.author_id, AuthorSubscription.subscriber_id],
                    set_=values,
                )
            )

            if latest_invoice:
                payment = insert_for(db, Payment).values(
                    user_id=subscriber_id,
                    amount=amount,
                    currency=currency,
                    payment_type=AUTHOR_PAYMENT_TYPE,
                    status="succeeded",
                    stripe_invoice_id=latest_invoice,
                    revenue_type="initial_subscription",
                    completed_at=now,
                    created_at=now,
                    updated_at=now,
                )
                db.execute(payment.on_conflict_do_nothing(index_elements=[Payment.stripe_invoice_id]))

            self.update_author_metrics(db, author_id)

        author = db.get(User, author_id)
        subscriber = db.get(User, subscriber_id)
        author_name = author.display_name if author else "the author"
        subscriber_name = subscriber.display_name if subscriber else "A reader"

        await notify_user(subscriber, EmailTemplates.author_welcome(subscriber_name, author_name, tier))
        await notify_user(author, EmailTemplates.author_new_subscriber(author_name, subscriber_name))
        return "author_subscription_created"

    async def handle_subscription_updated(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        metadata = metadata_of(subscription)
        author_id = parse_user_id(metadata.get("author_id"))
        if not author_id:
            logger.error(f"Missing author_id in subscription metadata: {subscription.get('id')}")
            return "ignored"

        period_start, period_end = subscription_period(subscription)
        values = {
            AuthorSubscription.status: subscription.get("status"),
            AuthorSubscription.current_period_start: from_unix_timestamp(period_start),
            AuthorSubscription.current_period_end: from_unix_timestamp(period_end),
            AuthorSubscription.cancel_at_period_end: bool(subscription.get("cancel_at_period_end")),
            AuthorSubscription.updated_at: now,
        }
        if metadata.get("tier") in AUTHOR_TIERS:
            values[AuthorSubscription.tier] = metadata["tier"]

        with transaction(db):
            db.query(AuthorSubscription).filter(
                AuthorSubscription.stripe_subscription_id == subscription.get("id")
            ).update(values, synchronize_session=False)
            self.update_author_metrics(db, author_id)

        return "author_subscription_updated"

    async def handle_subscription_deleted(self, db: Session, subscription: Dict[str, Any], now: datetime) -> str:
        metadata = metadata_of(subscription)
        author_id = parse_user_id(metadata.get("author_id"))
        subscriber_id = parse_user_id(metadata.get("subscriber_id"))
        if not author_id or not subscriber_id:
            logger.error(f"Missing required metadata in author subscription {subscription.get('id')}")
            return "ignored"

        local = db.query(AuthorSubscription).filter(
            AuthorSubscription.stripe_subscription_id == subscription.get("id")
        ).first()

        with transaction(db):
            if local:
                local.status = "canceled"
                local.canceled_at = local.canceled_at or from_unix_timestamp(subscription.get("canceled_at")) or now
                local.updated_at = now
                db.flush()
            self.update_author_metrics(db, author_id)

        author = db.get(User, author_id)
        subscriber = db.get(User, subscriber_id)
        await notify_user(
            subscriber,
            EmailTemplates.author_canceled(
                subscriber.display_name if subscriber else "",
                author.display_name if author else "the author",
            ),
        )
        return "author_subscription_deleted"

    async def handle_invoice_payment_succeeded(self, db: Session, invoice: Dict[str, Any], now: datetime) -> str:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id:
            return "ignored"

        local = db.query(AuthorSubscription).filter(
            AuthorSubscription.stripe_subscription_id == stripe_subscription_id
        ).first()
        if not local:
            logger.info(f"[Author Subscription Webhook] Subscription {stripe_subscription_id} not found")
            return "ignored"

        subscription_id, author_id, subscriber_id = local.id, local.author_id, local.subscriber_id
        tier, currency = local.tier, local.currency
        amount = invoice.get("amount_paid")
        amount = local.amount if amount is None else int(amount)
        discount = sum(int(d.get("amount") or 0) for d in invoice.get("total_discount_amounts") or [])

        with transaction(db):
            local.status = "active"
            local.updated_at = now
            db.flush()

            subscriber = db.get(User, subscriber_id)
            revenue = insert_for(db, AuthorSubscriptionRevenue).values(
                author_id=author_id,
                subscription_id=subscription_id,
                amount=amount,
                currency=currency,
                tier=tier,
                is_premium_subscriber=bool(subscriber and subscriber.subscription_tier == PREMIUM_TIER),
                discount_amount=discount,
                stripe_invoice_id=invoice.get("id"),
                stripe_charge_id=object_id(invoice.get("charge")),
                revenue_type=revenue_type_for(invoice),
                created_at=now,
            )
            db.execute(revenue.on_conflict_do_nothing(index_elements=[AuthorSubscriptionRevenue.stripe_invoice_id]))
            self.update_author_metrics(db, author_id)

        subscriber = db.get(User, subscriber_id)
        await notify_user(
            subscriber,
            EmailTemplates.author_receipt(
                subscriber.display_name if subscriber else "", amount, currency, invoice.get("hosted_invoice_url")
            ),
        )
        return "author_invoice_paid"

    async def handle_invoice_payment_failed(self, db: Session, invoice: Dict[str, Any], now: datetime) -> str:
        stripe_subscription_id = invoice_subscription_id(invoice)
        if not stripe_subscription_id:
            return "ignored"

        local = db.query(AuthorSubscription).filter(
            AuthorSubscription.stripe_subscription_id == stripe_subscription_id
        ).first()
        if not local:
            logger.info(f"[Author Subscription Webhook] Subscription {stripe_subscription_id} not found")
            return "ignored"

        author_id, subscriber_id = local.author_id, local.subscriber_id
        with transaction(db):
            local.status = "past_due"
            local.updated_at = now
            db.flush()
            self.update_author_metrics(db, author_id)

        subscriber = db.get(User, subscriber_id)
        await notify_user(
            subscriber,
            EmailTemplates.author_payment_failed(
                subscriber.display_name if subscriber else "", invoice.get("hosted_invoice_url")
            ),
        )
        return "author_invoice_failed"


# Global author subscription webhook service instance
author_subscription_webhook_service = AuthorSubscriptionWebhookService()
