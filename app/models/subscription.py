"""
Subscription models: platform premium, author content subscriptions and
billing bookkeeping
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import utc_now


class Subscription(Base):
    """Platform (premium) subscription, one per user, never deleted"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)

    tier = Column(String(20), default="free", nullable=False)  # 'free', 'premium'
    status = Column(String(50), nullable=True)  # 'trialing', 'active', 'past_due', 'canceled', ...

    # Stripe identifiers
    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Billing period
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime, nullable=True)

    # Timestamps
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    user = relationship("User", back_populates="subscription")


class SubscriptionQuotaUsage(Base):
    """Audit row written for every admitted quota-consuming action"""
    __tablename__ = "subscription_quota_usage"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    action_type = Column(String(50), nullable=False)  # 'game_created'
    quota_used = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=utc_now, index=True)


class AuthorSubscription(Base):
    """A reader's paid subscription to an author's content"""
    __tablename__ = "author_subscriptions"

    id = Column(Integer, primary_key=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscriber_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)

    status = Column(String(50), nullable=True)
    tier = Column(String(20), nullable=False)  # 'monthly', 'annual'
    amount = Column(Integer, default=0, nullable=False)  # In cents
    currency = Column(String(3), default="eur", nullable=False)

    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("author_id", "subscriber_id", name="unique_author_subscriber"),
    )


class AuthorSubscriptionRevenue(Base):
    """Revenue ledger for author subscriptions, one row per paid invoice"""
    __tablename__ = "author_subscription_revenue"

    id = Column(Integer, primary_key=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("author_subscriptions.id", ondelete="CASCADE"), nullable=False)

    amount = Column(Integer, nullable=False)  # In cents
    currency = Column(String(3), default="eur", nullable=False)
    tier = Column(String(20), nullable=False)
    is_premium_subscriber = Column(Boolean, default=False, nullable=False)
    discount_amount = Column(Integer, default=0, nullable=False)

    stripe_invoice_id = Column(String(255), unique=True, nullable=False)
    stripe_charge_id = Column(String(255), nullable=True)
    revenue_type = Column(String(30), nullable=False)  # 'initial_subscription', 'renewal'

    created_at = Column(DateTime, default=utc_now)


class ProcessedBillingEvent(Base):
    """Provider event ids that have already been applied"""
    __tablename__ = "processed_billing_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime, default=utc_now)
