"""
Subscription service: game-creation quota, subscription status and
provider sync
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.plans import UNLIMITED, get_quota_limit, has_unlimited_quota, tier_for_status
from app.database import transaction
from app.models.subscription import Subscription, SubscriptionQuotaUsage
from app.models.user import User
from app.schemas.billing import metadata_of, object_id, subscription_period
from app.schemas.subscription import QuotaCheckResult, SubscriptionStatusResponse
from app.services.stripe_service import stripe_service
from app.utils.time_utils import from_unix_timestamp, utc_now

logger = logging.getLogger(__name__)

GAME_CREATED_ACTION = "game_created"


def subscription_fields(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Column values for a local subscription row from a provider payload."""
    period_start, period_end = subscription_period(subscription)
    return {
        "tier": tier_for_status(subscription.get("status")),
        "status": subscription.get("status"),
        "current_period_start": from_unix_timestamp(period_start),
        "current_period_end": from_unix_timestamp(period_end),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "trial_start": from_unix_timestamp(subscription.get("trial_start")),
        "trial_end": from_unix_timestamp(subscription.get("trial_end")),
    }


def parse_user_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SubscriptionService:
    """Service for platform subscription state and the monthly game quota"""

    def check_and_increment_game_quota(
        self, db: Session, user_id: int, now: Optional[datetime] = None
    ) -> QuotaCheckResult:
        """
        Admit or deny one game creation.

        Trial users and unlimited tiers are always admitted; free users are
        admitted while their monthly counter is below the limit. Every
        admission increments the counter and records a usage row in the same
        transaction; a denial changes nothing.
        """
        now = now or utc_now()

        row = (
            db.query(User, Subscription.status)
            .outerjoin(Subscription, Subscription.user_id == User.id)
            .filter(User.id == user_id)
            .with_for_update(of=User)
            .first()
        )
        if not row:
            raise ValueError("User not found")

        user, _status = row
        tier = user.subscription_tier
        in_trial = bool(user.trial_ends_at and user.trial_ends_at > now)
        limit = get_quota_limit(tier)
        current = user.games_created_this_month or 0

        if in_trial or has_unlimited_quota(tier):
            self._record_game_created(db, user_id)
            return QuotaCheckResult(
                allowed=True,
                remaining=UNLIMITED,
                limit=UNLIMITED,
                tier=tier,
                in_trial=in_trial,
            )

        if current >= limit:
            # Release the row lock without writing anything
            db.rollback()
            logger.info(f"Game quota exhausted for user {user_id} ({current}/{limit})")
            return QuotaCheckResult(
                allowed=False,
                remaining=0,
                limit=limit,
                requires_upgrade=True,
                tier=tier,
            )

        self._record_game_created(db, user_id)
        return QuotaCheckResult(
            allowed=True,
            remaining=limit - (current + 1),
            limit=limit,
            tier=tier,
        )

    def _record_game_created(self, db: Session, user_id: int) -> None:
        with transaction(db):
            db.query(User).filter(User.id == user_id).update(
                {User.games_created_this_month: User.games_created_this_month + 1},
                synchronize_session=False,
            )
            db.add(SubscriptionQuotaUsage(user_id=user_id, action_type=GAME_CREATED_ACTION, quota_used=1))

    def get_subscription_status(
        self, db: Session, user_id: int, now: Optional[datetime] = None
    ) -> SubscriptionStatusResponse:
        """Read-only projection of a user's tier, trial, quota and billing period"""
        now = now or utc_now()

        row = (
            db.query(User, Subscription)
            .outerjoin(Subscription, Subscription.user_id == User.id)
            .filter(User.id == user_id)
            .first()
        )
        if not row:
            raise ValueError("User not found")

        user, subscription = row
        limit = get_quota_limit(user.subscription_tier)
        used = user.games_created_this_month or 0

        return SubscriptionStatusResponse(
            tier=user.subscription_tier,
            status=(subscription.status if subscription and subscription.status else "active"),
            in_trial=bool(user.trial_ends_at and user.trial_ends_at > now),
            trial_ends_at=user.trial_ends_at,
            quota_used=used,
            quota_limit=limit,
            quota_remaining=UNLIMITED if limit == UNLIMITED else max(0, limit - used),
            current_period_end=subscription.current_period_end if subscription else None,
            cancel_at_period_end=bool(subscription.cancel_at_period_end) if subscription else False,
            stripe_subscription_id=subscription.stripe_subscription_id if subscription else None,
        )

    def sync_subscription_from_provider(
        self, db: Session, stripe_subscription_id: str, now: Optional[datetime] = None
    ) -> bool:
        """
        Re-fetch a subscription from Stripe and overwrite the local row and
        the user's cached tier/status. Returns False when the provider object
        carries no user_id metadata.
        """
        now = now or utc_now()
        remote = stripe_service.retrieve_subscription(stripe_subscription_id)

        user_id = parse_user_id(metadata_of(remote).get("user_id"))
        if not user_id:
            logger.error(f"No user_id in subscription metadata: {stripe_subscription_id}")
            return False

        fields = subscription_fields(remote)
        customer_id = object_id(remote.get("customer"))

        with transaction(db):
            values = {**fields, "last_synced_at": now, "updated_at": now}
            if customer_id:
                values["stripe_customer_id"] = customer_id
            db.query(Subscription).filter(
                Subscription.stripe_subscription_id == stripe_subscription_id
            ).update(values, synchronize_session=False)

            db.query(User).filter(User.id == user_id).update(
                {User.subscription_tier: fields["tier"], User.subscription_status: fields["status"]},
                synchronize_session=False,
            )

        logger.info(
            f"Synced subscription {stripe_subscription_id} for user {user_id}: "
            f"{fields['status']} -> {fields['tier']}"
        )
        return True


# Global subscription service instance
subscription_service = SubscriptionService()
