"""
Subscription plan catalogue and tier helpers
"""
from typing import Dict, Any, Optional

from app.core.config import settings

FREE_TIER = "free"
PREMIUM_TIER = "premium"

# Provider statuses that grant premium access
PREMIUM_STATUSES = {"active", "trialing"}

UNLIMITED = -1

SUBSCRIPTION_LIMITS: Dict[str, Dict[str, Any]] = {
    FREE_TIER: {
        "name": "Free",
        "games_per_month": settings.FREE_TIER_MONTHLY_GAME_LIMIT,
        "features": [
            f"Create up to {settings.FREE_TIER_MONTHLY_GAME_LIMIT} games per month",
            "Join unlimited games",
            "Access to community features",
            "Basic chess tools",
        ],
    },
    PREMIUM_TIER: {
        "name": "Premium",
        "games_per_month": UNLIMITED,
        "features": [
            "Unlimited game creation",
            "Priority support",
            "Advanced statistics",
            "No ads",
            "Premium badge",
        ],
    },
}


def get_quota_limit(tier: Optional[str]) -> int:
    """Monthly game limit for a tier; unknown tiers get the free limit."""
    plan = SUBSCRIPTION_LIMITS.get(tier or FREE_TIER, SUBSCRIPTION_LIMITS[FREE_TIER])
    return plan["games_per_month"]


def has_unlimited_quota(tier: Optional[str]) -> bool:
    return get_quota_limit(tier) == UNLIMITED


def tier_for_status(status: Optional[str]) -> str:
    """Tier is premium iff the provider status is active or trialing."""
    return PREMIUM_TIER if status in PREMIUM_STATUSES else FREE_TIER
