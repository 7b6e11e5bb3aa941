"""
Subscription and quota schemas
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class QuotaCheckResult(BaseModel):
    """Outcome of a quota-gated action. A denial is a result, not an error."""
    allowed: bool
    remaining: int = Field(..., description="Games left this month, -1 when unlimited")
    limit: int = Field(..., description="Monthly limit, -1 when unlimited")
    requires_upgrade: bool = False
    tier: str
    in_trial: bool = False


class SubscriptionStatusResponse(BaseModel):
    """Projection of a user's tier, trial, quota and billing period"""
    tier: str = "free"
    status: str = "active"
    in_trial: bool = False
    trial_ends_at: Optional[datetime] = None
    quota_used: int = 0
    quota_limit: int
    quota_remaining: int
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    stripe_subscription_id: Optional[str] = None
