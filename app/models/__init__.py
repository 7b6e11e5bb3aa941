"""
Database models for the ChessFam core

All models should be imported here for Alembic to detect them.
"""
from app.models.user import User, NotificationPreferences
from app.models.game import Game, GameParticipant, GameWaitlist, VenueCheckin
from app.models.notification import ScheduledNotification
from app.models.subscription import (
    Subscription,
    SubscriptionQuotaUsage,
    AuthorSubscription,
    AuthorSubscriptionRevenue,
    ProcessedBillingEvent,
)
from app.models.payment import Payment, Booking, Tournament, TournamentRegistration, Club, ClubMembership

__all__ = [
    # User
    "User",
    "NotificationPreferences",
    # Games
    "Game",
    "GameParticipant",
    "GameWaitlist",
    "VenueCheckin",
    # Notifications
    "ScheduledNotification",
    # Subscriptions
    "Subscription",
    "SubscriptionQuotaUsage",
    "AuthorSubscription",
    "AuthorSubscriptionRevenue",
    "ProcessedBillingEvent",
    # Payments
    "Payment",
    "Booking",
    "Tournament",
    "TournamentRegistration",
    "Club",
    "ClubMembership",
]
