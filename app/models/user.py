"""
User model and notification preferences
"""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import utc_now


class User(Base):
    """User account (subscription-relevant fields only)"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    username = Column(String(50), unique=True, nullable=True, index=True)

    # Cached subscription state (source of truth is the subscriptions table)
    subscription_tier = Column(String(20), default="free", nullable=False)  # 'free', 'premium'
    subscription_status = Column(String(50), nullable=True)  # mirrors provider status
    trial_ends_at = Column(DateTime, nullable=True, index=True)

    # Monthly game-creation quota
    games_created_this_month = Column(Integer, default=0, nullable=False)
    quota_reset_date = Column(DateTime, nullable=True)

    # Author metrics (paid content subscriptions)
    paid_subscribers_count = Column(Integer, default=0, nullable=False)
    monthly_recurring_revenue = Column(Integer, default=0, nullable=False)  # In cents

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    notification_preferences = relationship(
        "NotificationPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    subscription = relationship("Subscription", back_populates="user", uselist=False)

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email


class NotificationPreferences(Base):
    """Per-user email opt-ins and reminder timing"""
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)

    email_game_reminders = Column(Boolean, default=True, nullable=False)
    email_game_updates = Column(Boolean, default=True, nullable=False)
    reminder_hours_before = Column(Integer, default=24, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    user = relationship("User", back_populates="notification_preferences")
