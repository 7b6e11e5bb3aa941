"""
Scheduled email notification queue
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import utc_now

NOTIFICATION_TYPES = ("reminder", "game_update", "waitlist_spot")


class ScheduledNotification(Base):
    """
    A notification waiting for its send time.

    Rows with sent=False and scheduled_for <= now form the dispatcher's work
    queue. Once sent=True the row is never modified again.
    """
    __tablename__ = "scheduled_notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(30), nullable=False)  # see NOTIFICATION_TYPES

    scheduled_for = Column(DateTime, nullable=False, index=True)
    sent = Column(Boolean, default=False, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    email_sent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "game_id", "notification_type", name="unique_scheduled_notification"),
    )

    # Relationships
    user = relationship("User")
    game = relationship("Game")
