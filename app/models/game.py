"""
Casual game models: games, participants, waitlist and venue check-ins
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, Date, Time, DateTime, Float, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import utc_now

GAME_STATUSES = ("open", "full", "cancelled", "completed")
RECURRENCE_PATTERNS = ("weekly", "biweekly", "monthly")


class Game(Base):
    """A scheduled over-the-board game, possibly a recurring template"""
    __tablename__ = "games"

    id = Column(Integer, primary_key=True)
    creator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Venue
    venue_name = Column(String(255), nullable=False)
    venue_address = Column(Text, nullable=True)
    venue_lat = Column(Float, nullable=True)
    venue_lng = Column(Float, nullable=True)

    # Schedule
    game_date = Column(Date, nullable=False, index=True)
    game_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, default=120)

    # Game settings
    time_control = Column(String(50), nullable=True)
    player_level = Column(String(50), nullable=True)
    max_players = Column(Integer, default=2)
    description = Column(Text, nullable=True)
    min_rating = Column(Integer, nullable=True)
    max_rating = Column(Integer, nullable=True)

    status = Column(String(20), default="open", nullable=False, index=True)  # see GAME_STATUSES

    # Recurrence (a template has is_recurring=True and no parent)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_pattern = Column(String(20), nullable=True)  # see RECURRENCE_PATTERNS
    recurrence_day = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    parent_game_id = Column(Integer, ForeignKey("games.id"), nullable=True, index=True)

    # One-shot latch set once reminders have been scheduled
    reminder_sent = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # At most one materialized occurrence per template and date
    __table_args__ = (
        UniqueConstraint("parent_game_id", "game_date", name="unique_recurring_occurrence"),
    )

    # Relationships
    creator = relationship("User")
    participants = relationship("GameParticipant", back_populates="game", cascade="all, delete-orphan")


class GameParticipant(Base):
    """A user who joined a game"""
    __tablename__ = "game_participants"

    id = Column(Integer, primary_key=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), default="confirmed", nullable=False)  # 'confirmed', 'pending', 'left'

    joined_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="unique_game_participant"),
    )

    game = relationship("Game", back_populates="participants")


class GameWaitlist(Base):
    """Waitlist entry for a full game"""
    __tablename__ = "game_waitlist"

    id = Column(Integer, primary_key=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), default="waiting", nullable=False, index=True)  # 'waiting', 'notified', 'expired'

    created_at = Column(DateTime, default=utc_now)
    notified_at = Column(DateTime, nullable=True)


class VenueCheckin(Base):
    """A user's presence at a venue"""
    __tablename__ = "venue_checkins"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    venue_id = Column(Integer, nullable=False, index=True)

    checked_in_at = Column(DateTime, default=utc_now, nullable=False)
    checked_out_at = Column(DateTime, nullable=True, index=True)
    auto_checked_out = Column(Boolean, default=False, nullable=False)
