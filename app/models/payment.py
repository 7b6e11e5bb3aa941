"""
Payment ledger and the paid entities it confirms
"""
from sqlalchemy import Column, String, Integer, Date, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import utc_now

PAYMENT_TYPES = (
    "master_booking",
    "tournament_entry",
    "club_membership",
    "author_subscription",
    "platform_subscription",
)
PAYMENT_STATUSES = ("pending", "succeeded", "failed", "refunded", "partially_refunded")


class Payment(Base):
    """
    A single payment. The status column is the source of truth for refund
    eligibility.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # In cents
    currency = Column(String(3), default="eur", nullable=False)
    payment_type = Column(String(30), nullable=False, index=True)  # see PAYMENT_TYPES
    status = Column(String(30), default="pending", nullable=False, index=True)  # see PAYMENT_STATUSES

    # What was paid for
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="SET NULL"), nullable=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True)

    # Stripe identifiers
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_checkout_session_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_invoice_id = Column(String(255), unique=True, nullable=True, index=True)
    revenue_type = Column(String(30), nullable=True)  # 'initial_subscription', 'renewal'

    # Refunds
    refund_amount = Column(Integer, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    # Timestamps
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    user = relationship("User")


class Booking(Base):
    """Paid lesson booking with a chess master"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    master_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    time = Column(String(10), nullable=False)
    duration = Column(Integer, default=60)

    status = Column(String(20), default="pending", nullable=False)  # 'pending', 'confirmed', 'cancelled'
    payment_status = Column(String(20), default="unpaid", nullable=False)  # 'unpaid', 'paid', 'refunded'
    payment_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utc_now)

    student = relationship("User", foreign_keys=[student_id])
    master = relationship("User", foreign_keys=[master_id])


class Tournament(Base):
    """Tournament with a paid entry"""
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=False)
    start_time = Column(String(10), nullable=True)
    location = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utc_now)


class TournamentRegistration(Base):
    """A user's registration for a tournament"""
    __tablename__ = "tournament_registrations"

    id = Column(Integer, primary_key=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), default="pending", nullable=False)  # 'pending', 'confirmed', 'cancelled'
    payment_status = Column(String(20), default="unpaid", nullable=False)
    payment_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="unique_tournament_registration"),
    )

    tournament = relationship("Tournament")


class Club(Base):
    """Chess club with paid membership"""
    __tablename__ = "clubs"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utc_now)


class ClubMembership(Base):
    """A user's membership of a club"""
    __tablename__ = "club_memberships"

    id = Column(Integer, primary_key=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), default="pending", nullable=False)  # 'pending', 'active', 'cancelled'
    payment_status = Column(String(20), default="unpaid", nullable=False)
    payment_id = Column(Integer, nullable=True)
    joined_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="unique_club_membership"),
    )

    club = relationship("Club")
