"""
Shared pytest configuration.

Tests run against an in-memory SQLite database shared through a StaticPool,
with the email dispatcher replaced by a recorder so nothing leaves the
process.
"""
import os

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "")
os.environ.setdefault("SENDGRID_API_KEY", "")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base
from app.models import (
    AuthorSubscription,
    Booking,
    Club,
    Game,
    GameParticipant,
    NotificationPreferences,
    Payment,
    ScheduledNotification,
    Subscription,
    Tournament,
    User,
)
from app.schemas.billing import BillingEvent
from app.schemas.notification import SendEmailResult
from app.services.email_service import email_service

# Fixed clock for every test: Tuesday 10 March 2026, 12:00 UTC
NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class EmailRecorder:
    """Stands in for the SendGrid call and remembers every message."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_email(self, to, subject, html, text):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        if self.fail:
            return SendEmailResult(success=False, error="provider unavailable")
        return SendEmailResult(success=True, message_id=f"msg-{len(self.sent)}")

    @property
    def subjects(self):
        return [message["subject"] for message in self.sent]

    def to(self, address):
        return [message for message in self.sent if message["to"] == address]


@pytest.fixture(autouse=True)
def emails(monkeypatch):
    recorder = EmailRecorder()
    monkeypatch.setattr(email_service, "send_email", recorder.send_email)
    return recorder


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, **kwargs):
        self._counter += 1
        values = {
            "email": f"player{self._counter}@example.com",
            "name": f"Player {self._counter}",
            "username": f"player{self._counter}",
            "subscription_tier": "free",
            "games_created_this_month": 0,
        }
        values.update(kwargs)
        return self._save(User(**values))

    def preferences(self, user, **kwargs):
        return self._save(NotificationPreferences(user_id=user.id, **kwargs))

    def game(self, creator, **kwargs):
        values = {
            "creator_id": creator.id,
            "venue_name": "Café Schach",
            "game_date": NOW.date() + timedelta(days=1),
            "game_time": time(18, 0),
            "status": "open",
        }
        values.update(kwargs)
        return self._save(Game(**values))

    def participant(self, game, user, status="confirmed"):
        return self._save(GameParticipant(game_id=game.id, user_id=user.id, status=status))

    def notification(self, user, game, notification_type="reminder", scheduled_for=None, **kwargs):
        return self._save(ScheduledNotification(
            user_id=user.id,
            game_id=game.id,
            notification_type=notification_type,
            scheduled_for=scheduled_for or NOW - timedelta(hours=1),
            **kwargs,
        ))

    def subscription(self, user, **kwargs):
        values = {"tier": "premium", "status": "active", "stripe_subscription_id": f"sub_{user.id}"}
        values.update(kwargs)
        return self._save(Subscription(user_id=user.id, **values))

    def author_subscription(self, author, subscriber, **kwargs):
        values = {
            "stripe_subscription_id": f"sub_author_{author.id}_{subscriber.id}",
            "status": "active",
            "tier": "monthly",
            "amount": 500,
        }
        values.update(kwargs)
        return self._save(AuthorSubscription(author_id=author.id, subscriber_id=subscriber.id, **values))

    def booking(self, student, master, **kwargs):
        values = {"date": date(2026, 3, 20), "time": "17:00", "duration": 60}
        values.update(kwargs)
        return self._save(Booking(student_id=student.id, master_id=master.id, **values))

    def tournament(self, **kwargs):
        values = {"name": "Spring Open", "start_date": date(2026, 4, 4), "start_time": "10:00", "location": "Town Hall"}
        values.update(kwargs)
        return self._save(Tournament(**values))

    def club(self, **kwargs):
        values = {"name": "Knights Club"}
        values.update(kwargs)
        return self._save(Club(**values))

    def payment(self, user, **kwargs):
        values = {"amount": 4500, "currency": "eur", "payment_type": "master_booking", "status": "pending"}
        values.update(kwargs)
        return self._save(Payment(user_id=user.id, **values))


@pytest.fixture
def factory(db_session):
    return Factory(db_session)


def make_event(event_type, obj, event_id=None):
    """Build a parsed provider event around a payload object."""
    return BillingEvent(
        id=event_id or f"evt_{event_type.replace('.', '_')}_{obj.get('id', 'x')}",
        type=event_type,
        created=int(NOW.timestamp()),
        data={"object": obj},
    )


@pytest.fixture
def event():
    return make_event
