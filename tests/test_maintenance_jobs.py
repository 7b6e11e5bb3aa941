"""
Tests for the periodic maintenance jobs.
"""
from datetime import date, datetime, time, timedelta

import pytest

from app.models import (
    Game,
    GameWaitlist,
    ScheduledNotification,
    Subscription,
    User,
    VenueCheckin,
)
from app.services import maintenance_jobs
from app.services.maintenance_jobs import next_occurrence
from app.services.stripe_service import stripe_service


def _children(db, template):
    return db.query(Game).filter(Game.parent_game_id == template.id).order_by(Game.game_date).all()


def _notifications(db, game):
    return (
        db.query(ScheduledNotification)
        .filter(ScheduledNotification.game_id == game.id)
        .order_by(ScheduledNotification.user_id)
        .all()
    )


# ──────────────────────────────────────────────────────────────
# next_occurrence
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "first,pattern,expected",
    [
        (date(2026, 2, 24), "weekly", date(2026, 3, 17)),
        (date(2026, 3, 10), "weekly", date(2026, 3, 17)),
        (date(2026, 2, 24), "biweekly", date(2026, 3, 24)),
        (date(2026, 1, 31), "monthly", date(2026, 3, 31)),
        (date(2026, 1, 15), "monthly", date(2026, 3, 15)),
        (date(2026, 3, 20), "weekly", date(2026, 3, 20)),
    ],
)
def test_next_occurrence(first, pattern, expected):
    assert next_occurrence(first, pattern, date(2026, 3, 10)) == expected


def test_next_occurrence_unknown_pattern():
    assert next_occurrence(date(2026, 3, 1), "daily", date(2026, 3, 10)) is None


# ──────────────────────────────────────────────────────────────
# create_recurring_games
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_weekly_template_materializes_next_occurrence_once(db_session, factory, now):
    creator = factory.user()
    template = factory.game(
        creator,
        game_date=date(2026, 2, 24),
        is_recurring=True,
        recurrence_pattern="weekly",
        time_control="10+5",
        max_players=4,
    )

    first = await maintenance_jobs.create_recurring_games(db_session, now=now)
    second = await maintenance_jobs.create_recurring_games(db_session, now=now)

    assert (first, second) == (1, 0)
    children = _children(db_session, template)
    assert len(children) == 1
    child = children[0]
    assert child.game_date == date(2026, 3, 17)
    assert child.is_recurring is False
    assert child.status == "open"
    assert child.reminder_sent is False
    assert child.time_control == "10+5"
    assert child.max_players == 4
    assert child.game_time == time(18, 0)
    assert child.creator_id == creator.id


@pytest.mark.asyncio
async def test_monthly_template_keeps_its_day_of_month(db_session, factory, now):
    template = factory.game(
        factory.user(), game_date=date(2026, 1, 31), is_recurring=True, recurrence_pattern="monthly"
    )

    assert await maintenance_jobs.create_recurring_games(db_session, now=now) == 1
    assert [g.game_date for g in _children(db_session, template)] == [date(2026, 3, 31)]


@pytest.mark.asyncio
async def test_recurring_games_respect_end_date(db_session, factory, now):
    template = factory.game(
        factory.user(),
        game_date=date(2026, 2, 24),
        is_recurring=True,
        recurrence_pattern="weekly",
        recurrence_end_date=date(2026, 3, 15),
    )

    assert await maintenance_jobs.create_recurring_games(db_session, now=now) == 0
    assert _children(db_session, template) == []


@pytest.mark.asyncio
async def test_recurring_games_skip_unknown_pattern_and_future_templates(db_session, factory, now):
    creator = factory.user()
    unknown = factory.game(creator, game_date=date(2026, 2, 24), is_recurring=True, recurrence_pattern="daily")
    upcoming = factory.game(creator, game_date=date(2026, 3, 20), is_recurring=True, recurrence_pattern="weekly")
    cancelled = factory.game(
        creator, game_date=date(2026, 2, 24), is_recurring=True, recurrence_pattern="weekly", status="cancelled"
    )

    assert await maintenance_jobs.create_recurring_games(db_session, now=now) == 0
    for template in (unknown, upcoming, cancelled):
        assert _children(db_session, template) == []


# ──────────────────────────────────────────────────────────────
# schedule_game_reminders
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_reminders_cover_creator_and_confirmed_participants(db_session, factory, now):
    creator = factory.user()
    confirmed = factory.user()
    early_bird = factory.user()
    pending = factory.user()
    factory.preferences(early_bird, reminder_hours_before=2)
    game = factory.game(creator, game_date=date(2026, 3, 11), game_time=time(18, 0))
    factory.participant(game, confirmed)
    factory.participant(game, early_bird)
    factory.participant(game, pending, status="pending")

    assert await maintenance_jobs.schedule_game_reminders(db_session, now=now) == 1

    rows = {n.user_id: n for n in _notifications(db_session, game)}
    assert set(rows) == {creator.id, confirmed.id, early_bird.id}
    assert rows[creator.id].scheduled_for == datetime(2026, 3, 10, 18, 0)
    assert rows[early_bird.id].scheduled_for == datetime(2026, 3, 11, 16, 0)
    assert all(n.notification_type == "reminder" and n.sent is False for n in rows.values())

    db_session.expire_all()
    assert db_session.get(Game, game.id).reminder_sent is True


@pytest.mark.asyncio
async def test_reminders_are_scheduled_only_once_per_game(db_session, factory, now):
    game = factory.game(factory.user(), game_date=date(2026, 3, 11))

    assert await maintenance_jobs.schedule_game_reminders(db_session, now=now) == 1
    assert await maintenance_jobs.schedule_game_reminders(db_session, now=now) == 0
    assert len(_notifications(db_session, game)) == 1


@pytest.mark.asyncio
async def test_reminder_times_already_past_are_skipped(db_session, factory, now):
    creator = factory.user()
    factory.preferences(creator, reminder_hours_before=48)
    game = factory.game(creator, game_date=date(2026, 3, 11), game_time=time(18, 0))

    assert await maintenance_jobs.schedule_game_reminders(db_session, now=now) == 1

    assert _notifications(db_session, game) == []
    db_session.expire_all()
    assert db_session.get(Game, game.id).reminder_sent is True


@pytest.mark.asyncio
async def test_games_outside_the_window_are_left_for_later(db_session, factory, now):
    creator = factory.user()
    beyond_horizon = factory.game(creator, game_date=date(2026, 3, 12), game_time=time(18, 0))
    already_started = factory.game(creator, game_date=date(2026, 3, 10), game_time=time(9, 0))
    cancelled = factory.game(creator, game_date=date(2026, 3, 11), status="cancelled")

    assert await maintenance_jobs.schedule_game_reminders(db_session, now=now) == 0

    db_session.expire_all()
    for game in (beyond_horizon, already_started, cancelled):
        assert db_session.get(Game, game.id).reminder_sent is False
        assert _notifications(db_session, game) == []


# ──────────────────────────────────────────────────────────────
# process_scheduled_notifications
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_due_notifications_are_sent_and_marked(db_session, factory, emails, now):
    user = factory.user(email="magnus@example.com", name="Magnus")
    game = factory.game(user)
    reminder = factory.notification(user, game)
    future = factory.notification(user, game, notification_type="game_update", scheduled_for=now + timedelta(hours=1))

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 1

    assert emails.subjects == ["Reminder: Your chess game is coming up!"]
    assert emails.sent[0]["to"] == "magnus@example.com"
    assert "Café Schach" in emails.sent[0]["html"]

    db_session.expire_all()
    sent = db_session.get(ScheduledNotification, reminder.id)
    assert sent.sent is True
    assert sent.email_sent is True
    assert sent.sent_at == now
    assert db_session.get(ScheduledNotification, future.id).sent is False


@pytest.mark.asyncio
async def test_sent_notifications_are_never_resent(db_session, factory, emails, now):
    user = factory.user()
    factory.notification(user, factory.game(user))

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 1
    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now + timedelta(hours=1)) == 0
    assert len(emails.sent) == 1


@pytest.mark.asyncio
async def test_opted_out_notifications_are_marked_without_email(db_session, factory, emails, now):
    user = factory.user()
    factory.preferences(user, email_game_reminders=False, email_game_updates=False)
    game = factory.game(user)
    reminder = factory.notification(user, game)
    update = factory.notification(user, game, notification_type="game_update")
    spot = factory.notification(user, game, notification_type="waitlist_spot")

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 3

    assert emails.subjects == ["A Spot is Available in Your Waitlisted Game!"]
    db_session.expire_all()
    assert db_session.get(ScheduledNotification, reminder.id).email_sent is False
    assert db_session.get(ScheduledNotification, update.id).email_sent is False
    assert db_session.get(ScheduledNotification, spot.id).email_sent is True
    assert all(db_session.get(ScheduledNotification, n.id).sent for n in (reminder, update, spot))


@pytest.mark.asyncio
async def test_notifications_for_closed_games_are_not_dispatched(db_session, factory, emails, now):
    user = factory.user()
    pending = factory.notification(user, factory.game(user, status="cancelled"))

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 0

    assert emails.sent == []
    db_session.expire_all()
    assert db_session.get(ScheduledNotification, pending.id).sent is False


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_and_not_retried(db_session, factory, emails, now):
    emails.fail = True
    user = factory.user()
    notification = factory.notification(user, factory.game(user), notification_type="game_update")

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 1

    assert emails.subjects == ["Game Updated - Check the Details"]
    db_session.expire_all()
    row = db_session.get(ScheduledNotification, notification.id)
    assert row.sent is True
    assert row.email_sent is False


@pytest.mark.asyncio
async def test_dispatch_honours_batch_size_in_schedule_order(db_session, factory, emails, monkeypatch, now):
    monkeypatch.setattr(maintenance_jobs.settings, "NOTIFICATION_BATCH_SIZE", 1)
    user = factory.user()
    game = factory.game(user)
    later = factory.notification(user, game, scheduled_for=now - timedelta(minutes=5))
    earlier = factory.notification(user, game, notification_type="game_update", scheduled_for=now - timedelta(hours=3))

    assert await maintenance_jobs.process_scheduled_notifications(db_session, now=now) == 1

    db_session.expire_all()
    assert db_session.get(ScheduledNotification, earlier.id).sent is True
    assert db_session.get(ScheduledNotification, later.id).sent is False


# ──────────────────────────────────────────────────────────────
# expire_waitlist_entries
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_waitlist_entries_expire_for_finished_games(db_session, factory, now):
    creator = factory.user()
    player = factory.user()
    yesterday = factory.game(creator, game_date=date(2026, 3, 9))
    this_morning = factory.game(creator, game_date=date(2026, 3, 10), game_time=time(9, 0))
    tonight = factory.game(creator, game_date=date(2026, 3, 10), game_time=time(19, 0))
    cancelled = factory.game(creator, game_date=date(2026, 3, 20), status="cancelled")

    entries = {}
    for key, game in {"yesterday": yesterday, "morning": this_morning, "tonight": tonight, "cancelled": cancelled}.items():
        entry = GameWaitlist(game_id=game.id, user_id=player.id, status="waiting")
        db_session.add(entry)
        entries[key] = entry
    notified = GameWaitlist(game_id=yesterday.id, user_id=creator.id, status="notified")
    db_session.add(notified)
    db_session.commit()

    assert await maintenance_jobs.expire_waitlist_entries(db_session, now=now) == 3

    db_session.expire_all()
    statuses = {key: db_session.get(GameWaitlist, entry.id).status for key, entry in entries.items()}
    assert statuses == {"yesterday": "expired", "morning": "expired", "tonight": "waiting", "cancelled": "expired"}
    assert db_session.get(GameWaitlist, notified.id).status == "notified"


# ──────────────────────────────────────────────────────────────
# reset_monthly_quotas
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_reset_monthly_quotas(db_session, factory, now):
    users = [factory.user(games_created_this_month=n) for n in (0, 4, 10)]

    assert await maintenance_jobs.reset_monthly_quotas(db_session, now=now) == 3

    db_session.expire_all()
    for user in users:
        refreshed = db_session.get(User, user.id)
        assert refreshed.games_created_this_month == 0
        assert refreshed.quota_reset_date == datetime(2026, 4, 1)


# ──────────────────────────────────────────────────────────────
# expire_trials
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_expired_trials_are_downgraded_and_notified(db_session, factory, emails, now):
    lapsed = factory.user(
        email="lapsed@example.com",
        subscription_tier="premium",
        subscription_status="trialing",
        trial_ends_at=now - timedelta(hours=2),
    )
    converted = factory.user(
        subscription_tier="premium", subscription_status="trialing", trial_ends_at=now - timedelta(hours=2)
    )
    factory.subscription(converted, status="active")
    still_trialing = factory.user(
        subscription_tier="premium", subscription_status="trialing", trial_ends_at=now + timedelta(days=3)
    )

    assert await maintenance_jobs.expire_trials(db_session, now=now) == 1

    db_session.expire_all()
    downgraded = db_session.get(User, lapsed.id)
    assert downgraded.subscription_tier == "free"
    assert downgraded.subscription_status == "expired"
    assert db_session.get(User, converted.id).subscription_tier == "premium"
    assert db_session.get(User, still_trialing.id).subscription_status == "trialing"
    assert [m["to"] for m in emails.sent] == ["lapsed@example.com"]
    assert emails.subjects == ["Your ChessFam Premium trial has ended"]


@pytest.mark.asyncio
async def test_expired_trial_downgrades_the_subscription_row(db_session, factory, now):
    user = factory.user(
        subscription_tier="premium", subscription_status="trialing", trial_ends_at=now - timedelta(hours=1)
    )
    trial = factory.subscription(user, status="trialing", trial_end=now - timedelta(hours=1))

    assert await maintenance_jobs.expire_trials(db_session, now=now) == 1

    db_session.expire_all()
    row = db_session.get(Subscription, trial.id)
    assert (row.tier, row.status) == ("free", "expired")
    assert row.stripe_subscription_id == f"sub_{user.id}"
    assert db_session.get(User, user.id).subscription_tier == row.tier


@pytest.mark.asyncio
async def test_expire_trials_is_idempotent(db_session, factory, emails, now):
    factory.user(subscription_tier="premium", subscription_status="trialing", trial_ends_at=now - timedelta(days=1))

    assert await maintenance_jobs.expire_trials(db_session, now=now) == 1
    assert await maintenance_jobs.expire_trials(db_session, now=now) == 0
    assert len(emails.sent) == 1


# ──────────────────────────────────────────────────────────────
# sync_subscriptions
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sync_is_skipped_without_stripe(db_session, factory, monkeypatch, now):
    monkeypatch.setattr(stripe_service, "api_key", None)
    factory.subscription(factory.user())

    def fail(_):
        raise AssertionError("provider must not be called")

    monkeypatch.setattr(stripe_service, "retrieve_subscription", fail)

    assert await maintenance_jobs.sync_subscriptions(db_session, now=now) == 0


@pytest.mark.asyncio
async def test_sync_continues_past_failures(db_session, factory, monkeypatch, now):
    monkeypatch.setattr(stripe_service, "api_key", "sk_test_123")
    healthy = factory.user(subscription_tier="free", subscription_status="past_due")
    broken = factory.user()
    canceled = factory.user()
    factory.subscription(healthy, stripe_subscription_id="sub_ok", status="past_due", tier="free")
    factory.subscription(broken, stripe_subscription_id="sub_broken")
    factory.subscription(canceled, stripe_subscription_id="sub_gone", status="canceled", tier="free")

    calls = []

    def retrieve(subscription_id):
        calls.append(subscription_id)
        if subscription_id == "sub_broken":
            raise RuntimeError("provider timeout")
        return {"id": subscription_id, "status": "active", "metadata": {"user_id": str(healthy.id)}}

    monkeypatch.setattr(stripe_service, "retrieve_subscription", retrieve)

    assert await maintenance_jobs.sync_subscriptions(db_session, now=now) == 1

    assert sorted(calls) == ["sub_broken", "sub_ok"]
    db_session.expire_all()
    synced = db_session.query(Subscription).filter_by(stripe_subscription_id="sub_ok").one()
    assert synced.status == "active"
    assert synced.tier == "premium"
    assert synced.last_synced_at == now
    assert db_session.get(User, healthy.id).subscription_tier == "premium"


# ──────────────────────────────────────────────────────────────
# auto_checkout_venues
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_open_checkins_are_closed(db_session, factory, now):
    user = factory.user()
    earlier = now - timedelta(days=1)
    open_checkin = VenueCheckin(user_id=user.id, venue_id=7, checked_in_at=now - timedelta(hours=3))
    closed_checkin = VenueCheckin(user_id=user.id, venue_id=7, checked_in_at=earlier, checked_out_at=earlier)
    db_session.add_all([open_checkin, closed_checkin])
    db_session.commit()

    assert await maintenance_jobs.auto_checkout_venues(db_session, now=now) == 1

    db_session.expire_all()
    closed = db_session.get(VenueCheckin, open_checkin.id)
    assert closed.checked_out_at == now
    assert closed.auto_checked_out is True
    untouched = db_session.get(VenueCheckin, closed_checkin.id)
    assert untouched.checked_out_at == earlier
    assert untouched.auto_checked_out is False
