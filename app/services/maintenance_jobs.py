"""
Periodic maintenance jobs over games, notifications, quotas, trials,
subscriptions and venue check-ins.

Each job is an independent coroutine taking a database session and an
optional `now` (naive UTC), so it can be run in isolation. Jobs return the
number of rows they acted on.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.plans import FREE_TIER
from app.database import insert_for, transaction
from app.models.game import Game, GameParticipant, GameWaitlist, VenueCheckin
from app.models.notification import ScheduledNotification
from app.models.subscription import Subscription
from app.models.user import NotificationPreferences, User
from app.schemas.notification import NotificationType
from app.services.email_service import email_service
from app.services.email_templates import EmailTemplates
from app.services.stripe_service import stripe_service
from app.services.subscription_service import subscription_service
from app.utils.time_utils import add_months, start_of_next_month, utc_now

logger = logging.getLogger(__name__)

ACTIVE_GAME_STATUSES = ("open", "full")
RECURRING_TEMPLATE_STATUSES = ("open", "full", "completed")
CLOSED_GAME_STATUSES = ("cancelled", "completed")

# Fields copied from a recurring template onto each materialized occurrence
OCCURRENCE_FIELDS = (
    "creator_id", "venue_name", "venue_address", "venue_lat", "venue_lng",
    "game_time", "duration_minutes", "time_control", "player_level", "max_players",
    "description", "min_rating", "max_rating", "recurrence_pattern", "recurrence_day",
    "recurrence_end_date",
)


def next_occurrence(first: date, pattern: Optional[str], today: date) -> Optional[date]:
    """
    First date of the series strictly after `today`, counted from the
    template's own date. Returns None for an unknown pattern.
    """
    if pattern in ("weekly", "biweekly"):
        step = 7 if pattern == "weekly" else 14
        if first > today:
            return first
        periods = (today - first).days // step + 1
        return first + timedelta(days=periods * step)

    if pattern == "monthly":
        months = 0
        candidate = first
        while candidate <= today:
            months += 1
            candidate = add_months(first, months)
        return candidate

    return None


async def create_recurring_games(db: Session, now: Optional[datetime] = None) -> int:
    """Materialize the next occurrence of every active recurring template."""
    now = now or utc_now()
    today = now.date()

    templates = (
        db.query(Game)
        .filter(
            Game.is_recurring.is_(True),
            Game.parent_game_id.is_(None),
            Game.status.in_(RECURRING_TEMPLATE_STATUSES),
            or_(Game.recurrence_end_date.is_(None), Game.recurrence_end_date >= today),
        )
        .order_by(Game.id)
        .all()
    )
    logger.info(f"[Scheduler] Found {len(templates)} recurring games to process")

    created = 0
    for template in templates:
        next_date = next_occurrence(template.game_date, template.recurrence_pattern, today)
        if next_date is None:
            logger.warning(
                f"[Scheduler] Unknown recurrence pattern '{template.recurrence_pattern}' on game {template.id}, skipping"
            )
            continue
        if next_date == template.game_date:
            # The template itself is the upcoming occurrence
            continue
        if template.recurrence_end_date and next_date > template.recurrence_end_date:
            logger.info(f"[Scheduler] Game {template.id} past recurrence end date, skipping")
            continue

        values = {field: getattr(template, field) for field in OCCURRENCE_FIELDS}
        values.update(
            game_date=next_date,
            parent_game_id=template.id,
            is_recurring=False,
            status="open",
            reminder_sent=False,
            created_at=now,
            updated_at=now,
        )
        with transaction(db):
            stmt = insert_for(db, Game).values(**values)
            result = db.execute(
                stmt.on_conflict_do_nothing(index_elements=[Game.parent_game_id, Game.game_date])
            )
        if result.rowcount:
            created += 1
            logger.info(f"[Scheduler] Created recurring game instance for parent {template.id} on {next_date}")

    logger.info(f"[Scheduler] Recurring games processing complete, created {created}")
    return created


def _reminder_hours(db: Session, user_ids: List[int]) -> Dict[int, int]:
    rows = (
        db.query(NotificationPreferences.user_id, NotificationPreferences.reminder_hours_before)
        .filter(NotificationPreferences.user_id.in_(user_ids))
        .all()
    )
    return {user_id: hours for user_id, hours in rows if hours}


async def schedule_game_reminders(db: Session, now: Optional[datetime] = None) -> int:
    """
    Queue one reminder per participant for games starting within the
    lookahead window, then latch the game's `reminder_sent` flag.
    """
    now = now or utc_now()
    horizon = now + timedelta(hours=settings.REMINDER_LOOKAHEAD_HOURS)

    games = (
        db.query(Game)
        .filter(
            Game.status.in_(ACTIVE_GAME_STATUSES),
            Game.reminder_sent.is_(False),
            Game.game_date >= now.date(),
            Game.game_date <= horizon.date(),
        )
        .order_by(Game.id)
        .all()
    )

    scheduled_games = 0
    for game in games:
        starts_at = datetime.combine(game.game_date, game.game_time)
        if starts_at <= now or starts_at > horizon:
            continue

        confirmed = (
            db.query(GameParticipant.user_id)
            .filter(GameParticipant.game_id == game.id, GameParticipant.status == "confirmed")
            .all()
        )
        user_ids = sorted({game.creator_id} | {user_id for (user_id,) in confirmed})
        hours_before = _reminder_hours(db, user_ids)

        with transaction(db):
            for user_id in user_ids:
                remind_at = starts_at - timedelta(
                    hours=hours_before.get(user_id, settings.DEFAULT_REMINDER_HOURS_BEFORE)
                )
                if remind_at <= now:
                    continue
                stmt = insert_for(db, ScheduledNotification).values(
                    user_id=user_id,
                    game_id=game.id,
                    notification_type=NotificationType.REMINDER.value,
                    scheduled_for=remind_at,
                    sent=False,
                    email_sent=False,
                    created_at=now,
                )
                db.execute(
                    stmt.on_conflict_do_nothing(
                        index_elements=[
                            ScheduledNotification.user_id,
                            ScheduledNotification.game_id,
                            ScheduledNotification.notification_type,
                        ]
                    )
                )

            db.query(Game).filter(Game.id == game.id, Game.reminder_sent.is_(False)).update(
                {Game.reminder_sent: True}, synchronize_session=False
            )
        scheduled_games += 1

    logger.info(f"[Scheduler] Scheduled reminders for {scheduled_games} games")
    return scheduled_games


def _render_notification(notification: ScheduledNotification, user: User, game: Game,
                         prefs: Optional[NotificationPreferences]):
    """Template for a due notification, or None when the user opted out."""
    reminders_on = prefs.email_game_reminders if prefs else True
    updates_on = prefs.email_game_updates if prefs else True
    name = user.display_name

    if notification.notification_type == NotificationType.REMINDER.value and reminders_on:
        return EmailTemplates.game_reminder(name, game.venue_name, game.game_date, game.game_time, game.id)
    if notification.notification_type == NotificationType.GAME_UPDATE.value and updates_on:
        return EmailTemplates.game_update(name, game.id)
    if notification.notification_type == NotificationType.WAITLIST_SPOT.value:
        return EmailTemplates.spot_available(name, game.id)
    return None


async def process_scheduled_notifications(db: Session, now: Optional[datetime] = None) -> int:
    """Send due notifications and mark each one sent exactly once."""
    now = now or utc_now()

    due = (
        db.query(ScheduledNotification, User, Game)
        .join(User, ScheduledNotification.user_id == User.id)
        .join(Game, ScheduledNotification.game_id == Game.id)
        .filter(
            ScheduledNotification.sent.is_(False),
            ScheduledNotification.scheduled_for <= now,
            Game.status.notin_(CLOSED_GAME_STATUSES),
        )
        .order_by(ScheduledNotification.scheduled_for, ScheduledNotification.id)
        .limit(settings.NOTIFICATION_BATCH_SIZE)
        .all()
    )
    logger.info(f"[Scheduler] Processing {len(due)} scheduled notifications")

    user_ids = {user.id for _, user, _ in due}
    prefs = {
        p.user_id: p
        for p in db.query(NotificationPreferences).filter(NotificationPreferences.user_id.in_(user_ids)).all()
    } if user_ids else {}

    processed = 0
    for notification, user, game in due:
        notification_id = notification.id
        email_sent = False
        message = _render_notification(notification, user, game, prefs.get(user.id))
        if message is not None:
            result = await email_service.send_message(user.email, message)
            email_sent = result.success

        with transaction(db):
            marked = db.query(ScheduledNotification).filter(
                ScheduledNotification.id == notification_id,
                ScheduledNotification.sent.is_(False),
            ).update(
                {
                    ScheduledNotification.sent: True,
                    ScheduledNotification.sent_at: now,
                    ScheduledNotification.email_sent: email_sent,
                },
                synchronize_session=False,
            )
        processed += marked

    logger.info(f"[Scheduler] Processed {processed} notifications")
    return processed


async def expire_waitlist_entries(db: Session, now: Optional[datetime] = None) -> int:
    """Expire waiting entries of games that are closed or already started."""
    now = now or utc_now()
    today, current_time = now.date(), now.time()

    finished_games = select(Game.id).where(
        or_(
            Game.status.in_(CLOSED_GAME_STATUSES),
            Game.game_date < today,
            and_(Game.game_date == today, Game.game_time < current_time),
        )
    )
    with transaction(db):
        expired = db.query(GameWaitlist).filter(
            GameWaitlist.status == "waiting",
            GameWaitlist.game_id.in_(finished_games),
        ).update({GameWaitlist.status: "expired"}, synchronize_session=False)

    logger.info(f"[Scheduler] Expired {expired} old waitlist entries")
    return expired


async def reset_monthly_quotas(db: Session, now: Optional[datetime] = None) -> int:
    """Reset every user's monthly game counter."""
    now = now or utc_now()

    with transaction(db):
        reset = db.query(User).update(
            {User.games_created_this_month: 0, User.quota_reset_date: start_of_next_month(now)},
            synchronize_session=False,
        )

    logger.info(f"[Scheduler] Reset quotas for {reset} users")
    return reset


async def expire_trials(db: Session, now: Optional[datetime] = None) -> int:
    """Downgrade users whose trial ended without converting to a paid plan."""
    now = now or utc_now()

    has_active_subscription = exists().where(
        Subscription.user_id == User.id,
        Subscription.status == "active",
    )
    expiring = (
        db.query(User)
        .filter(
            User.trial_ends_at.isnot(None),
            User.trial_ends_at <= now,
            User.subscription_status == "trialing",
            ~has_active_subscription,
        )
        .all()
    )
    if not expiring:
        logger.info("[Scheduler] Expired 0 trials")
        return 0

    recipients = [(user.id, user.email, user.display_name) for user in expiring]
    user_ids = [user_id for user_id, _, _ in recipients]
    with transaction(db):
        expired = db.query(User).filter(
            User.id.in_(user_ids),
            User.subscription_status == "trialing",
        ).update(
            {User.subscription_tier: FREE_TIER, User.subscription_status: "expired"},
            synchronize_session=False,
        )
        # Keep the subscription row in step with the cached user columns;
        # the provider id stays so sync_subscriptions can still correct it.
        db.query(Subscription).filter(
            Subscription.user_id.in_(user_ids),
            Subscription.status == "trialing",
        ).update(
            {Subscription.tier: FREE_TIER, Subscription.status: "expired", Subscription.updated_at: now},
            synchronize_session=False,
        )

    logger.info(f"[Scheduler] Expired {expired} trials")

    for user_id, email, name in recipients:
        result = await email_service.send_message(email, EmailTemplates.trial_expired(name))
        if not result.success:
            logger.warning(f"Failed to send trial expired email to user {user_id}: {result.error}")
    return expired


async def sync_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """Re-fetch the least recently synced subscriptions from Stripe."""
    now = now or utc_now()

    if not stripe_service.is_configured:
        logger.warning("[Scheduler] Stripe is not configured, skipping subscription sync")
        return 0

    rows = (
        db.query(Subscription.stripe_subscription_id)
        .filter(
            Subscription.stripe_subscription_id.isnot(None),
            or_(Subscription.status.is_(None), Subscription.status != "canceled"),
        )
        .order_by(Subscription.last_synced_at.asc().nullsfirst(), Subscription.id)
        .limit(settings.SUBSCRIPTION_SYNC_BATCH_SIZE)
        .all()
    )
    logger.info(f"[Scheduler] Syncing {len(rows)} subscriptions")

    synced = 0
    for (stripe_subscription_id,) in rows:
        try:
            if subscription_service.sync_subscription_from_provider(db, stripe_subscription_id, now):
                synced += 1
        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduler] Failed to sync subscription {stripe_subscription_id}: {e}", exc_info=True)

    logger.info(f"[Scheduler] Subscription sync complete, {synced}/{len(rows)} synced")
    return synced


async def auto_checkout_venues(db: Session, now: Optional[datetime] = None) -> int:
    """Close every venue check-in that is still open."""
    now = now or utc_now()

    with transaction(db):
        closed = db.query(VenueCheckin).filter(VenueCheckin.checked_out_at.is_(None)).update(
            {VenueCheckin.checked_out_at: now, VenueCheckin.auto_checked_out: True},
            synchronize_session=False,
        )

    logger.info(f"[Scheduler] Auto-checked out {closed} users from venues")
    return closed


class MaintenanceJob(NamedTuple):
    id: str
    name: str
    func: Callable[..., Awaitable[int]]
    cron: Dict[str, Any]


MAINTENANCE_JOBS: List[MaintenanceJob] = [
    MaintenanceJob("process_scheduled_notifications", "Process Scheduled Notifications",
                   process_scheduled_notifications, {"minute": 0}),
    MaintenanceJob("create_recurring_games", "Create Recurring Games",
                   create_recurring_games, {"hour": 1, "minute": 0}),
    MaintenanceJob("schedule_game_reminders", "Schedule Game Reminders",
                   schedule_game_reminders, {"hour": "*/6", "minute": 0}),
    MaintenanceJob("expire_waitlist_entries", "Expire Waitlist Entries",
                   expire_waitlist_entries, {"hour": 2, "minute": 0}),
    MaintenanceJob("reset_monthly_quotas", "Reset Monthly Quotas",
                   reset_monthly_quotas, {"day": 1, "hour": 0, "minute": 0}),
    MaintenanceJob("expire_trials", "Expire Trials",
                   expire_trials, {"hour": 3, "minute": 0}),
    MaintenanceJob("sync_subscriptions", "Sync Subscriptions",
                   sync_subscriptions, {"hour": "*/6", "minute": 0}),
    MaintenanceJob("auto_checkout_venues", "Auto-checkout Venues",
                   auto_checkout_venues, {"hour": 0, "minute": 0}),
]

JOBS_BY_ID: Dict[str, MaintenanceJob] = {job.id: job for job in MAINTENANCE_JOBS}
