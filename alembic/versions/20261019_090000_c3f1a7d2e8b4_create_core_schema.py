"""Create scheduling, subscription and payment tables

Revision ID: c3f1a7d2e8b4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c3f1a7d2e8b4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('username', sa.String(50), nullable=True),
        sa.Column('subscription_tier', sa.String(20), nullable=False, server_default='free'),
        sa.Column('subscription_status', sa.String(50), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('games_created_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quota_reset_date', sa.DateTime(), nullable=True),
        sa.Column('paid_subscribers_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('monthly_recurring_revenue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_trial_ends_at', 'users', ['trial_ends_at'])

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE')),
        sa.Column('email_game_reminders', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_game_updates', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reminder_hours_before', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'], unique=True)

    op.create_table(
        'games',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('venue_name', sa.String(255), nullable=False),
        sa.Column('venue_address', sa.Text(), nullable=True),
        sa.Column('venue_lat', sa.Float(), nullable=True),
        sa.Column('venue_lng', sa.Float(), nullable=True),
        sa.Column('game_date', sa.Date(), nullable=False),
        sa.Column('game_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('time_control', sa.String(50), nullable=True),
        sa.Column('player_level', sa.String(50), nullable=True),
        sa.Column('max_players', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('min_rating', sa.Integer(), nullable=True),
        sa.Column('max_rating', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recurrence_pattern', sa.String(20), nullable=True),
        sa.Column('recurrence_day', sa.Integer(), nullable=True),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('parent_game_id', sa.Integer(), sa.ForeignKey('games.id'), nullable=True),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('parent_game_id', 'game_date', name='unique_recurring_occurrence'),
    )
    op.create_index('ix_games_creator_id', 'games', ['creator_id'])
    op.create_index('ix_games_game_date', 'games', ['game_date'])
    op.create_index('ix_games_status', 'games', ['status'])
    op.create_index('ix_games_parent_game_id', 'games', ['parent_game_id'])

    op.create_table(
        'game_participants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='confirmed'),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('game_id', 'user_id', name='unique_game_participant'),
    )
    op.create_index('ix_game_participants_game_id', 'game_participants', ['game_id'])
    op.create_index('ix_game_participants_user_id', 'game_participants', ['user_id'])

    op.create_table(
        'game_waitlist',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('notified_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_game_waitlist_game_id', 'game_waitlist', ['game_id'])
    op.create_index('ix_game_waitlist_user_id', 'game_waitlist', ['user_id'])
    op.create_index('ix_game_waitlist_status', 'game_waitlist', ['status'])

    op.create_table(
        'venue_checkins',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('checked_in_at', sa.DateTime(), nullable=False),
        sa.Column('checked_out_at', sa.DateTime(), nullable=True),
        sa.Column('auto_checked_out', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_venue_checkins_user_id', 'venue_checkins', ['user_id'])
    op.create_index('ix_venue_checkins_venue_id', 'venue_checkins', ['venue_id'])
    op.create_index('ix_venue_checkins_checked_out_at', 'venue_checkins', ['checked_out_at'])

    op.create_table(
        'scheduled_notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('notification_type', sa.String(30), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'game_id', 'notification_type', name='unique_scheduled_notification'),
    )
    op.create_index('ix_scheduled_notifications_user_id', 'scheduled_notifications', ['user_id'])
    op.create_index('ix_scheduled_notifications_game_id', 'scheduled_notifications', ['game_id'])
    op.create_index('ix_scheduled_notifications_scheduled_for', 'scheduled_notifications', ['scheduled_for'])
    op.create_index('ix_scheduled_notifications_sent', 'scheduled_notifications', ['sent'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tier', sa.String(20), nullable=False, server_default='free'),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('trial_start', sa.DateTime(), nullable=True),
        sa.Column('trial_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'], unique=True)
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])

    op.create_table(
        'subscription_quota_usage',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('quota_used', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_subscription_quota_usage_user_id', 'subscription_quota_usage', ['user_id'])
    op.create_index('ix_subscription_quota_usage_created_at', 'subscription_quota_usage', ['created_at'])

    op.create_table(
        'author_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='eur'),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('trial_start', sa.DateTime(), nullable=True),
        sa.Column('trial_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('author_id', 'subscriber_id', name='unique_author_subscriber'),
    )
    op.create_index('ix_author_subscriptions_author_id', 'author_subscriptions', ['author_id'])
    op.create_index('ix_author_subscriptions_subscriber_id', 'author_subscriptions', ['subscriber_id'])
    op.create_index(
        'ix_author_subscriptions_stripe_subscription_id', 'author_subscriptions', ['stripe_subscription_id'],
        unique=True
    )

    op.create_table(
        'author_subscription_revenue',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'subscription_id', sa.Integer(), sa.ForeignKey('author_subscriptions.id', ondelete='CASCADE'),
            nullable=False
        ),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='eur'),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('is_premium_subscriber', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('discount_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False, unique=True),
        sa.Column('stripe_charge_id', sa.String(255), nullable=True),
        sa.Column('revenue_type', sa.String(30), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_author_subscription_revenue_author_id', 'author_subscription_revenue', ['author_id'])

    op.create_table(
        'processed_billing_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_processed_billing_events_event_id', 'processed_billing_events', ['event_id'], unique=True)

    op.create_table(
        'tournaments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(10), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'clubs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('master_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.String(10), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_bookings_student_id', 'bookings', ['student_id'])
    op.create_index('ix_bookings_master_id', 'bookings', ['master_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='eur'),
        sa.Column('payment_type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tournament_id', sa.Integer(), sa.ForeignKey('tournaments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('club_id', sa.Integer(), sa.ForeignKey('clubs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=True),
        sa.Column('revenue_type', sa.String(30), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_payment_type', 'payments', ['payment_type'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_stripe_payment_intent_id', 'payments', ['stripe_payment_intent_id'], unique=True)
    op.create_index('ix_payments_stripe_checkout_session_id', 'payments', ['stripe_checkout_session_id'], unique=True)
    op.create_index('ix_payments_stripe_invoice_id', 'payments', ['stripe_invoice_id'], unique=True)

    op.create_table(
        'tournament_registrations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'tournament_id', sa.Integer(), sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('tournament_id', 'user_id', name='unique_tournament_registration'),
    )
    op.create_index('ix_tournament_registrations_tournament_id', 'tournament_registrations', ['tournament_id'])
    op.create_index('ix_tournament_registrations_user_id', 'tournament_registrations', ['user_id'])

    op.create_table(
        'club_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('club_id', sa.Integer(), sa.ForeignKey('clubs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('payment_id', sa.Integer(), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('club_id', 'user_id', name='unique_club_membership'),
    )
    op.create_index('ix_club_memberships_club_id', 'club_memberships', ['club_id'])
    op.create_index('ix_club_memberships_user_id', 'club_memberships', ['user_id'])


def downgrade() -> None:
    for table in (
        'club_memberships',
        'tournament_registrations',
        'payments',
        'bookings',
        'clubs',
        'tournaments',
        'processed_billing_events',
        'author_subscription_revenue',
        'author_subscriptions',
        'subscription_quota_usage',
        'subscriptions',
        'scheduled_notifications',
        'venue_checkins',
        'game_waitlist',
        'game_participants',
        'games',
        'notification_preferences',
        'users',
    ):
        op.drop_table(table)
