"""
Pre-defined email templates for game, subscription and payment events.

Every builder takes already-resolved values (names, dates, amounts, links)
and returns a rendered EmailMessage.
"""
from datetime import date, time
from html import escape
from typing import Optional, Union

from app.core.config import settings
from app.schemas.notification import EmailMessage

BRAND_COLOR = "#2563eb"
SUCCESS_COLOR = "#10b981"


def _link(path: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}"


def _button(url: str, label: str, color: str = BRAND_COLOR) -> str:
    return (
        f'<p><a href="{escape(url)}" style="background-color: {color}; color: white; '
        f'padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">'
        f"{escape(label)}</a></p>"
    )


def _layout(heading: str, body: str, color: str = BRAND_COLOR) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{escape(heading)}</h2>'
        f"{body}"
        '<p style="color: #6b7280; font-size: 14px; margin-top: 30px;">ChessFam Team</p>'
        "</div>"
    )


def format_amount(cents: int, currency: str = "eur") -> str:
    symbol = {"eur": "€", "usd": "$", "gbp": "£"}.get((currency or "").lower(), "")
    amount = f"{(cents or 0) / 100:.2f}"
    return f"{symbol}{amount}" if symbol else f"{amount} {currency.upper()}"


def _format_date(value: Union[date, str, None]) -> str:
    if isinstance(value, date):
        return value.strftime("%A, %B %d, %Y")
    return value or "TBA"


def _format_time(value: Union[time, str, None]) -> str:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value or "TBA"


class EmailTemplates:
    """Pre-defined email templates."""

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    @staticmethod
    def game_reminder(
        name: str, venue_name: str, game_date: Union[date, str], game_time: Union[time, str], game_id: int
    ) -> EmailMessage:
        url = _link(f"/games/{game_id}")
        when_date, when_time = _format_date(game_date), _format_time(game_time)
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>This is a reminder that you have a chess game scheduled:</p>"
            '<div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">'
            f"<p><strong>Venue:</strong> {escape(venue_name)}</p>"
            f"<p><strong>Date:</strong> {escape(when_date)}</p>"
            f"<p><strong>Time:</strong> {escape(when_time)}</p>"
            "</div>"
            f"{_button(url, 'View Game Details')}"
            "<p>Good luck and have fun!</p>"
        )
        return EmailMessage(
            subject="Reminder: Your chess game is coming up!",
            html=_layout("Game Reminder", body),
            text=(
                f"Hi {name}, this is a reminder that you have a chess game at {venue_name} "
                f"on {when_date} at {when_time}. View details: {url}"
            ),
        )

    @staticmethod
    def game_update(name: str, game_id: int) -> EmailMessage:
        url = _link(f"/games/{game_id}")
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>A game you're participating in has been updated. Please check the new details:</p>"
            f"{_button(url, 'View Updated Game')}"
        )
        return EmailMessage(
            subject="Game Updated - Check the Details",
            html=_layout("Game Details Changed", body),
            text=f"Hi {name}, a game you're participating in has been updated. View details: {url}",
        )

    @staticmethod
    def spot_available(name: str, game_id: int) -> EmailMessage:
        url = _link(f"/games/{game_id}")
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>Great news! A spot has opened up in a game you're waitlisted for.</p>"
            "<p>Join quickly before it fills up again:</p>"
            f"{_button(url, 'Join Game Now', SUCCESS_COLOR)}"
        )
        return EmailMessage(
            subject="A Spot is Available in Your Waitlisted Game!",
            html=_layout("Spot Available!", body, SUCCESS_COLOR),
            text=f"Hi {name}, a spot is available in a game you're waitlisted for! Join now: {url}",
        )

    # ------------------------------------------------------------------
    # Platform subscription
    # ------------------------------------------------------------------

    @staticmethod
    def trial_expired(name: str) -> EmailMessage:
        url = _link("/premium")
        limit = settings.FREE_TIER_MONTHLY_GAME_LIMIT
        body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Your {settings.TRIAL_PERIOD_DAYS}-day free trial of ChessFam Premium has ended. "
            "You're now on our Free plan with the following limits:</p>"
            f"<ul><li>Create up to {limit} games per month</li>"
            "<li>Join unlimited games</li><li>Access to community features</li></ul>"
            "<p>Upgrade to Premium to unlock unlimited game creation and more benefits:</p>"
            f"{_button(url, 'Upgrade to Premium')}"
        )
        return EmailMessage(
            subject="Your ChessFam Premium trial has ended",
            html=_layout("Trial Period Ended", body),
            text=(
                f"Hi {name}, your ChessFam Premium trial has ended. You can create up to {limit} "
                f"games per month on the Free plan. Upgrade: {url}"
            ),
        )

    @staticmethod
    def premium_welcome(name: str) -> EmailMessage:
        url = _link("/account/subscription")
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>Thank you for subscribing to ChessFam Premium. You now have access to:</p>"
            "<ul><li>Unlimited game creation</li><li>Priority support</li>"
            "<li>Advanced statistics</li><li>Ad-free experience</li><li>Premium badge</li></ul>"
            f"{_button(url, 'Manage Subscription')}"
        )
        return EmailMessage(
            subject="Welcome to ChessFam Premium!",
            html=_layout("Welcome to Premium", body),
            text=f"Hi {name}, welcome to ChessFam Premium! Manage your plan: {url}",
        )

    @staticmethod
    def premium_canceled(name: str) -> EmailMessage:
        url = _link("/account/subscription")
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>Your ChessFam Premium subscription has been canceled and your account is back on the Free plan.</p>"
            "<p>You can subscribe again at any time:</p>"
            f"{_button(url, 'Subscription Settings')}"
        )
        return EmailMessage(
            subject="Your ChessFam Premium subscription was canceled",
            html=_layout("Subscription Canceled", body),
            text=f"Hi {name}, your ChessFam Premium subscription has been canceled. Settings: {url}",
        )

    @staticmethod
    def premium_receipt(name: str, amount: int, currency: str, invoice_url: Optional[str]) -> EmailMessage:
        formatted = format_amount(amount, currency)
        link = invoice_url or _link("/account/subscription")
        body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Thank you for your payment of {escape(formatted)} for ChessFam Premium.</p>"
            f"{_button(link, 'View Invoice')}"
        )
        return EmailMessage(
            subject="Payment Receipt - ChessFam Premium",
            html=_layout("Payment Receipt", body),
            text=f"Hi {name}, we received your payment of {formatted} for ChessFam Premium. Invoice: {link}",
        )

    @staticmethod
    def premium_payment_failed(name: str, invoice_url: Optional[str]) -> EmailMessage:
        link = invoice_url or _link("/account/subscription")
        body = (
            f"<p>Hi {escape(name)},</p>"
            "<p>We couldn't process your payment for ChessFam Premium. "
            "Please update your payment method to continue enjoying premium features.</p>"
            f"{_button(link, 'Pay Now')}"
        )
        return EmailMessage(
            subject="Payment failed for ChessFam Premium",
            html=_layout("Payment Failed", body),
            text=f"Hi {name}, we couldn't process your ChessFam Premium payment. Pay now: {link}",
        )

    # ------------------------------------------------------------------
    # Author subscriptions
    # ------------------------------------------------------------------

    @staticmethod
    def author_welcome(subscriber_name: str, author_name: str, tier: str) -> EmailMessage:
        url = _link("/author-subscriptions")
        plan = "Annual" if tier == "annual" else "Monthly"
        body = (
            f"<p>Hi {escape(subscriber_name)},</p>"
            f"<p>Thank you for subscribing to {escape(author_name)}'s content. "
            "You now have full access to all their paid blogs!</p>"
            f"<p>Your subscription: <strong>{plan}</strong></p>"
            f"{_button(url, 'Manage Subscriptions')}"
        )
        return EmailMessage(
            subject=f"Welcome to {author_name}'s Subscriber Community!",
            html=_layout(f"Welcome, {subscriber_name}!", body),
            text=f"Hi {subscriber_name}, you are now subscribed ({plan}) to {author_name}. Manage: {url}",
        )

    @staticmethod
    def author_new_subscriber(author_name: str, subscriber_name: str) -> EmailMessage:
        url = _link("/author-dashboard")
        body = (
            f"<p>Great news, {escape(author_name)}!</p>"
            f"<p><strong>{escape(subscriber_name)}</strong> just subscribed to your content!</p>"
            f"{_button(url, 'View Dashboard')}"
        )
        return EmailMessage(
            subject="New Subscriber to Your Content!",
            html=_layout("New Subscriber", body),
            text=f"Hi {author_name}, {subscriber_name} just subscribed to your content. Dashboard: {url}",
        )

    @staticmethod
    def author_canceled(subscriber_name: str, author_name: str) -> EmailMessage:
        url = _link("/author-subscriptions")
        body = (
            f"<p>Hi {escape(subscriber_name)},</p>"
            f"<p>Your subscription to {escape(author_name)}'s content has been canceled.</p>"
            f"{_button(url, 'Subscription Settings')}"
        )
        return EmailMessage(
            subject=f"Subscription to {author_name} canceled",
            html=_layout("Subscription Canceled", body),
            text=f"Hi {subscriber_name}, your subscription to {author_name} has been canceled. Settings: {url}",
        )

    @staticmethod
    def author_receipt(subscriber_name: str, amount: int, currency: str, invoice_url: Optional[str]) -> EmailMessage:
        formatted = format_amount(amount, currency)
        link = invoice_url or _link("/author-subscriptions")
        body = (
            f"<p>Hi {escape(subscriber_name)},</p>"
            f"<p>Thank you for your payment of {escape(formatted)} for your author subscription.</p>"
            f"{_button(link, 'View Invoice')}"
        )
        return EmailMessage(
            subject="Payment Receipt - Author Subscription",
            html=_layout("Payment Receipt", body),
            text=f"Hi {subscriber_name}, we received your payment of {formatted}. Invoice: {link}",
        )

    @staticmethod
    def author_payment_failed(subscriber_name: str, invoice_url: Optional[str]) -> EmailMessage:
        link = invoice_url or _link("/author-subscriptions")
        body = (
            f"<p>Hi {escape(subscriber_name)},</p>"
            "<p>We couldn't process your payment for your author subscription. "
            "Please update your payment method to keep accessing paid content.</p>"
            f"{_button(link, 'Pay Now')}"
        )
        return EmailMessage(
            subject="Payment Failed - Author Subscription",
            html=_layout("Payment Failed", body),
            text=f"Hi {subscriber_name}, your author subscription payment failed. Pay now: {link}",
        )

    # ------------------------------------------------------------------
    # One-time payments
    # ------------------------------------------------------------------

    @staticmethod
    def booking_confirmed(
        name: str, master_name: str, booking_date: Union[date, str], booking_time: str,
        duration: int, amount: int, currency: str, booking_id: int
    ) -> EmailMessage:
        url = _link(f"/bookings/{booking_id}")
        when = _format_date(booking_date)
        formatted = format_amount(amount, currency)
        body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Your lesson with <strong>{escape(master_name)}</strong> is confirmed.</p>"
            f"<p>{escape(when)} at {escape(booking_time)} ({duration} minutes). Paid: {escape(formatted)}</p>"
            f"{_button(url, 'View Booking', SUCCESS_COLOR)}"
        )
        return EmailMessage(
            subject=f"Booking confirmed with {master_name}",
            html=_layout("Booking Confirmed", body, SUCCESS_COLOR),
            text=f"Hi {name}, your lesson with {master_name} on {when} at {booking_time} is confirmed. {url}",
        )

    @staticmethod
    def tournament_registration_confirmed(
        name: str, tournament_name: str, start_date: Union[date, str], start_time: Optional[str],
        venue: Optional[str], amount: int, currency: str, tournament_id: int
    ) -> EmailMessage:
        url = _link(f"/tournaments/{tournament_id}")
        when = _format_date(start_date)
        formatted = format_amount(amount, currency)
        body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>You're registered for <strong>{escape(tournament_name)}</strong>.</p>"
            f"<p>{escape(when)} at {escape(start_time or 'TBA')}, {escape(venue or 'TBA')}. "
            f"Entry fee paid: {escape(formatted)}</p>"
            f"{_button(url, 'View Tournament', SUCCESS_COLOR)}"
        )
        return EmailMessage(
            subject=f"Registration confirmed: {tournament_name}",
            html=_layout("Registration Confirmed", body, SUCCESS_COLOR),
            text=f"Hi {name}, you're registered for {tournament_name} on {when}. {url}",
        )

    @staticmethod
    def club_membership_confirmed(name: str, club_name: str, club_id: int) -> EmailMessage:
        url = _link(f"/clubs/{club_id}")
        body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Welcome to <strong>{escape(club_name)}</strong>! Your membership is now active.</p>"
            f"{_button(url, 'Visit Club', SUCCESS_COLOR)}"
        )
        return EmailMessage(
            subject=f"Welcome to {club_name}",
            html=_layout("Membership Active", body, SUCCESS_COLOR),
            text=f"Hi {name}, your membership of {club_name} is now active. {url}",
        )
