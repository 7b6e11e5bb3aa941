"""
Tests for the platform (premium) subscription reconciler.
"""
from datetime import datetime

import pytest

from app.models import Payment, Subscription, User
from app.services.subscription_webhook_service import subscription_webhook_service

PERIOD_START = 1772150400  # 2026-02-27
PERIOD_END = 1774828800  # 2026-03-30


def _subscription_payload(user, **overrides):
    payload = {
        "id": "sub_premium_1",
        "object": "subscription",
        "customer": "cus_42",
        "status": "active",
        "metadata": {"user_id": str(user.id)},
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
    }
    payload.update(overrides)
    return payload


def _invoice_payload(**overrides):
    payload = {
        "id": "in_001",
        "object": "invoice",
        "subscription": "sub_premium_1",
        "amount_paid": 999,
        "currency": "eur",
        "billing_reason": "subscription_cycle",
        "payment_intent": "pi_001",
        "hosted_invoice_url": "https://invoice.stripe.com/i/in_001",
    }
    payload.update(overrides)
    return payload


def _local(db, stripe_id="sub_premium_1"):
    db.expire_all()
    return db.query(Subscription).filter_by(stripe_subscription_id=stripe_id).one()


# ──────────────────────────────────────────────────────────────
# customer.subscription.created
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_created_stores_subscription_and_upgrades_user(db_session, factory, event, emails, now):
    user = factory.user(email="anna@example.com")

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.created", _subscription_payload(user)), now=now
    )

    assert outcome == "subscription_created"
    local = _local(db_session)
    assert local.user_id == user.id
    assert local.tier == "premium"
    assert local.status == "active"
    assert local.stripe_customer_id == "cus_42"
    assert local.current_period_end == datetime(2026, 3, 30)
    refreshed = db_session.get(User, user.id)
    assert refreshed.subscription_tier == "premium"
    assert refreshed.subscription_status == "active"
    assert emails.subjects == ["Welcome to ChessFam Premium!"]
    assert emails.sent[0]["to"] == "anna@example.com"


@pytest.mark.asyncio
async def test_created_with_trial_sets_trial_end(db_session, factory, event, now):
    user = factory.user()
    trial_end = 1774224000  # 2026-03-23
    payload = _subscription_payload(user, status="trialing", trial_start=1773014400, trial_end=trial_end)

    await subscription_webhook_service.handle_event(db_session, event("customer.subscription.created", payload), now=now)

    local = _local(db_session)
    assert local.tier == "premium"
    assert local.trial_end == datetime(2026, 3, 23)
    assert db_session.get(User, user.id).trial_ends_at == datetime(2026, 3, 23)


@pytest.mark.asyncio
async def test_created_replaces_existing_row_for_same_user(db_session, factory, event, now):
    user = factory.user()
    factory.subscription(user, stripe_subscription_id="sub_old", status="canceled", tier="free")

    await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.created", _subscription_payload(user)), now=now
    )

    rows = db_session.query(Subscription).filter_by(user_id=user.id).all()
    assert len(rows) == 1
    assert rows[0].stripe_subscription_id == "sub_premium_1"
    assert rows[0].status == "active"


@pytest.mark.asyncio
async def test_created_without_user_metadata_is_ignored(db_session, factory, event, emails, now):
    user = factory.user()
    payload = _subscription_payload(user, metadata={})

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.created", payload), now=now
    )

    assert outcome == "ignored"
    assert db_session.query(Subscription).count() == 0
    assert emails.sent == []


@pytest.mark.asyncio
async def test_incomplete_subscription_is_stored_as_free_without_welcome(db_session, factory, event, emails, now):
    user = factory.user()
    payload = _subscription_payload(user, status="incomplete")

    await subscription_webhook_service.handle_event(db_session, event("customer.subscription.created", payload), now=now)

    assert _local(db_session).tier == "free"
    assert db_session.get(User, user.id).subscription_tier == "free"
    assert emails.sent == []


# ──────────────────────────────────────────────────────────────
# customer.subscription.updated
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "status,tier",
    [
        ("active", "premium"),
        ("trialing", "premium"),
        ("past_due", "free"),
        ("unpaid", "free"),
        ("canceled", "free"),
        ("incomplete_expired", "free"),
    ],
)
@pytest.mark.asyncio
async def test_updated_derives_tier_from_status(db_session, factory, event, now, status, tier):
    user = factory.user(subscription_tier="premium", subscription_status="active")
    factory.subscription(user, stripe_subscription_id="sub_premium_1")

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.updated", _subscription_payload(user, status=status)), now=now
    )

    assert outcome == "subscription_updated"
    local = _local(db_session)
    assert (local.status, local.tier) == (status, tier)
    refreshed = db_session.get(User, user.id)
    assert (refreshed.subscription_status, refreshed.subscription_tier) == (status, tier)


@pytest.mark.asyncio
async def test_updated_redelivery_is_idempotent(db_session, factory, event, now):
    user = factory.user(subscription_tier="premium")
    factory.subscription(user, stripe_subscription_id="sub_premium_1")
    payload = _subscription_payload(user, cancel_at_period_end=True)

    for _ in range(2):
        await subscription_webhook_service.handle_event(
            db_session, event("customer.subscription.updated", payload), now=now
        )

    local = _local(db_session)
    assert local.cancel_at_period_end is True
    assert local.status == "active"
    assert local.current_period_start == datetime(2026, 2, 27)
    assert db_session.query(Subscription).count() == 1


@pytest.mark.asyncio
async def test_updated_reads_period_from_subscription_items(db_session, factory, event, now):
    user = factory.user()
    factory.subscription(user, stripe_subscription_id="sub_premium_1")
    payload = _subscription_payload(user)
    del payload["current_period_start"]
    del payload["current_period_end"]
    payload["items"] = {"data": [{"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}]}

    await subscription_webhook_service.handle_event(db_session, event("customer.subscription.updated", payload), now=now)

    assert _local(db_session).current_period_end == datetime(2026, 3, 30)


# ──────────────────────────────────────────────────────────────
# customer.subscription.deleted
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_deleted_downgrades_and_keeps_first_cancellation_time(db_session, factory, event, emails, now):
    user = factory.user(subscription_tier="premium", subscription_status="active")
    factory.subscription(user, stripe_subscription_id="sub_premium_1")
    payload = _subscription_payload(user, status="canceled", canceled_at=1773057600)  # 2026-03-09 12:00

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.deleted", payload), now=now
    )
    redelivered = dict(payload, canceled_at=1773144000)
    await subscription_webhook_service.handle_event(
        db_session, event("customer.subscription.deleted", redelivered), now=now
    )

    assert outcome == "subscription_deleted"
    local = _local(db_session)
    assert local.status == "canceled"
    assert local.tier == "free"
    assert local.canceled_at == datetime(2026, 3, 9, 12, 0)
    refreshed = db_session.get(User, user.id)
    assert (refreshed.subscription_tier, refreshed.subscription_status) == ("free", "canceled")
    assert "Your ChessFam Premium subscription was canceled" in emails.subjects


# ──────────────────────────────────────────────────────────────
# invoice.payment_succeeded / invoice.payment_failed
# ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invoice_paid_reactivates_and_records_one_payment(db_session, factory, event, emails, now):
    user = factory.user(subscription_status="past_due")
    factory.subscription(user, stripe_subscription_id="sub_premium_1", status="past_due", tier="free",
                         cancel_at_period_end=True)

    first = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", _invoice_payload()), now=now
    )
    second = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", _invoice_payload(), event_id="evt_retry"), now=now
    )

    assert (first, second) == ("invoice_paid", "invoice_paid")
    local = _local(db_session)
    assert (local.status, local.tier, local.cancel_at_period_end) == ("active", "premium", False)
    refreshed = db_session.get(User, user.id)
    assert (refreshed.subscription_tier, refreshed.subscription_status) == ("premium", "active")

    payments = db_session.query(Payment).all()
    assert len(payments) == 1
    payment = payments[0]
    assert payment.user_id == user.id
    assert payment.amount == 999
    assert payment.status == "succeeded"
    assert payment.payment_type == "platform_subscription"
    assert payment.stripe_invoice_id == "in_001"
    assert payment.stripe_payment_intent_id == "pi_001"
    assert payment.revenue_type == "renewal"
    assert emails.subjects.count("Payment Receipt - ChessFam Premium") == 2
    assert "€9.99" in emails.sent[0]["html"]


@pytest.mark.asyncio
async def test_first_invoice_is_recorded_as_initial_subscription(db_session, factory, event, now):
    user = factory.user()
    factory.subscription(user, stripe_subscription_id="sub_premium_1")

    await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", _invoice_payload(billing_reason="subscription_create")), now=now
    )

    assert db_session.query(Payment).one().revenue_type == "initial_subscription"


@pytest.mark.asyncio
async def test_invoice_with_nested_subscription_details(db_session, factory, event, now):
    user = factory.user()
    factory.subscription(user, stripe_subscription_id="sub_premium_1", status="past_due", tier="free")
    invoice = _invoice_payload(subscription=None, parent={"subscription_details": {"subscription": "sub_premium_1"}})

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", invoice), now=now
    )

    assert outcome == "invoice_paid"
    assert _local(db_session).status == "active"


@pytest.mark.asyncio
async def test_invoice_paid_rolls_back_when_ledger_write_fails(db_session, factory, event, emails, monkeypatch, now):
    user = factory.user(subscription_status="past_due")
    factory.subscription(user, stripe_subscription_id="sub_premium_1", status="past_due", tier="free")

    def explode(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(subscription_webhook_service, "record_invoice_payment", explode)

    with pytest.raises(RuntimeError):
        await subscription_webhook_service.handle_event(
            db_session, event("invoice.payment_succeeded", _invoice_payload()), now=now
        )

    local = _local(db_session)
    assert (local.status, local.tier) == ("past_due", "free")
    assert db_session.get(User, user.id).subscription_status == "past_due"
    assert db_session.query(Payment).count() == 0
    assert emails.sent == []


@pytest.mark.asyncio
async def test_invoice_without_subscription_is_ignored(db_session, factory, event, now):
    factory.subscription(factory.user(), stripe_subscription_id="sub_premium_1")

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", _invoice_payload(subscription=None)), now=now
    )

    assert outcome == "ignored"
    assert db_session.query(Payment).count() == 0


@pytest.mark.asyncio
async def test_invoice_for_unknown_subscription_is_ignored(db_session, event, now):
    outcome = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_succeeded", _invoice_payload(subscription="sub_unknown")), now=now
    )

    assert outcome == "ignored"


@pytest.mark.asyncio
async def test_invoice_failed_marks_past_due(db_session, factory, event, emails, now):
    user = factory.user(subscription_tier="premium", subscription_status="active")
    factory.subscription(user, stripe_subscription_id="sub_premium_1")

    outcome = await subscription_webhook_service.handle_event(
        db_session, event("invoice.payment_failed", _invoice_payload(amount_paid=0)), now=now
    )

    assert outcome == "invoice_failed"
    local = _local(db_session)
    assert (local.status, local.tier) == ("past_due", "free")
    refreshed = db_session.get(User, user.id)
    assert (refreshed.subscription_tier, refreshed.subscription_status) == ("free", "past_due")
    assert emails.subjects == ["Payment failed for ChessFam Premium"]
    assert "https://invoice.stripe.com/i/in_001" in emails.sent[0]["html"]
    assert db_session.query(Payment).count() == 0
