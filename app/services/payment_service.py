"""
One-time payment reconciler: checkout completion, expiry and refunds for
bookings, tournament entries and club memberships
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.database import insert_for, transaction
from app.models.payment import Booking, ClubMembership, Payment, TournamentRegistration
from app.models.user import User
from app.schemas.billing import BillingEvent, object_id
from app.schemas.notification import EmailMessage
from app.services.email_templates import EmailTemplates
from app.services.subscription_webhook_service import notify_user
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class PaymentService:
    """Applies one-time checkout and charge events to payments"""

    HANDLED_EVENTS = ("checkout.session.completed", "checkout.session.expired", "charge.refunded")

    async def handle_event(self, db: Session, event: BillingEvent, now: Optional[datetime] = None) -> str:
        now = now or utc_now()
        obj = event.object

        if event.type == "checkout.session.completed":
            if obj.get("payment_status") != "paid":
                logger.info(f"[Payment] Session {obj.get('id')} completed without payment ({obj.get('payment_status')})")
                return "ignored"
            return await self.handle_payment_success(db, obj.get("id"), object_id(obj.get("payment_intent")), now)
        if event.type == "checkout.session.expired":
            return self.handle_payment_failed(db, obj.get("id"), now)
        if event.type == "charge.refunded":
            return self.handle_charge_refunded(db, obj, now)

        logger.info(f"[Payment] Unhandled event type: {event.type}")
        return "ignored"

    async def handle_payment_success(
        self, db: Session, session_id: str, payment_intent_id: Optional[str], now: datetime
    ) -> str:
        payment = db.query(Payment).filter(Payment.stripe_checkout_session_id == session_id).first()
        if not payment:
            logger.error(f"[Payment] Payment not found for session {session_id}")
            return "ignored"
        if payment.status == "succeeded":
            logger.info(f"[Payment] Payment {payment.id} already completed")
            return "duplicate"

        with transaction(db):
            payment.status = "succeeded"
            if payment_intent_id:
                payment.stripe_payment_intent_id = payment_intent_id
            payment.completed_at = now
            payment.updated_at = now
            db.flush()
            message = self._confirm_purchase(db, payment, now)

        logger.info(f"[Payment] Payment {payment.id} completed successfully")
        if message is not None:
            await notify_user(db.get(User, payment.user_id), message)
        return "payment_succeeded"

    def _confirm_purchase(self, db: Session, payment: Payment, now: datetime) -> Optional[EmailMessage]:
        """Activate whatever the payment was for and build its confirmation email."""
        user = db.get(User, payment.user_id)
        name = user.display_name if user else ""

        if payment.payment_type == "master_booking" and payment.booking_id:
            booking = db.get(Booking, payment.booking_id)
            if not booking:
                logger.warning(f"[Payment] Booking {payment.booking_id} not found for payment {payment.id}")
                return None
            booking.status = "confirmed"
            booking.payment_status = "paid"
            booking.payment_id = payment.id
            db.flush()
            return EmailTemplates.booking_confirmed(
                name,
                booking.master.display_name if booking.master else "your coach",
                booking.date,
                booking.time,
                booking.duration,
                payment.amount,
                payment.currency,
                booking.id,
            )

        if payment.payment_type == "tournament_entry" and payment.tournament_id:
            self._upsert_paid(db, TournamentRegistration, payment, ["tournament_id", "user_id"],
                              {"tournament_id": payment.tournament_id, "status": "confirmed"})
            registration = db.query(TournamentRegistration).filter(
                TournamentRegistration.tournament_id == payment.tournament_id,
                TournamentRegistration.user_id == payment.user_id,
            ).first()
            tournament = registration.tournament
            return EmailTemplates.tournament_registration_confirmed(
                name,
                tournament.name,
                tournament.start_date,
                tournament.start_time,
                tournament.location,
                payment.amount,
                payment.currency,
                tournament.id,
            )

        if payment.payment_type == "club_membership" and payment.club_id:
            self._upsert_paid(db, ClubMembership, payment, ["club_id", "user_id"],
                              {"club_id": payment.club_id, "status": "active", "joined_at": now})
            membership = db.query(ClubMembership).filter(
                ClubMembership.club_id == payment.club_id,
                ClubMembership.user_id == payment.user_id,
            ).first()
            return EmailTemplates.club_membership_confirmed(name, membership.club.name, payment.club_id)

        logger.warning(f"[Payment] Nothing to confirm for payment {payment.id} ({payment.payment_type})")
        return None

    def _upsert_paid(self, db: Session, model, payment: Payment, keys, values: Dict[str, Any]) -> None:
        paid = {**values, "payment_status": "paid", "payment_id": payment.id}
        stmt = insert_for(db, model).values(user_id=payment.user_id, **paid)
        db.execute(stmt.on_conflict_do_update(index_elements=keys, set_=paid))

    def handle_payment_failed(self, db: Session, session_id: str, now: datetime) -> str:
        with transaction(db):
            updated = db.query(Payment).filter(
                Payment.stripe_checkout_session_id == session_id,
                Payment.status == "pending",
            ).update({Payment.status: "failed", Payment.updated_at: now}, synchronize_session=False)

        logger.info(f"[Payment] Payment failed for session {session_id} ({updated} row(s))")
        return "payment_failed"

    def handle_charge_refunded(self, db: Session, charge: Dict[str, Any], now: datetime) -> str:
        payment_intent_id = object_id(charge.get("payment_intent"))
        payment = None
        if payment_intent_id:
            payment = db.query(Payment).filter(Payment.stripe_payment_intent_id == payment_intent_id).first()
        if not payment:
            logger.info(f"[Payment] Charge {charge.get('id')} refunded for unknown payment")
            return "ignored"

        refunded = int(charge.get("amount_refunded") or 0)
        full = bool(charge.get("refunded")) or refunded >= payment.amount

        with transaction(db):
            payment.status = "refunded" if full else "partially_refunded"
            payment.refund_amount = refunded
            payment.refunded_at = payment.refunded_at or now
            payment.updated_at = now

            if full:
                if payment.booking_id:
                    db.query(Booking).filter(Booking.id == payment.booking_id).update(
                        {Booking.payment_status: "refunded", Booking.status: "cancelled"},
                        synchronize_session=False,
                    )
                if payment.tournament_id:
                    db.query(TournamentRegistration).filter(
                        TournamentRegistration.tournament_id == payment.tournament_id,
                        TournamentRegistration.user_id == payment.user_id,
                    ).update(
                        {TournamentRegistration.payment_status: "refunded", TournamentRegistration.status: "cancelled"},
                        synchronize_session=False,
                    )
                if payment.club_id:
                    db.query(ClubMembership).filter(
                        ClubMembership.club_id == payment.club_id,
                        ClubMembership.user_id == payment.user_id,
                    ).update(
                        {ClubMembership.payment_status: "refunded", ClubMembership.status: "cancelled"},
                        synchronize_session=False,
                    )

        logger.info(f"[Payment] Charge {charge.get('id')} refunded {refunded} on payment {payment.id}")
        return "payment_refunded"


# Global payment service instance
payment_service = PaymentService()
