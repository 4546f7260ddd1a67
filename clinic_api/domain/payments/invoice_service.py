"""Payment invoice service - QR invoices, reconciliation and admin actions"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ... import config
from ...errors import ConflictError, NotFoundError, ProviderError, StateError
from ...models import (
    Appointment,
    AppointmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from ...shared.clock import Clock
from ...utils.sanitization import sanitize_text
from ..appointments.booking_service import SLOT_TAKEN_MESSAGE
from ..appointments.repository import AppointmentRepository
from .providers import PaymentProvider
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "QR code expired, please generate a new one"
FAILED_MESSAGE = "Payment failed, please retry"

STATUS_MESSAGES: dict[PaymentStatus, str] = {
    PaymentStatus.PENDING: "Waiting for payment",
    PaymentStatus.COMPLETED: "Payment confirmed",
    PaymentStatus.FAILED: FAILED_MESSAGE,
    PaymentStatus.REFUNDED: "Payment refunded",
    PaymentStatus.EXPIRED: EXPIRED_MESSAGE,
}

# Callback status values that mean the customer paid / the payment failed
CALLBACK_SUCCESS_STATUSES = {"SUCCESS", "PAID", "COMPLETED"}
CALLBACK_FAILURE_STATUSES = {"FAILED", "FAILURE", "CANCELLED", "DECLINED"}


def is_expired(payment: Payment, now: datetime) -> bool:
    return payment.expires_at is not None and payment.expires_at <= now


def amount_matches(claimed: Any, expected: int) -> bool:
    try:
        return float(claimed) == float(expected)
    except (TypeError, ValueError):
        return False


class PaymentInvoiceService:
    """
    Bridges a PENDING appointment to a confirmed payment.

    Payment state machine:
        PENDING -> COMPLETED (provider confirms full amount) -> REFUNDED (admin)
        PENDING -> EXPIRED (expires_at elapsed before confirmation)
        PENDING -> FAILED (provider failure / amount mismatch)

    Every transition is a compare-and-swap on the payment status, and a
    confirmation moves the appointment in the same transaction.
    """

    def __init__(self, db: Session, provider: PaymentProvider, clock: Clock = datetime.now):
        self.db = db
        self.provider = provider
        self.clock = clock
        self.repo = PaymentRepository()
        self.appointments = AppointmentRepository()

    # ------------------------------------------------------------------
    # Invoice creation
    # ------------------------------------------------------------------

    async def create_invoice(self, appointment_id: str) -> tuple[Payment, bool]:
        """
        Issue a QR invoice for a PENDING appointment.

        Returns (payment, created). An unexpired pending invoice is returned as is,
        so client retries never create a second provider invoice.
        """
        now = self.clock()
        appointment = self.appointments.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if appointment.status != AppointmentStatus.PENDING:
            raise StateError("This appointment is not awaiting payment")

        existing = self.repo.get_pending_booking_fee(self.db, appointment.id)
        if existing:
            if not is_expired(existing, now):
                logger.info(f"Reusing pending payment {existing.id} for appointment {appointment.id}")
                return existing, False
            self._expire(existing)

        amount = config.BOOKING_FEE
        sender_invoice_no = f"APT-{appointment.id[:8]}-{uuid.uuid4().hex[:8]}".upper()
        invoice = await self.provider.create_invoice(
            sender_invoice_no=sender_invoice_no,
            receiver_code=appointment.patient.phone,
            description=f"Appointment booking fee - Dr. {appointment.doctor.name}",
            amount=amount,
        )

        try:
            payment = self.repo.create_payment(
                self.db,
                appointment_id=appointment.id,
                amount=amount,
                type=PaymentType.BOOKING_FEE,
                status=PaymentStatus.PENDING,
                method=self.provider.method,
                qr_code=invoice.get("qr_text"),
                qr_image=invoice.get("qr_image"),
                qr_url=invoice.get("short_url"),
                invoice_id=invoice["invoice_id"],
                expires_at=now + timedelta(minutes=config.QR_EXPIRY_MINUTES),
                metadata_={"sender_invoice_no": sender_invoice_no},
            )
        except IntegrityError as e:
            # A concurrent request created the pending payment first
            logger.warning(f"⚠️ Invoice race lost for appointment {appointment.id}, cancelling {invoice['invoice_id']}")
            await self.provider.cancel_invoice(invoice["invoice_id"])
            winner = self.repo.get_pending_booking_fee(self.db, appointment.id)
            if not winner:
                raise ConflictError("Payment is already being processed, please retry") from e
            return winner, False

        logger.info(
            f"💳 Payment {payment.id} created for appointment {appointment.id}: "
            f"invoice={payment.invoice_id} amount={amount} expires={payment.expires_at}"
        )
        return payment, True

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def check_status(self, payment_id: str) -> Payment:
        """
        Poll path. Expiry is checked before the provider, so a late "paid" answer
        is never honoured. Provider errors fall back to the stored status.
        """
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.PENDING:
            return payment

        now = self.clock()
        if is_expired(payment, now):
            self._expire(payment)
            return self.get_payment(payment_id)

        try:
            result = await self.provider.check_payment(payment.invoice_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Provider check failed for payment {payment.id}: {e.message}")
            return payment

        if result["paid_amount"] >= payment.amount:
            self._confirm(payment, now, transaction_id=self._provider_transaction_id(result), source="poll")
        return self.get_payment(payment_id)

    async def handle_callback(self, payload: dict, query_invoice_id: Optional[str] = None) -> dict:
        """Webhook path. Always acknowledges."""
        try:
            await self._process_callback(payload, query_invoice_id)
        except Exception as e:
            # Always acknowledge so the provider does not retry
            logger.error(f"❌ Payment callback processing failed: {e}", exc_info=True)
            self.db.rollback()
        return {"success": True}

    async def _process_callback(self, payload: dict, query_invoice_id: Optional[str]) -> None:
        references = [
            str(ref)
            for ref in (payload.get("invoiceId") or payload.get("invoice_id"), query_invoice_id)
            if ref
        ]
        payment = None
        for reference in references:
            payment = self.repo.find_by_reference(self.db, reference)
            if payment:
                break

        if not payment:
            logger.warning(f"⚠️ Payment callback for unknown invoice: {references}")
            return

        if payment.status != PaymentStatus.PENDING:
            logger.info(f"Callback for payment {payment.id} already processed ({payment.status.value})")
            return

        now = self.clock()
        if is_expired(payment, now):
            logger.warning(f"⚠️ Callback for expired payment {payment.id} ignored")
            self._expire(payment)
            return

        # Unsigned body: an amount mismatch counts only when the provider reports it
        claimed_amount = payload.get("amount")
        claim_matches = claimed_amount in (None, "") or amount_matches(claimed_amount, payment.amount)
        claimed_status = str(payload.get("status") or "").upper()
        try:
            result = await self.provider.check_payment(payment.invoice_id)
        except ProviderError as e:
            if claimed_status in CALLBACK_SUCCESS_STATUSES and claim_matches:
                logger.warning(
                    f"⚠️ Provider unreachable ({e.message}); confirming payment {payment.id} from callback body"
                )
                self._confirm(
                    payment,
                    now,
                    transaction_id=payload.get("transactionId"),
                    source="callback_fallback",
                )
            else:
                logger.warning(f"⚠️ Provider unreachable for callback on payment {payment.id}: {e.message}")
            return

        paid_amount = result["paid_amount"]
        if paid_amount >= payment.amount:
            transaction_id = self._provider_transaction_id(result) or payload.get("transactionId")
            self._confirm(payment, now, transaction_id=transaction_id, source="callback")
        elif paid_amount > 0:
            self._fail(payment, {"error": "Amount mismatch", "received": paid_amount, "expected": payment.amount})
        elif claimed_status in CALLBACK_FAILURE_STATUSES:
            self._fail(payment, {"error": "Payment failed", "callback_status": claimed_status})
        elif not claim_matches:
            logger.warning(
                f"⚠️ Callback for payment {payment.id} claims amount {claimed_amount}; provider reports no payment"
            )
        else:
            logger.info(f"Callback for payment {payment.id}: provider reports no payment yet")

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    def verify(
        self,
        payment_id: str,
        admin: dict,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Manual confirmation: payment COMPLETED, appointment CONFIRMED"""
        payment = self.get_payment(payment_id)
        if payment.status == PaymentStatus.COMPLETED:
            raise StateError("This payment is already confirmed")

        appointment = payment.appointment
        if appointment.status not in (AppointmentStatus.PENDING, AppointmentStatus.PAID):
            raise StateError(f"Cannot confirm an appointment in status {appointment.status.value}")

        now = self.clock()
        metadata = dict(payment.metadata_ or {})
        metadata.update(
            {
                "verified_by": admin["id"],
                "verified_by_email": admin.get("email"),
                "notes": sanitize_text(notes),
            }
        )
        values = {
            Payment.status: PaymentStatus.COMPLETED,
            Payment.method: PaymentMethod.ADMIN_OVERRIDE,
            Payment.transaction_id: transaction_id or f"ADMIN-{int(now.timestamp() * 1000)}",
            Payment.paid_at: now,
            Payment.metadata_: metadata,
        }
        swapped = self._transition(
            payment,
            [payment.status],
            values,
            appointment_from=(AppointmentStatus.PENDING, AppointmentStatus.PAID),
            appointment_status=AppointmentStatus.CONFIRMED,
            appointment_required=True,
        )
        if not swapped:
            raise ConflictError("Payment or appointment changed, please reload")

        logger.info(f"✅ Payment {payment.id} verified by admin {admin['id']}; appointment {appointment.id} CONFIRMED")
        return self.appointments.get_appointment(self.db, appointment.id)

    def refund(self, payment_id: str, reason: str) -> dict:
        """Bookkeeping refund; the appointment status is left as is"""
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.COMPLETED:
            raise StateError("Only completed payments can be refunded")

        values = {
            Payment.status: PaymentStatus.REFUNDED,
            Payment.refunded_at: self.clock(),
            Payment.refund_reason: sanitize_text(reason),
        }
        if not self._transition(payment, [PaymentStatus.COMPLETED], values):
            raise StateError("Only completed payments can be refunded")

        logger.info(f"↩️ Payment {payment.id} refunded: {reason}")
        return {"success": True, "message": "Payment refunded"}

    def simulate_payment(self, payment_id: str) -> Appointment:
        """Development helper: confirm a pending payment as if the provider reported it paid"""
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise StateError("This payment has already been processed")

        now = self.clock()
        if is_expired(payment, now):
            self._expire(payment)
            raise StateError(EXPIRED_MESSAGE)

        self._confirm(payment, now, transaction_id=f"SIM-{int(now.timestamp() * 1000)}", source="simulated")
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.COMPLETED:
            raise StateError(STATUS_MESSAGES[payment.status])
        return self.appointments.get_appointment(self.db, payment.appointment_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.repo.get_payment(self.db, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    def list_for_appointment(self, appointment_id: str) -> list[Payment]:
        return self.repo.list_for_appointment(self.db, appointment_id)

    def get_stats(self) -> dict:
        day_start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.repo.get_stats(self.db, day_start, day_start + timedelta(days=1))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, payment: Payment, expected, values: dict, **kwargs) -> bool:
        payment_id, appointment_id = payment.id, payment.appointment_id
        try:
            return self.repo.transition(
                self.db, payment_id, expected, values, appointment_id=appointment_id, **kwargs
            )
        except IntegrityError as e:
            raise ConflictError(SLOT_TAKEN_MESSAGE) from e

    def _confirm(self, payment: Payment, now: datetime, transaction_id: Optional[str], source: str) -> bool:
        """PENDING -> COMPLETED with appointment PENDING -> PAID, only while unexpired"""
        payment_id = payment.id
        metadata = dict(payment.metadata_ or {})
        metadata["confirmed_via"] = source
        values = {
            Payment.status: PaymentStatus.COMPLETED,
            Payment.transaction_id: transaction_id,
            Payment.paid_at: now,
            Payment.metadata_: metadata,
        }
        swapped = self._transition(
            payment,
            [PaymentStatus.PENDING],
            values,
            unexpired_at=now,
            appointment_from=(AppointmentStatus.PENDING,),
            appointment_status=AppointmentStatus.PAID,
        )
        if swapped:
            logger.info(f"✅ Payment {payment_id} COMPLETED via {source} (txn={transaction_id})")
        else:
            logger.info(f"Payment {payment_id} was not pending or had expired; confirmation skipped")
        return swapped

    def _expire(self, payment: Payment) -> None:
        payment_id = payment.id
        if self._transition(payment, [PaymentStatus.PENDING], {Payment.status: PaymentStatus.EXPIRED}):
            logger.info(f"⌛ Payment {payment_id} EXPIRED")

    def _fail(self, payment: Payment, details: dict) -> None:
        payment_id = payment.id
        metadata = dict(payment.metadata_ or {})
        metadata.update(details)
        values = {Payment.status: PaymentStatus.FAILED, Payment.metadata_: metadata}
        if self._transition(payment, [PaymentStatus.PENDING], values):
            logger.warning(f"❌ Payment {payment_id} FAILED: {details}")

    @staticmethod
    def _provider_transaction_id(result: dict) -> Optional[str]:
        rows = result.get("rows") or []
        if rows and rows[0].get("payment_id"):
            return str(rows[0]["payment_id"])
        return None
