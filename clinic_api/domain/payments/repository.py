"""Payment repository - Database operations for payments"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models import (
    Appointment,
    AppointmentStatus,
    Payment,
    PaymentStatus,
    PaymentType,
)


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get_payment(db: Session, payment_id: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .options(
                joinedload(Payment.appointment).joinedload(Appointment.patient),
                joinedload(Payment.appointment).joinedload(Appointment.doctor),
            )
            .filter(Payment.id == payment_id)
            .first()
        )

    @staticmethod
    def get_pending_booking_fee(db: Session, appointment_id: str) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(
                Payment.appointment_id == appointment_id,
                Payment.type == PaymentType.BOOKING_FEE,
                Payment.status == PaymentStatus.PENDING,
            )
            .first()
        )

    @staticmethod
    def find_by_reference(db: Session, reference: str) -> Optional[Payment]:
        """Look up by provider invoice id, then by our sender invoice number"""
        payment = db.query(Payment).filter(Payment.invoice_id == reference).first()
        if payment:
            return payment
        return (
            db.query(Payment)
            .filter(Payment.metadata_["sender_invoice_no"].as_string() == reference)
            .first()
        )

    @staticmethod
    def list_for_appointment(db: Session, appointment_id: str) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.appointment_id == appointment_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    @staticmethod
    def create_payment(db: Session, **payment_data) -> Payment:
        """
        Insert a payment. Raises IntegrityError when another pending booking-fee
        payment already exists for the appointment.
        """
        payment = Payment(**payment_data)
        db.add(payment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        db.refresh(payment)
        return payment

    @staticmethod
    def transition(
        db: Session,
        payment_id: str,
        expected: Iterable[PaymentStatus],
        values: dict,
        unexpired_at: Optional[datetime] = None,
        appointment_id: Optional[str] = None,
        appointment_from: Iterable[AppointmentStatus] = (),
        appointment_status: Optional[AppointmentStatus] = None,
        appointment_required: bool = False,
    ) -> bool:
        """
        Compare-and-swap a payment out of one of the expected statuses.

        When unexpired_at is given the row must also still have expires_at after it.
        When appointment_status is given the appointment moves to it (only from
        appointment_from) in the same transaction. With appointment_required the
        whole swap is abandoned if the appointment has left appointment_from.
        Returns False without writing anything when a guard fails. IntegrityError from
        the appointment update rolls back both rows and propagates.
        """
        conditions = [Payment.id == payment_id, Payment.status.in_(list(expected))]
        if unexpired_at is not None:
            conditions.append(Payment.expires_at > unexpired_at)

        try:
            result = db.execute(
                update(Payment)
                .where(*conditions)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return False

            if appointment_status is not None:
                moved = db.execute(
                    update(Appointment)
                    .where(
                        Appointment.id == appointment_id,
                        Appointment.status.in_(list(appointment_from)),
                    )
                    .values(status=appointment_status)
                    .execution_options(synchronize_session=False)
                )
                if appointment_required and moved.rowcount != 1:
                    db.rollback()
                    return False
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        return True

    @staticmethod
    def get_stats(db: Session, day_start: datetime, day_end: datetime) -> dict:
        """Counts and revenue totals, overall and for one day"""
        completed = Payment.status == PaymentStatus.COMPLETED
        paid_today = completed & (Payment.paid_at >= day_start) & (Payment.paid_at < day_end)

        def count(*conditions) -> int:
            return db.query(func.count(Payment.id)).filter(*conditions).scalar() or 0

        def revenue(*conditions) -> int:
            return db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(*conditions).scalar() or 0

        return {
            "totalPayments": count(),
            "completedPayments": count(completed),
            "pendingPayments": count(Payment.status == PaymentStatus.PENDING),
            "todayPayments": count(paid_today),
            "totalRevenue": int(revenue(completed)),
            "todayRevenue": int(revenue(paid_today)),
        }
