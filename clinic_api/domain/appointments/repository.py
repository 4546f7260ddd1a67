"""Appointment repository - Database operations for appointments and patients"""

from datetime import date
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentStatus,
    Patient,
    Payment,
    PaymentStatus,
    PaymentType,
    Service,
)


def _pending_booking_fee(appointment_id: str) -> tuple:
    return (
        Payment.appointment_id == appointment_id,
        Payment.type == PaymentType.BOOKING_FEE,
        Payment.status == PaymentStatus.PENDING,
    )


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: str) -> Optional[Appointment]:
        """Get appointment with patient and doctor loaded"""
        return (
            db.query(Appointment)
            .options(joinedload(Appointment.patient), joinedload(Appointment.doctor))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def find_active_appointment(
        db: Session, doctor_id: str, on_date: date, time: str
    ) -> Optional[Appointment]:
        """Live appointment occupying doctor/date/time, if any"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.doctor_id == doctor_id,
                Appointment.date == on_date,
                Appointment.time == time,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .first()
        )

    @staticmethod
    def get_active_service(db: Session, service_id: str) -> Optional[Service]:
        return (
            db.query(Service)
            .filter(Service.id == service_id, Service.is_active.is_(True))
            .first()
        )

    @staticmethod
    def upsert_patient(
        db: Session, phone: str, name: str, email: Optional[str] = None
    ) -> Patient:
        """
        Find patient by phone or create one. Name and email are refreshed when they
        differ; a missing email never clears a stored one.
        """
        patient = db.query(Patient).filter(Patient.phone == phone).first()

        if not patient:
            patient = Patient(phone=phone, name=name, email=email)
            db.add(patient)
            try:
                db.commit()
            except IntegrityError:
                # Same phone registered concurrently
                db.rollback()
                patient = db.query(Patient).filter(Patient.phone == phone).one()
            else:
                db.refresh(patient)
                return patient

        changed = False
        if patient.name != name:
            patient.name = name
            changed = True
        if email and patient.email != email:
            patient.email = email
            changed = True

        if changed:
            db.commit()
            db.refresh(patient)
        return patient

    @staticmethod
    def create_appointment(db: Session, **appointment_data) -> Appointment:
        """
        Insert an appointment. Raises IntegrityError when the slot is already held
        (partial unique index on doctor/date/time for live statuses).
        """
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        db.refresh(appointment)
        return appointment

    @staticmethod
    def update_status(
        db: Session, appointment_id: str, current: AppointmentStatus, status: AppointmentStatus
    ) -> bool:
        """
        Compare-and-swap the appointment from current to status. Cancelling also
        expires its pending booking-fee payment in the same commit, so a late
        payment on that QR code cannot confirm anything. Returns False when the
        appointment was no longer in current.
        """
        result = db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == current)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            return False

        if status == AppointmentStatus.CANCELLED:
            db.execute(
                update(Payment)
                .where(*_pending_booking_fee(appointment_id))
                .values(status=PaymentStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        db.commit()
        return True

    @staticmethod
    def pending_invoice_ids(db: Session, appointment_id: str) -> list[str]:
        """Provider invoice ids of the appointment's unpaid booking-fee payments"""
        rows = db.query(Payment.invoice_id).filter(*_pending_booking_fee(appointment_id)).all()
        return [row.invoice_id for row in rows if row.invoice_id]

    @staticmethod
    def list_appointments(
        db: Session,
        on_date: Optional[date] = None,
        doctor_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Appointment], int]:
        """Filtered, paginated appointments (newest date first, earliest time first)"""
        query = db.query(Appointment)
        if on_date:
            query = query.filter(Appointment.date == on_date)
        if doctor_id:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if status:
            query = query.filter(Appointment.status == status)

        total = query.with_entities(func.count(Appointment.id)).scalar() or 0
        appointments = (
            query.options(joinedload(Appointment.patient), joinedload(Appointment.doctor))
            .order_by(Appointment.date.desc(), Appointment.time.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return appointments, total
