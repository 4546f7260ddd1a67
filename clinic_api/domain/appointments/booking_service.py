"""Booking service - Validates and records appointment requests"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import ConflictError, NotFoundError, StateError, ValidationError
from ...models import Appointment, AppointmentStatus, Doctor
from ...shared.clock import Clock
from ...shared.validators import parse_iso_date
from ...utils.sanitization import sanitize_text
from ..scheduling.repository import ScheduleRepository
from ..scheduling.time_calculator import day_of_week, is_on_grid, is_within_window, to_minutes
from .repository import AppointmentRepository
from .schemas import AppointmentCreate

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time is already taken"

# Allowed status changes; terminal statuses map to an empty set
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.PAID, AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.PAID: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Statuses a patient may cancel from
PATIENT_CANCELLABLE = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in APPOINTMENT_TRANSITIONS[current]


class BookingService:
    """Service layer for appointment booking and status changes"""

    def __init__(self, db: Session, clock: Clock = datetime.now, provider=None):
        self.db = db
        self.clock = clock
        # Payment provider; unpaid invoices of cancelled appointments are cancelled there
        self.provider = provider
        self.repo = AppointmentRepository()
        self.schedules = ScheduleRepository()

    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def create_appointment(self, data: AppointmentCreate) -> Appointment:
        """
        Book a slot. Checks run in order and the first failure wins:

        1. date not in the past
        2. doctor exists and is active
        3. doctor has an active schedule that weekday
        4. time inside [start, end) of that schedule
        5. time on the slot grid
        6. slot not already held
        7. for today, time still in the future

        The insert itself is guarded by a unique index, so a request that passes
        step 6 concurrently with another one still fails with a conflict.
        """
        now = self.clock()
        time = data.time

        if data.date < now.date():
            raise ValidationError("Cannot select a past date")

        doctor = self._get_active_doctor(data.doctorId)

        schedule = self.schedules.get_active_schedule(self.db, doctor.id, day_of_week(data.date))
        if not schedule:
            raise ValidationError("Doctor does not work on this day")

        if not is_within_window(time, schedule.start_time, schedule.end_time):
            raise ValidationError("Selected time is outside the doctor's working hours")

        if not is_on_grid(time, schedule.start_time, schedule.slot_duration):
            raise ValidationError("Invalid time slot")

        if self.repo.find_active_appointment(self.db, doctor.id, data.date, time):
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        if data.date == now.date() and to_minutes(time) <= now.hour * 60 + now.minute:
            raise ValidationError("Cannot select a past time")

        if data.serviceId and not self.repo.get_active_service(self.db, data.serviceId):
            raise NotFoundError("Service not found")

        patient = self.repo.upsert_patient(
            self.db, phone=data.patientPhone, name=data.patientName, email=data.patientEmail
        )

        try:
            appointment = self.repo.create_appointment(
                self.db,
                patient_id=patient.id,
                doctor_id=doctor.id,
                service_id=data.serviceId or None,
                date=data.date,
                time=time,
                notes=sanitize_text(data.notes),
                status=AppointmentStatus.PENDING,
            )
        except IntegrityError as e:
            logger.warning(f"⚠️ Slot race lost for doctor {doctor.id} on {data.date} {time}")
            raise ConflictError(SLOT_TAKEN_MESSAGE) from e

        logger.info(
            f"✅ Appointment {appointment.id} booked: doctor={doctor.id} "
            f"date={appointment.date} time={appointment.time} patient={patient.id}"
        )
        return self.get_appointment(appointment.id)

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        """Admin status change following APPOINTMENT_TRANSITIONS"""
        appointment = self.get_appointment(appointment_id)
        current = appointment.status

        if current == status:
            return appointment
        if not can_transition(current, status):
            raise StateError(f"Cannot change appointment status from {current.value} to {status.value}")

        return await self._set_status(appointment, status)

    async def cancel_appointment(self, appointment_id: str) -> dict:
        """Patient cancellation. The row is kept with status CANCELLED."""
        appointment = self.get_appointment(appointment_id)
        if appointment.status not in PATIENT_CANCELLABLE:
            raise StateError("This appointment cannot be cancelled")

        await self._set_status(appointment, AppointmentStatus.CANCELLED)
        return {"success": True, "message": "Appointment cancelled"}

    def list_appointments(
        self,
        on_date: Optional[str] = None,
        doctor_id: Optional[str] = None,
        status: Optional[AppointmentStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Appointment], int]:
        parsed_date = None
        if on_date:
            try:
                parsed_date = parse_iso_date(on_date)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        return self.repo.list_appointments(self.db, parsed_date, doctor_id, status, page, limit)

    def _get_active_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.schedules.get_doctor(self.db, doctor_id)
        if not doctor or not doctor.is_active:
            raise NotFoundError("Doctor not found")
        return doctor

    async def _set_status(self, appointment: Appointment, status: AppointmentStatus) -> Appointment:
        appointment_id, previous = appointment.id, appointment.status
        open_invoices = []
        if status == AppointmentStatus.CANCELLED:
            open_invoices = self.repo.pending_invoice_ids(self.db, appointment_id)

        if not self.repo.update_status(self.db, appointment_id, previous, status):
            raise ConflictError("Appointment status changed, please reload")

        logger.info(f"Appointment {appointment_id} status: {previous.value} → {status.value}")
        if open_invoices:
            logger.info(f"⌛ Booking fee for appointment {appointment_id} expired: {open_invoices}")
            if self.provider:
                for invoice_id in open_invoices:
                    await self.provider.cancel_invoice(invoice_id)
        return self.get_appointment(appointment_id)
