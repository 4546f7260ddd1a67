"""Slot availability - turns a doctor's weekly schedule into bookable slots for a date"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models import Doctor
from ...shared.clock import Clock
from ...shared.validators import parse_iso_date
from .repository import ScheduleRepository
from .time_calculator import day_of_week, generate_slot_times, is_slot_in_past

logger = logging.getLogger(__name__)

NO_SCHEDULE_MESSAGE = "Doctor does not work on this day"


class AvailabilityService:
    """Read-only slot generation"""

    def __init__(self, db: Session, clock: Clock = datetime.now):
        self.db = db
        self.clock = clock
        self.repo = ScheduleRepository()

    def get_active_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor or not doctor.is_active:
            raise NotFoundError("Doctor not found")
        return doctor

    @staticmethod
    def parse_date(value: str) -> date:
        try:
            return parse_iso_date(value)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def get_available_slots(self, doctor_id: str, on_date: str) -> dict:
        """
        Ordered slots for a doctor on a date.

        Returns {"date", "doctorId", "slots": [{"time", "available"}], "message"?}.
        A day without an active schedule is not an error: slots is empty and
        message explains why.
        """
        slot_date = self.parse_date(on_date)
        now = self.clock()
        if slot_date < now.date():
            raise ValidationError("Cannot select a past date")

        self.get_active_doctor(doctor_id)

        schedule = self.repo.get_active_schedule(self.db, doctor_id, day_of_week(slot_date))
        if not schedule:
            return self._result(on_date, doctor_id, [], NO_SCHEDULE_MESSAGE)

        booked = self.repo.get_booked_times(self.db, doctor_id, slot_date)
        slots = [
            {
                "time": slot_time,
                "available": slot_time not in booked
                and not is_slot_in_past(slot_date, slot_time, now),
            }
            for slot_time in generate_slot_times(
                schedule.start_time, schedule.end_time, schedule.slot_duration
            )
        ]
        logger.debug(
            f"Generated {len(slots)} slots for doctor {doctor_id} on {slot_date} "
            f"({len(booked)} booked)"
        )
        return self._result(on_date, doctor_id, slots)

    @staticmethod
    def _result(on_date: str, doctor_id: str, slots: list, message: Optional[str] = None) -> dict:
        result = {"date": on_date, "doctorId": doctor_id, "slots": slots}
        if message:
            result["message"] = message
        return result
