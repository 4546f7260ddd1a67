"""Scheduling repository - Database operations for schedules and slot occupancy"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ACTIVE_APPOINTMENT_STATUSES, Appointment, DayOfWeek, Doctor, Schedule


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def get_doctor(db: Session, doctor_id: str) -> Optional[Doctor]:
        """Get doctor by ID"""
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def get_active_schedule(
        db: Session, doctor_id: str, day_of_week: DayOfWeek
    ) -> Optional[Schedule]:
        """Get the active schedule of a doctor for a weekday"""
        return (
            db.query(Schedule)
            .filter(
                Schedule.doctor_id == doctor_id,
                Schedule.day_of_week == day_of_week,
                Schedule.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def get_schedules(db: Session, doctor_id: str) -> list[Schedule]:
        """Get all schedule rows (active and inactive) for a doctor"""
        return db.query(Schedule).filter(Schedule.doctor_id == doctor_id).all()

    @staticmethod
    def get_schedule_by_id(db: Session, schedule_id: str) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_booked_times(db: Session, doctor_id: str, on_date: date) -> set[str]:
        """Times already taken by live appointments on a date"""
        rows = (
            db.query(Appointment.time)
            .filter(
                Appointment.doctor_id == doctor_id,
                Appointment.date == on_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .all()
        )
        return {row.time for row in rows}
