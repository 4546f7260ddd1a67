"""Schedule service - Admin management of doctors' weekly working hours"""

import logging

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models import Doctor, Schedule
from .repository import ScheduleRepository
from .schemas import ScheduleBulkRequest, ScheduleItem, ScheduleUpsertRequest
from .time_calculator import WEEKDAY_ORDER

logger = logging.getLogger(__name__)


class ScheduleService:
    """Service layer for schedule business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()

    def _get_doctor(self, doctor_id: str) -> Doctor:
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    def get_schedules(self, doctor_id: str) -> list[Schedule]:
        """All schedule rows of a doctor, Monday first"""
        self._get_doctor(doctor_id)
        schedules = self.repo.get_schedules(self.db, doctor_id)
        return sorted(schedules, key=lambda s: WEEKDAY_ORDER[s.day_of_week])

    def upsert_schedule(self, data: ScheduleUpsertRequest) -> Schedule:
        """Create or update (and reactivate) the schedule for one weekday"""
        self._get_doctor(data.doctorId)

        existing = {s.day_of_week: s for s in self.repo.get_schedules(self.db, data.doctorId)}
        schedule = self._apply(data.doctorId, data, existing.get(data.dayOfWeek))

        self.db.commit()
        self.db.refresh(schedule)
        logger.info(
            f"✅ Schedule saved for doctor {data.doctorId}: {data.dayOfWeek.value} "
            f"{data.startTime}-{data.endTime} every {data.slotDuration}min"
        )
        return schedule

    def replace_schedules(self, data: ScheduleBulkRequest) -> list[Schedule]:
        """
        Replace a doctor's weekly schedule with the submitted set in one transaction.

        Rows for submitted weekdays are updated and activated, rows for other weekdays
        are deactivated, missing weekdays are inserted. Nothing is committed if any
        step fails.
        """
        self._get_doctor(data.doctorId)

        days = [item.dayOfWeek for item in data.schedules]
        if len(days) != len(set(days)):
            raise ValidationError("Each day of week may appear only once")

        existing = {s.day_of_week: s for s in self.repo.get_schedules(self.db, data.doctorId)}
        desired = {item.dayOfWeek: item for item in data.schedules}

        try:
            results = [
                self._apply(data.doctorId, item, existing.get(day)) for day, item in desired.items()
            ]
            deactivated = 0
            for day, schedule in existing.items():
                if day not in desired and schedule.is_active:
                    schedule.is_active = False
                    deactivated += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for schedule in results:
            self.db.refresh(schedule)

        logger.info(
            f"✅ Schedule set replaced for doctor {data.doctorId}: "
            f"{len(results)} active day(s), {deactivated} deactivated"
        )
        return sorted(results, key=lambda s: WEEKDAY_ORDER[s.day_of_week])

    def deactivate_schedule(self, schedule_id: str) -> dict:
        """Soft-delete a schedule row"""
        schedule = self.repo.get_schedule_by_id(self.db, schedule_id)
        if not schedule:
            raise NotFoundError("Schedule not found")

        schedule.is_active = False
        self.db.commit()
        logger.info(f"Schedule {schedule_id} deactivated")
        return {"success": True, "message": "Schedule deleted"}

    def _apply(self, doctor_id: str, item: ScheduleItem, schedule: Schedule | None) -> Schedule:
        if schedule is None:
            schedule = Schedule(doctor_id=doctor_id, day_of_week=item.dayOfWeek)
            self.db.add(schedule)

        schedule.start_time = item.startTime
        schedule.end_time = item.endTime
        schedule.slot_duration = item.slotDuration
        schedule.is_active = True
        return schedule
