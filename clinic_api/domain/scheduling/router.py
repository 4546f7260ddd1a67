"""Scheduling router - Slot availability and admin schedule management"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import Schedule
from ...shared.clock import Clock, get_clock
from .availability_service import AvailabilityService
from .schedule_service import ScheduleService
from .schemas import (
    ScheduleBulkRequest,
    ScheduleResponse,
    ScheduleUpsertRequest,
    SlotsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])


def get_availability_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db, clock)


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def to_schedule_response(schedule: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=schedule.id,
        doctorId=schedule.doctor_id,
        dayOfWeek=schedule.day_of_week,
        startTime=schedule.start_time,
        endTime=schedule.end_time,
        slotDuration=schedule.slot_duration,
        isActive=schedule.is_active,
    )


# ============================================================================
# PUBLIC SLOT AVAILABILITY
# ============================================================================


@router.get("/doctors/{doctor_id}/slots", response_model=SlotsResponse, response_model_exclude_none=True)
async def get_available_slots(
    doctor_id: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable time slots of a doctor for one day"""
    return service.get_available_slots(doctor_id, date)


# ============================================================================
# ADMIN SCHEDULE MANAGEMENT
# ============================================================================


@router.get("/schedules/{doctor_id}", response_model=list[ScheduleResponse])
async def get_schedules(
    doctor_id: str,
    _admin: dict = Depends(get_current_admin),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Get a doctor's weekly schedule rows"""
    return [to_schedule_response(s) for s in service.get_schedules(doctor_id)]


@router.post("/schedules", response_model=ScheduleResponse)
async def upsert_schedule(
    data: ScheduleUpsertRequest,
    _admin: dict = Depends(get_current_admin),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create or update the schedule for one weekday"""
    return to_schedule_response(service.upsert_schedule(data))


@router.post("/schedules/bulk", response_model=list[ScheduleResponse])
async def replace_schedules(
    data: ScheduleBulkRequest,
    _admin: dict = Depends(get_current_admin),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Replace a doctor's whole weekly schedule"""
    return [to_schedule_response(s) for s in service.replace_schedules(data)]


@router.delete("/schedules/{schedule_id}")
async def delete_schedule(
    schedule_id: str,
    _admin: dict = Depends(get_current_admin),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Deactivate a schedule row"""
    return service.deactivate_schedule(schedule_id)
