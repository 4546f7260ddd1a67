"""Appointments router - Public booking and admin appointment management"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import Appointment, AppointmentStatus
from ...rate_limiter import create_rate_limiter
from ...shared.clock import Clock, get_clock
from ...shared.dependencies import get_payment_provider
from .booking_service import BookingService
from .schemas import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    DoctorSummary,
    Pagination,
    PatientResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

# 10 booking attempts per minute per IP
booking_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="booking")


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    provider=Depends(get_payment_provider),
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, clock, provider)


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patientId=appointment.patient_id,
        doctorId=appointment.doctor_id,
        serviceId=appointment.service_id,
        date=appointment.date,
        time=appointment.time,
        status=appointment.status,
        notes=appointment.notes,
        createdAt=appointment.created_at,
        patient=PatientResponse.model_validate(appointment.patient) if appointment.patient else None,
        doctor=DoctorSummary.model_validate(appointment.doctor) if appointment.doctor else None,
    )


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    _: None = Depends(booking_rate_limit),
    service: BookingService = Depends(get_booking_service),
):
    """Book a time slot (public)"""
    return to_appointment_response(service.create_appointment(data))


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    doctorId: Optional[str] = None,
    status: Optional[AppointmentStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: dict = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    """Filtered, paginated appointment list (admin)"""
    appointments, total = service.list_appointments(date, doctorId, status, page, limit)
    return AppointmentListResponse(
        data=[to_appointment_response(a) for a in appointments],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            totalPages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
):
    return to_appointment_response(service.get_appointment(appointment_id))


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: str,
    data: AppointmentStatusUpdate,
    admin: dict = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    """Change appointment status (admin)"""
    logger.info(f"Admin {admin['id']} sets appointment {appointment_id} to {data.status.value}")
    return to_appointment_response(await service.update_status(appointment_id, data.status))


@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a pending or confirmed appointment"""
    return await service.cancel_appointment(appointment_id)
