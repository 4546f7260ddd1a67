"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import AppointmentStatus
from ...shared.validators import validate_email, validate_phone, validate_time_of_day


class AppointmentCreate(BaseModel):
    """Schema for the public booking form"""

    doctorId: str
    date: date
    time: str
    patientName: str
    patientPhone: str
    patientEmail: Optional[str] = None
    serviceId: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("doctorId")
    @classmethod
    def validate_doctor_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Please select a doctor")
        return v.strip()

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_of_day(v)

    @field_validator("patientName")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip() if v else v
        if not v:
            raise ValueError("Patient name is required")
        return v

    @field_validator("patientPhone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Phone number is required")
        return validate_phone(v)

    @field_validator("patientEmail")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return validate_email(v)
        return None


class AppointmentStatusUpdate(BaseModel):
    """Schema for admin status override"""

    status: AppointmentStatus


class PatientResponse(BaseModel):
    id: str
    name: str
    phone: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class DoctorSummary(BaseModel):
    id: str
    name: str
    specialization: Optional[str] = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    """Schema for appointment response"""

    id: str
    patientId: str
    doctorId: str
    serviceId: Optional[str] = None
    date: date
    time: str
    status: AppointmentStatus
    notes: Optional[str] = None
    createdAt: Optional[datetime] = None
    patient: Optional[PatientResponse] = None
    doctor: Optional[DoctorSummary] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class AppointmentListResponse(BaseModel):
    data: list[AppointmentResponse]
    pagination: Pagination
