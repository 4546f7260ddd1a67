import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a unique public ID (prevents enumeration of bookings and payments)"""
    return str(uuid.uuid4())


# ============================================
# ENUMS
# ============================================


class DayOfWeek(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"


class PaymentType(str, enum.Enum):
    BOOKING_FEE = "BOOKING_FEE"


class PaymentMethod(str, enum.Enum):
    QPAY = "QPAY"
    SANDBOX = "SANDBOX"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"


# Statuses that occupy a (doctor, date, time) slot
ACTIVE_APPOINTMENT_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.PAID,
)


def _enum_column(enum_cls):
    return SQLEnum(enum_cls, native_enum=False, length=20, validate_strings=True)


# ============================================
# CLINIC
# ============================================


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    specialization = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedules = relationship("Schedule", back_populates="doctor")
    appointments = relationship("Appointment", back_populates="doctor")


class Service(Base):
    """Clinic service catalog entry (managed by admin CRUD, read-only here)"""

    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Schedule(Base):
    """Weekly working window of a doctor. One row per (doctor, weekday)."""

    __tablename__ = "schedules"
    __table_args__ = (UniqueConstraint("doctor_id", "day_of_week", name="uq_schedules_doctor_day"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    doctor_id = Column(String(36), ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(_enum_column(DayOfWeek), nullable=False)
    start_time = Column(String(5), nullable=False)  # "09:00"
    end_time = Column(String(5), nullable=False)  # "17:00"
    slot_duration = Column(Integer, nullable=False, default=30)  # minutes
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="schedules")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=generate_id)
    phone = Column(String(20), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="patient")


# ============================================
# BOOKING
# ============================================


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Double-booking guard: one live appointment per doctor/date/time
        Index(
            "uq_appointments_active_slot",
            "doctor_id",
            "date",
            "time",
            unique=True,
            sqlite_where=text("status IN ('PENDING', 'CONFIRMED', 'PAID')"),
            postgresql_where=text("status IN ('PENDING', 'CONFIRMED', 'PAID')"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    patient_id = Column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("doctors.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)  # "10:30"
    status = Column(
        _enum_column(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    service = relationship("Service")
    payments = relationship(
        "Payment", back_populates="appointment", order_by="Payment.created_at.desc()"
    )


class Payment(Base):
    """One payment attempt (provider invoice) for an appointment"""

    __tablename__ = "payments"
    __table_args__ = (
        # At most one open booking-fee invoice per appointment
        Index(
            "uq_payments_pending_booking_fee",
            "appointment_id",
            unique=True,
            sqlite_where=text("status = 'PENDING' AND type = 'BOOKING_FEE'"),
            postgresql_where=text("status = 'PENDING' AND type = 'BOOKING_FEE'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(_enum_column(PaymentType), nullable=False, default=PaymentType.BOOKING_FEE)
    status = Column(_enum_column(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    method = Column(_enum_column(PaymentMethod), nullable=True)

    # Provider invoice
    qr_code = Column(Text, nullable=True)  # QR payload text
    qr_image = Column(Text, nullable=True)  # Base64 PNG
    qr_url = Column(String(500), nullable=True)
    invoice_id = Column(String(255), unique=True, nullable=True, index=True)
    transaction_id = Column(String(255), nullable=True)

    paid_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    # sender_invoice_no (callback correlation id), verification notes, mismatch details
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointment = relationship("Appointment", back_populates="payments")
