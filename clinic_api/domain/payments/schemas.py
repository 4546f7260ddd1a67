"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import PaymentMethod, PaymentStatus, PaymentType
from ..appointments.schemas import AppointmentResponse


class CreateInvoiceRequest(BaseModel):
    appointmentId: str

    @field_validator("appointmentId")
    @classmethod
    def validate_appointment_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Appointment ID is required")
        return v.strip()


class InvoiceResponse(BaseModel):
    """QR invoice shown to the patient"""

    paymentId: str
    amount: int
    qrCode: Optional[str] = None
    qrImage: Optional[str] = None
    qrUrl: Optional[str] = None
    invoiceId: Optional[str] = None
    expiresAt: Optional[datetime] = None


class PaymentStatusResponse(BaseModel):
    paymentId: str
    appointmentId: str
    amount: int
    status: PaymentStatus
    paidAt: Optional[datetime] = None
    message: Optional[str] = None
    appointment: Optional[AppointmentResponse] = None


class VerifyPaymentRequest(BaseModel):
    """Admin manual confirmation"""

    transactionId: Optional[str] = None
    notes: Optional[str] = None


class RefundRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Refund reason is required")
        return v.strip()


class PaymentResponse(BaseModel):
    id: str
    appointmentId: str
    amount: int
    type: PaymentType
    status: PaymentStatus
    method: Optional[PaymentMethod] = None
    invoiceId: Optional[str] = None
    transactionId: Optional[str] = None
    paidAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    refundedAt: Optional[datetime] = None
    refundReason: Optional[str] = None
    createdAt: Optional[datetime] = None


class PaymentStatsResponse(BaseModel):
    totalPayments: int
    completedPayments: int
    pendingPayments: int
    todayPayments: int
    totalRevenue: int
    todayRevenue: int
