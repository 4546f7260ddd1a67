"""Payments router - QR invoices, status polling, provider callback and admin actions"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_admin
from ...database import get_db
from ...errors import NotFoundError
from ...models import Payment
from ...rate_limiter import create_rate_limiter
from ...shared.clock import Clock, get_clock
from ...shared.dependencies import get_payment_provider
from ..appointments.router import to_appointment_response
from ..appointments.schemas import AppointmentResponse
from .invoice_service import STATUS_MESSAGES, PaymentInvoiceService
from .providers import PaymentProvider
from .schemas import (
    CreateInvoiceRequest,
    InvoiceResponse,
    PaymentResponse,
    PaymentStatsResponse,
    PaymentStatusResponse,
    RefundRequest,
    VerifyPaymentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

invoice_rate_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="invoice")


def get_invoice_service(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    clock: Clock = Depends(get_clock),
) -> PaymentInvoiceService:
    """Dependency injection for PaymentInvoiceService"""
    return PaymentInvoiceService(db, provider, clock)


def to_invoice_response(payment: Payment) -> InvoiceResponse:
    return InvoiceResponse(
        paymentId=payment.id,
        amount=payment.amount,
        qrCode=payment.qr_code,
        qrImage=payment.qr_image,
        qrUrl=payment.qr_url,
        invoiceId=payment.invoice_id,
        expiresAt=payment.expires_at,
    )


def to_payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        appointmentId=payment.appointment_id,
        amount=payment.amount,
        type=payment.type,
        status=payment.status,
        method=payment.method,
        invoiceId=payment.invoice_id,
        transactionId=payment.transaction_id,
        paidAt=payment.paid_at,
        expiresAt=payment.expires_at,
        refundedAt=payment.refunded_at,
        refundReason=payment.refund_reason,
        createdAt=payment.created_at,
    )


@router.post("/create-invoice", response_model=InvoiceResponse)
async def create_invoice(
    data: CreateInvoiceRequest,
    response: Response,
    _: None = Depends(invoice_rate_limit),
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Generate (or return the still-valid) QR invoice for a pending appointment"""
    payment, created = await service.create_invoice(data.appointmentId)
    response.status_code = 201 if created else 200
    return to_invoice_response(payment)


@router.get("/check/{payment_id}", response_model=PaymentStatusResponse, response_model_exclude_none=True)
async def check_payment(
    payment_id: str,
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Poll payment status; reconciles with the provider while pending"""
    payment = await service.check_status(payment_id)
    return PaymentStatusResponse(
        paymentId=payment.id,
        appointmentId=payment.appointment_id,
        amount=payment.amount,
        status=payment.status,
        paidAt=payment.paid_at,
        message=STATUS_MESSAGES[payment.status],
        appointment=to_appointment_response(payment.appointment) if payment.appointment else None,
    )


@router.post("/callback")
async def payment_callback(
    request: Request,
    invoice_id: Optional[str] = None,
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Provider webhook. Always answers 200 {"success": true}."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("⚠️ Payment callback with unreadable body")
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    logger.info(f"📨 Payment callback received: invoice_id={invoice_id} body_keys={sorted(payload)}")
    return await service.handle_callback(payload, invoice_id)


@router.get("/appointment/{appointment_id}", response_model=list[PaymentResponse])
async def get_appointment_payments(
    appointment_id: str,
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Payments of an appointment, newest first"""
    return [to_payment_response(p) for p in service.list_for_appointment(appointment_id)]


@router.get("/stats", response_model=PaymentStatsResponse)
async def get_payment_stats(
    _admin: dict = Depends(get_current_admin),
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Payment counts and revenue (admin)"""
    return service.get_stats()


@router.post("/simulate-payment/{payment_id}", response_model=AppointmentResponse)
async def simulate_payment(
    payment_id: str,
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Mark a pending payment as paid (development only)"""
    if config.ENVIRONMENT == "production":
        raise NotFoundError("Not found")
    return to_appointment_response(service.simulate_payment(payment_id))


@router.post("/{payment_id}/verify", response_model=AppointmentResponse)
async def verify_payment(
    payment_id: str,
    data: Optional[VerifyPaymentRequest] = None,
    admin: dict = Depends(get_current_admin),
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Manually confirm a payment (admin)"""
    data = data or VerifyPaymentRequest()
    appointment = service.verify(payment_id, admin, data.transactionId, data.notes)
    return to_appointment_response(appointment)


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: str,
    data: RefundRequest,
    _admin: dict = Depends(get_current_admin),
    service: PaymentInvoiceService = Depends(get_invoice_service),
):
    """Refund a completed payment (admin)"""
    return service.refund(payment_id, data.reason)
