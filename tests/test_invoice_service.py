from datetime import date, timedelta

import pytest
from conftest import NOW
from sqlalchemy import update

from clinic_api import config
from clinic_api.domain.appointments.booking_service import BookingService
from clinic_api.domain.appointments.schemas import AppointmentCreate
from clinic_api.domain.payments.invoice_service import STATUS_MESSAGES, PaymentInvoiceService
from clinic_api.domain.payments.repository import PaymentRepository
from clinic_api.errors import ConflictError, NotFoundError, StateError
from clinic_api.models import (
    Appointment,
    AppointmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)

ADMIN = {"id": "admin-1", "email": "admin@clinic.test"}


@pytest.fixture
def appointment(db, clock, doctor, monday_schedule):
    booking = BookingService(db, clock)
    return booking.create_appointment(
        AppointmentCreate(
            doctorId=doctor.id,
            date=date(2026, 10, 26),
            time="10:00",
            patientName="Saraa",
            patientPhone="99112233",
        )
    )


@pytest.fixture
def service(db, provider, clock):
    return PaymentInvoiceService(db, provider, clock)


def reload(db, payment_id):
    db.expire_all()
    payment = db.get(Payment, payment_id)
    return payment, db.get(Appointment, payment.appointment_id)


async def test_create_invoice(service, provider, appointment):
    payment, created = await service.create_invoice(appointment.id)

    assert created is True
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == config.BOOKING_FEE
    assert payment.method == PaymentMethod.QPAY
    assert payment.invoice_id == "INV-1"
    assert payment.qr_code == "qr:INV-1"
    assert payment.expires_at == NOW + timedelta(minutes=15)

    invoice = provider.invoices["INV-1"]
    assert invoice["receiver_code"] == "99112233"
    assert invoice["description"] == "Appointment booking fee - Dr. Bold"
    assert payment.metadata_["sender_invoice_no"] == invoice["sender_invoice_no"]


async def test_create_invoice_is_idempotent(service, provider, appointment):
    first, _ = await service.create_invoice(appointment.id)
    second, created = await service.create_invoice(appointment.id)

    assert created is False
    assert second.id == first.id
    assert second.invoice_id == first.invoice_id
    assert len(provider.invoices) == 1


async def test_create_invoice_replaces_expired_invoice(db, service, clock, appointment):
    first, _ = await service.create_invoice(appointment.id)
    first_id = first.id
    clock.advance(minutes=16)

    second, created = await service.create_invoice(appointment.id)

    assert created is True
    assert second.id != first_id
    assert reload(db, first_id)[0].status == PaymentStatus.EXPIRED


async def test_scenario_d_requires_pending_appointment(db, service, appointment):
    appointment.status = AppointmentStatus.CONFIRMED
    db.commit()

    with pytest.raises(StateError):
        await service.create_invoice(appointment.id)

    with pytest.raises(NotFoundError):
        await service.create_invoice("missing")


async def test_lost_invoice_race_cancels_provider_invoice(service, provider, appointment, monkeypatch):
    winner, _ = await service.create_invoice(appointment.id)
    winner_id = winner.id

    real_lookup = PaymentRepository.get_pending_booking_fee
    calls = []

    def lookup(db, appointment_id):
        calls.append(appointment_id)
        # the first lookup runs before the competing insert is visible
        return None if len(calls) == 1 else real_lookup(db, appointment_id)

    monkeypatch.setattr(PaymentRepository, "get_pending_booking_fee", staticmethod(lookup))

    payment, created = await service.create_invoice(appointment.id)

    assert created is False
    assert payment.id == winner_id
    assert provider.cancelled == ["INV-2"]


async def test_poll_confirms_payment_and_appointment_together(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    assert (await service.check_status(payment.id)).status == PaymentStatus.PENDING

    provider.pay(payment.invoice_id)
    checked = await service.check_status(payment.id)

    assert checked.status == PaymentStatus.COMPLETED
    stored, stored_appointment = reload(db, payment.id)
    assert stored.transaction_id == "TXN-INV-1"
    assert stored.paid_at == NOW
    assert stored_appointment.status == AppointmentStatus.PAID


async def test_underpaid_poll_stays_pending(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id, amount=1000)

    assert (await service.check_status(payment.id)).status == PaymentStatus.PENDING
    assert reload(db, payment.id)[1].status == AppointmentStatus.PENDING


async def test_scenario_e_expiry_beats_late_payment(db, service, provider, clock, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id)
    clock.advance(minutes=16)

    checked = await service.check_status(payment.id)

    assert checked.status == PaymentStatus.EXPIRED
    assert reload(db, payment.id)[1].status == AppointmentStatus.PENDING


async def test_provider_error_during_poll_returns_stored_status(service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.fail_checks = True

    assert (await service.check_status(payment.id)).status == PaymentStatus.PENDING


async def test_callback_verifies_with_provider(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    # body claims success but the provider has no payment yet
    assert await service.handle_callback({"invoiceId": payment.invoice_id, "status": "SUCCESS"}) == {
        "success": True
    }
    assert reload(db, payment.id)[0].status == PaymentStatus.PENDING

    provider.pay(payment.invoice_id)
    await service.handle_callback({"invoiceId": payment.invoice_id})

    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.metadata_["confirmed_via"] == "callback"
    assert stored_appointment.status == AppointmentStatus.PAID


async def test_callback_resolves_sender_invoice_number(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id)

    await service.handle_callback({}, query_invoice_id=payment.metadata_["sender_invoice_no"])

    assert reload(db, payment.id)[0].status == PaymentStatus.COMPLETED


async def test_callback_is_idempotent(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id)

    await service.handle_callback({"invoiceId": payment.invoice_id})
    first_paid_at = reload(db, payment.id)[0].paid_at
    result = await service.handle_callback({"invoiceId": payment.invoice_id, "status": "FAILED"})

    assert result == {"success": True}
    stored, _ = reload(db, payment.id)
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.paid_at == first_paid_at


async def test_callback_amount_mismatch_fails_payment(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id, amount=100)

    await service.handle_callback({"invoiceId": payment.invoice_id, "amount": 100, "status": "SUCCESS"})

    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.FAILED
    assert stored.metadata_["error"] == "Amount mismatch"
    assert stored.metadata_["received"] == 100
    assert stored.metadata_["expected"] == config.BOOKING_FEE
    assert stored_appointment.status == AppointmentStatus.PENDING


async def test_callback_amount_claim_alone_does_not_fail_payment(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    await service.handle_callback({"invoiceId": payment.invoice_id, "amount": 100, "status": "SUCCESS"})
    assert reload(db, payment.id)[0].status == PaymentStatus.PENDING

    provider.fail_checks = True
    await service.handle_callback({"invoiceId": payment.invoice_id, "amount": 100, "status": "SUCCESS"})
    assert reload(db, payment.id)[0].status == PaymentStatus.PENDING

    # the customer can still pay the invoice
    provider.fail_checks = False
    provider.pay(payment.invoice_id)
    await service.check_status(payment.id)
    assert reload(db, payment.id)[0].status == PaymentStatus.COMPLETED


async def test_callback_fallback_when_provider_unreachable(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.fail_checks = True

    await service.handle_callback(
        {"invoiceId": payment.invoice_id, "status": "SUCCESS", "transactionId": "T-77", "amount": config.BOOKING_FEE}
    )

    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.transaction_id == "T-77"
    assert stored.metadata_["confirmed_via"] == "callback_fallback"
    assert stored_appointment.status == AppointmentStatus.PAID


async def test_callback_after_expiry_is_not_honoured(db, service, provider, clock, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    provider.pay(payment.invoice_id)
    clock.advance(minutes=16)

    await service.handle_callback({"invoiceId": payment.invoice_id, "status": "SUCCESS"})

    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.EXPIRED
    assert stored_appointment.status == AppointmentStatus.PENDING


async def test_callback_explicit_failure(db, service, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    await service.handle_callback({"invoiceId": payment.invoice_id, "status": "FAILED"})

    assert reload(db, payment.id)[0].status == PaymentStatus.FAILED


async def test_callback_acknowledges_internal_errors(service, appointment, monkeypatch):
    def explode(db, reference):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(PaymentRepository, "find_by_reference", staticmethod(explode))

    assert await service.handle_callback({"invoiceId": "INV-1"}) == {"success": True}
    assert await service.handle_callback({"invoiceId": "unknown"}, "also-unknown") == {"success": True}


async def test_admin_verify(db, service, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    confirmed = service.verify(payment.id, ADMIN, notes="paid at the desk")

    assert confirmed.status == AppointmentStatus.CONFIRMED
    stored, _ = reload(db, payment.id)
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.method == PaymentMethod.ADMIN_OVERRIDE
    assert stored.transaction_id.startswith("ADMIN-")
    assert stored.metadata_["verified_by"] == "admin-1"
    assert stored.metadata_["notes"] == "paid at the desk"

    with pytest.raises(StateError):
        service.verify(payment.id, ADMIN)


async def test_verify_keeps_payment_pending_when_appointment_moved_meanwhile(db, service, appointment, monkeypatch):
    payment, _ = await service.create_invoice(appointment.id)
    load = service.get_payment

    def load_then_cancel_concurrently(payment_id):
        loaded = load(payment_id)
        db.execute(
            update(Appointment)
            .where(Appointment.id == loaded.appointment_id)
            .values(status=AppointmentStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        return loaded

    monkeypatch.setattr(service, "get_payment", load_then_cancel_concurrently)

    with pytest.raises(ConflictError):
        service.verify(payment.id, ADMIN)

    stored, _ = reload(db, payment.id)
    assert stored.status == PaymentStatus.PENDING
    assert stored.method == PaymentMethod.QPAY


async def test_cancelling_appointment_expires_its_invoice(db, service, provider, clock, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    await BookingService(db, clock, provider).cancel_appointment(appointment.id)
    provider.pay(payment.invoice_id)
    checked = await service.check_status(payment.id)

    assert checked.status == PaymentStatus.EXPIRED
    assert provider.cancelled == [payment.invoice_id]
    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.EXPIRED
    assert stored_appointment.status == AppointmentStatus.CANCELLED


async def test_refund_only_from_completed_and_keeps_appointment(db, service, provider, appointment):
    payment, _ = await service.create_invoice(appointment.id)
    with pytest.raises(StateError):
        service.refund(payment.id, "changed mind")

    provider.pay(payment.invoice_id)
    await service.check_status(payment.id)

    assert service.refund(payment.id, "doctor unavailable") == {"success": True, "message": "Payment refunded"}

    stored, stored_appointment = reload(db, payment.id)
    assert stored.status == PaymentStatus.REFUNDED
    assert stored.refund_reason == "doctor unavailable"
    assert stored.refunded_at == NOW
    assert stored_appointment.status == AppointmentStatus.PAID

    with pytest.raises(StateError):
        service.refund(payment.id, "again")


async def test_simulate_payment(db, service, clock, appointment):
    payment, _ = await service.create_invoice(appointment.id)

    confirmed = service.simulate_payment(payment.id)

    assert confirmed.status == AppointmentStatus.PAID
    stored, _ = reload(db, payment.id)
    assert stored.status == PaymentStatus.COMPLETED
    assert stored.transaction_id.startswith("SIM-")

    with pytest.raises(StateError):
        service.simulate_payment(payment.id)


def test_every_payment_status_has_a_message():
    assert set(STATUS_MESSAGES) == set(PaymentStatus)
    assert STATUS_MESSAGES[PaymentStatus.EXPIRED] == "QR code expired, please generate a new one"
    assert STATUS_MESSAGES[PaymentStatus.FAILED] == "Payment failed, please retry"
