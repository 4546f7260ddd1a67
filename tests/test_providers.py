import base64

from clinic_api.domain.payments.providers import SandboxPaymentProvider
from clinic_api.domain.payments.qpay_client import QPayClient
from clinic_api.main import build_payment_provider
from clinic_api.models import PaymentMethod


async def test_sandbox_issues_qr_and_never_reports_payment():
    provider = SandboxPaymentProvider()

    invoice = await provider.create_invoice("APT-1", "99112233", "Booking fee", 25000)

    assert invoice["invoice_id"].startswith("SANDBOX-")
    assert "amount=25000" in invoice["qr_text"]
    assert base64.b64decode(invoice["qr_image"]).startswith(b"\x89PNG")
    assert await provider.check_payment(invoice["invoice_id"]) == {"count": 0, "paid_amount": 0, "rows": []}

    assert await provider.cancel_invoice(invoice["invoice_id"]) is None


def test_sandbox_used_without_credentials():
    provider = build_payment_provider()

    assert isinstance(provider, SandboxPaymentProvider)
    assert provider.method == PaymentMethod.SANDBOX


async def test_qpay_used_with_credentials(monkeypatch):
    from clinic_api import main

    monkeypatch.setattr(main, "QPAY_USERNAME", "clinic")
    monkeypatch.setattr(main, "QPAY_PASSWORD", "secret")
    monkeypatch.setattr(main, "QPAY_INVOICE_CODE", "CLINIC_INVOICE")

    provider = build_payment_provider()
    try:
        assert isinstance(provider, QPayClient)
        assert provider.method == PaymentMethod.QPAY
    finally:
        await provider.aclose()
