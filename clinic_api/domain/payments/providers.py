"""Payment provider interface and the local sandbox provider"""

import base64
import io
import logging
import uuid
from abc import ABC, abstractmethod

import qrcode

from ...models import PaymentMethod

logger = logging.getLogger(__name__)


class PaymentProvider(ABC):
    """
    External payment provider used by the invoice manager.

    create_invoice returns {"invoice_id", "qr_text", "qr_image", "short_url"}.
    check_payment returns {"count", "paid_amount", "rows": [{"payment_id", ...}]}.
    Failures raise ProviderError.
    """

    method: PaymentMethod  # recorded on payments issued by this provider

    @abstractmethod
    async def create_invoice(
        self, sender_invoice_no: str, receiver_code: str, description: str, amount: int
    ) -> dict: ...

    @abstractmethod
    async def check_payment(self, invoice_id: str) -> dict: ...

    async def cancel_invoice(self, invoice_id: str) -> None:
        """Best effort; implementations log failures instead of raising"""

    async def aclose(self) -> None:
        pass


def render_qr_png(data: str) -> str:
    """Render QR payload to a base64 PNG"""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


class SandboxPaymentProvider(PaymentProvider):
    """
    Provider used when QPay credentials are not configured.

    Issues local invoices with a real QR image but never reports money received;
    payments are confirmed through the simulate or admin verify endpoints.
    """

    method = PaymentMethod.SANDBOX

    def __init__(self):
        logger.warning("⚠️ QPay credentials not configured; using sandbox payment provider")

    async def create_invoice(
        self, sender_invoice_no: str, receiver_code: str, description: str, amount: int
    ) -> dict:
        invoice_id = f"SANDBOX-{uuid.uuid4().hex[:16].upper()}"
        qr_text = f"sandbox://pay?invoice={invoice_id}&amount={amount}"
        logger.info(f"🧪 Sandbox invoice created: {invoice_id} ({amount})")
        return {
            "invoice_id": invoice_id,
            "qr_text": qr_text,
            "qr_image": render_qr_png(qr_text),
            "short_url": None,
        }

    async def check_payment(self, invoice_id: str) -> dict:
        return {"count": 0, "paid_amount": 0, "rows": []}

    async def cancel_invoice(self, invoice_id: str) -> None:
        logger.info(f"🧪 Sandbox invoice cancelled: {invoice_id}")
