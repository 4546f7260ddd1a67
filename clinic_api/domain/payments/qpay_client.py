"""
QPay Client
QPay merchant API v2 integration: token handling, invoices and payment checks
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from ...errors import ProviderError
from ...models import PaymentMethod
from .providers import PaymentProvider

logger = logging.getLogger(__name__)

# Seconds shaved off token lifetimes so a token is never used right at expiry
TOKEN_EXPIRY_MARGIN = 60


class QPayClient(PaymentProvider):
    """
    QPay merchant API client.

    One instance is created at startup and owns its own token state: the access
    token is cached until shortly before expiry, then renewed with the refresh
    token, and a full login is done when both are stale. A 401 on any call forces
    one re-login and retry.
    """

    method = PaymentMethod.QPAY

    def __init__(
        self,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        invoice_code: Optional[str],
        callback_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username or ""
        self.password = password or ""
        self.invoice_code = invoice_code or ""
        self.callback_url = callback_url

        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.token_expires_at = 0.0
        self.refresh_expires_at = 0.0
        self._token_lock = asyncio.Lock()

        if not self.is_configured():
            logger.warning(
                "⚠️ QPay credentials not configured. Set QPAY_USERNAME, QPAY_PASSWORD, QPAY_INVOICE_CODE"
            )

    def is_configured(self) -> bool:
        return bool(self.username and self.password and self.invoice_code)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _store_tokens(self, data: dict) -> str:
        now = time.monotonic()
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token")
        self.token_expires_at = now + int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN
        self.refresh_expires_at = now + int(data.get("refresh_expires_in", 0)) - TOKEN_EXPIRY_MARGIN
        return self.access_token

    async def authenticate(self) -> str:
        """Full login with merchant username/password"""
        try:
            response = await self.client.post("/auth/token", auth=(self.username, self.password))
        except httpx.HTTPError as e:
            logger.error(f"❌ QPay authentication failed: {e}")
            raise ProviderError("QPay authentication failed") from e

        if response.status_code != 200:
            logger.error(f"❌ QPay authentication failed: {response.status_code} {response.text}")
            raise ProviderError("QPay authentication failed")

        token = self._store_tokens(response.json())
        logger.info("✅ QPay authenticated successfully")
        return token

    async def _refresh(self) -> str:
        try:
            response = await self.client.post(
                "/auth/refresh", headers={"Authorization": f"Bearer {self.refresh_token}"}
            )
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ QPay token refresh failed, logging in again: {e}")
            return await self.authenticate()

        if response.status_code != 200:
            logger.warning(f"⚠️ QPay token refresh rejected ({response.status_code}), logging in again")
            return await self.authenticate()

        return self._store_tokens(response.json())

    async def _get_token(self) -> str:
        async with self._token_lock:
            now = time.monotonic()
            if self.access_token and now < self.token_expires_at:
                return self.access_token
            if self.refresh_token and now < self.refresh_expires_at:
                return await self._refresh()
            return await self.authenticate()

    async def _request(self, method: str, url: str, json: Optional[dict] = None) -> Any:
        token = await self._get_token()

        try:
            response = await self.client.request(
                method, url, json=json, headers={"Authorization": f"Bearer {token}"}
            )
            if response.status_code == 401:
                async with self._token_lock:
                    self.access_token = None
                    token = await self.authenticate()
                response = await self.client.request(
                    method, url, json=json, headers={"Authorization": f"Bearer {token}"}
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ QPay {method} {url} failed: {e}")
            raise ProviderError("Payment provider unavailable") from e

        if response.status_code >= 400:
            logger.error(f"❌ QPay {method} {url} returned {response.status_code}: {response.text}")
            raise ProviderError(f"Payment provider rejected the request ({response.status_code})")

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    async def create_invoice(
        self, sender_invoice_no: str, receiver_code: str, description: str, amount: int
    ) -> dict:
        """Create an invoice and return its QR payload"""
        body = {
            "invoice_code": self.invoice_code,
            "sender_invoice_no": sender_invoice_no,
            "invoice_receiver_code": receiver_code,
            "invoice_description": description,
            "amount": amount,
            "callback_url": f"{self.callback_url}?invoice_id={sender_invoice_no}",
        }
        logger.info(f"📄 Creating QPay invoice {sender_invoice_no} for {amount}")

        data = await self._request("POST", "/invoice", json=body)
        if not data or not data.get("invoice_id"):
            raise ProviderError("Payment provider returned no invoice")

        logger.info(f"✅ QPay invoice created: {data['invoice_id']}")
        return {
            "invoice_id": data["invoice_id"],
            "qr_text": data.get("qr_text"),
            "qr_image": data.get("qr_image"),
            "short_url": data.get("qPay_shortUrl"),
        }

    async def check_payment(self, invoice_id: str) -> dict:
        """Payments received against an invoice"""
        body = {
            "object_type": "INVOICE",
            "object_id": invoice_id,
            "offset": {"page_number": 1, "page_limit": 100},
        }
        data = await self._request("POST", "/payment/check", json=body) or {}
        return {
            "count": int(data.get("count") or 0),
            "paid_amount": float(data.get("paid_amount") or 0),
            "rows": data.get("rows") or [],
        }

    async def cancel_invoice(self, invoice_id: str) -> None:
        try:
            await self._request("DELETE", f"/invoice/{invoice_id}")
            logger.info(f"🗑️ QPay invoice cancelled: {invoice_id}")
        except ProviderError as e:
            logger.warning(f"⚠️ QPay cancel invoice {invoice_id} failed: {e.message}")

    async def aclose(self) -> None:
        await self.client.aclose()
