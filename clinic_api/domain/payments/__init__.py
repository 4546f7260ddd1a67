"""
Payments domain - booking fee invoices and reconciliation.

- providers.py: provider interface and sandbox provider
- qpay_client.py: QPay merchant API client
- invoice_service.py: invoice creation, polling, callback, verify, refund
"""

from .router import router

__all__ = ["router"]
