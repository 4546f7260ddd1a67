import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# "production" disables development-only endpoints (payment simulation)
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").strip().lower()

# Admin tokens are issued by the admin auth service; we only verify them
ADMIN_JWT_SECRET = os.getenv("ADMIN_JWT_SECRET")
if not ADMIN_JWT_SECRET:
    import warnings

    warnings.warn(
        "ADMIN_JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION",
        RuntimeWarning,
        stacklevel=2,
    )
    ADMIN_JWT_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
ADMIN_JWT_ALGORITHM = "HS256"

# Booking fee (show-up fee, MNT) and QR invoice lifetime
BOOKING_FEE = int(os.getenv("BOOKING_FEE", "25000"))
QR_EXPIRY_MINUTES = int(os.getenv("QR_EXPIRY_MINUTES", "15"))

# Slot granularity bounds for doctor schedules (minutes)
DEFAULT_SLOT_DURATION = int(os.getenv("DEFAULT_SLOT_DURATION", "30"))
MIN_SLOT_DURATION = 10
MAX_SLOT_DURATION = 120

# QPay V2 merchant API
QPAY_API_URL = os.getenv("QPAY_API_URL", "https://merchant.qpay.mn/v2")
QPAY_USERNAME = os.getenv("QPAY_USERNAME")
QPAY_PASSWORD = os.getenv("QPAY_PASSWORD")
QPAY_INVOICE_CODE = os.getenv("QPAY_INVOICE_CODE")
# Public URL of POST /payments/callback; QPay appends nothing, we add ?invoice_id=<sender no>
QPAY_CALLBACK_URL = os.getenv("QPAY_CALLBACK_URL", "http://localhost:8000/payments/callback")
QPAY_TIMEOUT = float(os.getenv("QPAY_TIMEOUT", "30"))

# Rate limiting on public write endpoints (requires Redis)
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Frontend origins allowed by CORS
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:3001",
).split(",")
