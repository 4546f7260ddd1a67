import os

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ADMIN_JWT_SECRET"] = "test-admin-secret"
for key in ("QPAY_USERNAME", "QPAY_PASSWORD", "QPAY_INVOICE_CODE"):
    os.environ.pop(key, None)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt as jose_jwt  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clinic_api import config  # noqa: E402
from clinic_api.database import Base, get_db  # noqa: E402
from clinic_api.domain.payments.providers import PaymentProvider  # noqa: E402
from clinic_api.errors import ProviderError  # noqa: E402
from clinic_api.main import app  # noqa: E402
from clinic_api.models import DayOfWeek, Doctor, PaymentMethod, Schedule, Service  # noqa: E402
from clinic_api.shared.clock import get_clock  # noqa: E402
from clinic_api.shared.dependencies import get_payment_provider  # noqa: E402

# Monday
NOW = datetime(2026, 10, 19, 8, 0)
TODAY = NOW.date()
NEXT_MONDAY = "2026-10-26"
NEXT_SUNDAY = "2026-10-25"


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeProvider(PaymentProvider):
    """In-memory provider; tests mark invoices paid with pay()"""

    method = PaymentMethod.QPAY

    def __init__(self):
        self.invoices: dict[str, dict] = {}
        self.paid: dict[str, int] = {}
        self.cancelled: list[str] = []
        self.fail_checks = False

    async def create_invoice(self, sender_invoice_no, receiver_code, description, amount):
        invoice_id = f"INV-{len(self.invoices) + 1}"
        self.invoices[invoice_id] = {
            "sender_invoice_no": sender_invoice_no,
            "receiver_code": receiver_code,
            "description": description,
            "amount": amount,
        }
        return {
            "invoice_id": invoice_id,
            "qr_text": f"qr:{invoice_id}",
            "qr_image": None,
            "short_url": f"https://qpay.test/{invoice_id}",
        }

    async def check_payment(self, invoice_id):
        if self.fail_checks:
            raise ProviderError("Payment provider unavailable")
        paid = self.paid.get(invoice_id, 0)
        rows = [{"payment_id": f"TXN-{invoice_id}", "payment_status": "PAID"}] if paid else []
        return {"count": len(rows), "paid_amount": paid, "rows": rows}

    async def cancel_invoice(self, invoice_id):
        self.cancelled.append(invoice_id)

    def pay(self, invoice_id: str, amount: int = None):
        self.paid[invoice_id] = config.BOOKING_FEE if amount is None else amount


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(session_factory, clock, provider):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_provider] = lambda: provider
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = jose_jwt.encode(
        {"id": "admin-1", "email": "admin@clinic.test"},
        config.ADMIN_JWT_SECRET,
        algorithm=config.ADMIN_JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def doctor(db):
    doctor = Doctor(name="Bold", specialization="Cardiology")
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


@pytest.fixture
def monday_schedule(db, doctor):
    """MONDAY 09:00-12:00 every 30 minutes"""
    schedule = Schedule(
        doctor_id=doctor.id,
        day_of_week=DayOfWeek.MONDAY,
        start_time="09:00",
        end_time="12:00",
        slot_duration=30,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


@pytest.fixture
def service_item(db):
    service = Service(name="Consultation", price=50000)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def booking_payload(doctor_id: str, **overrides) -> dict:
    payload = {
        "doctorId": doctor_id,
        "date": NEXT_MONDAY,
        "time": "10:00",
        "patientName": "Saraa",
        "patientPhone": "99112233",
    }
    payload.update(overrides)
    return payload
