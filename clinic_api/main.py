import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import (
    ALLOWED_ORIGINS,
    QPAY_API_URL,
    QPAY_CALLBACK_URL,
    QPAY_INVOICE_CODE,
    QPAY_PASSWORD,
    QPAY_TIMEOUT,
    QPAY_USERNAME,
)
from .database import Base, engine
from .domain.appointments import router as appointments_router
from .domain.payments import router as payments_router
from .domain.payments.providers import PaymentProvider, SandboxPaymentProvider
from .domain.payments.qpay_client import QPayClient
from .domain.scheduling import router as scheduling_router
from .errors import ClinicError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce noise from HTTP client libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_payment_provider() -> PaymentProvider:
    """QPay when credentials are configured, otherwise the local sandbox"""
    if not (QPAY_USERNAME and QPAY_PASSWORD and QPAY_INVOICE_CODE):
        return SandboxPaymentProvider()

    logger.info(f"QPay provider enabled ({QPAY_API_URL})")
    return QPayClient(
        base_url=QPAY_API_URL,
        username=QPAY_USERNAME,
        password=QPAY_PASSWORD,
        invoice_code=QPAY_INVOICE_CODE,
        callback_url=QPAY_CALLBACK_URL,
        timeout=QPAY_TIMEOUT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        _redis_client = get_redis_client()  # Connection test
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - rate limited endpoints will answer 503: {e}")

    app.state.payment_provider = build_payment_provider()

    yield

    logger.info("Application shutting down...")
    await app.state.payment_provider.aclose()


app = FastAPI(title="Clinic Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert validation errors to 400 with the first readable message, and to 401
    when the issue is with the Authorization header
    """
    errors = exc.errors()
    for error in errors:
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {errors}")
    message = "Invalid request"
    if errors:
        message = str(errors[0].get("msg", message))
        # pydantic prefixes messages raised from validators
        message = message.removeprefix("Value error, ")
    return JSONResponse(status_code=400, content={"detail": message})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(scheduling_router)
app.include_router(appointments_router)
app.include_router(payments_router)


@app.get("/")
def root():
    return {"message": "Clinic Booking API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
