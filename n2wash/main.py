import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401 - registers tables on Base
from .config import BASE_DOMAIN, CORS_ORIGINS, SENTRY_DSN
from .database import Base, engine
from .domain.availability.router import router as availability_router
from .domain.catalog.router import router as catalog_router
from .domain.customers.router import router as customers_router
from .domain.halls.router import router as halls_router
from .domain.instances.router import admin_router as super_admin_router
from .domain.instances.router import router as instance_settings_router
from .domain.notifications.router import router as notifications_router
from .domain.offers.router import router as offers_router
from .domain.public_booking.router import router as public_booking_router
from .domain.reservations.router import router as reservations_router
from .domain.sms.router import router as sms_router
from .domain.stations.router import router as stations_router
from .domain.users.router import router as users_router
from .realtime.router import router as realtime_router
from .routes.auth import router as auth_router
from .routes.upload import router as upload_router
from .tenancy import tenant_context_middleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Another worker may have created the tables first
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - rate limiting falls back to in-memory counters: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="N2Wash API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
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

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the raw exception into ctx for custom validators
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


app.middleware("http")(tenant_context_middleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS: configured origins plus every tenant subdomain of the base domain
logger.info(f"CORS allowed origins: {CORS_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=rf"https://([a-z0-9-]+\.)*{re.escape(BASE_DOMAIN)}",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(auth_router)
app.include_router(super_admin_router)
app.include_router(instance_settings_router)
app.include_router(users_router)
app.include_router(stations_router)
app.include_router(catalog_router)
app.include_router(availability_router)
app.include_router(reservations_router)
app.include_router(customers_router)
app.include_router(halls_router)
app.include_router(offers_router)
app.include_router(sms_router)
app.include_router(notifications_router)
app.include_router(upload_router)
app.include_router(public_booking_router)
app.include_router(realtime_router)


@app.get("/")
def root():
    return {"status": "ok", "message": "N2Wash API running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        from .rate_limiter import get_redis_client

        redis_client = get_redis_client()
        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000
        return {"status": "healthy", "redis": {"connected": True, "response_time_ms": round(response_time, 2)}}
    except Exception as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}


@app.get("/config/public")
def public_config():
    """Runtime settings the frontend needs before login"""
    return {"sentryDsn": SENTRY_DSN}
