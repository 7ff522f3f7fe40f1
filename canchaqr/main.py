"""
CanchaQR Backend
FastAPI application entry point

- Reservation expiry scheduler with heartbeat metrics
- Rate limiting with SlowAPI
- Error sanitization middleware and envelope error handlers
- Health endpoint with DB ping
- Rendered QR images served from /uploads
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from canchaqr import __version__
from canchaqr.api.routes import guest_invitations, payments, qr_issuances, reservations
from canchaqr.core.config import settings
from canchaqr.core.database import AsyncSessionLocal
from canchaqr.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from canchaqr.core.rate_limit import limiter, rate_limit_exceeded_handler
from canchaqr.services.reservation_expiry import expire_stale_reservations, get_expiry_stats

logger = logging.getLogger(__name__)

# Background task references
_expiry_task: Optional[asyncio.Task] = None
_expiry_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "records_processed": 0,
    "errors": 0,
}


# ============== RESERVATION EXPIRY SCHEDULER ==============

async def run_reservation_expiry():
    """
    Run one expiry sweep and update heartbeat metrics for health monitoring.
    """
    _expiry_heartbeat["last_run"] = datetime.now(timezone.utc).isoformat()

    try:
        stats = await expire_stale_reservations()
        _expiry_heartbeat["last_success"] = datetime.now(timezone.utc).isoformat()
        resolved = stats.get("cancelled", 0) + stats.get("partially_paid", 0) + stats.get("fully_paid", 0)
        _expiry_heartbeat["records_processed"] += resolved
        _expiry_heartbeat["errors"] += stats.get("errors", 0)
    except Exception as e:
        _expiry_heartbeat["errors"] += 1
        logger.error(f"Reservation expiry failed: {e}", exc_info=True)


async def reservation_expiry_scheduler():
    """
    Run the expiry sweep at the configured interval until cancelled.
    """
    interval_seconds = settings.RESERVATION_EXPIRY_INTERVAL_MINUTES * 60
    logger.info(
        f"Reservation expiry scheduler started "
        f"(interval: {settings.RESERVATION_EXPIRY_INTERVAL_MINUTES} minutes, "
        f"TTL: {settings.RESERVATION_TTL_MINUTES} minutes)"
    )

    while True:
        await run_reservation_expiry()
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiry scheduler on startup, cancel it on shutdown."""
    global _expiry_task

    if settings.RESERVATION_EXPIRY_ENABLED:
        _expiry_task = asyncio.create_task(reservation_expiry_scheduler())
        logger.info("Reservation expiry scheduler ENABLED")
    else:
        logger.info("Reservation expiry scheduler DISABLED via config")

    yield

    if _expiry_task and not _expiry_task.done():
        _expiry_task.cancel()
        try:
            await _expiry_task
        except asyncio.CancelledError:
            logger.info("Reservation expiry scheduler cancelled")


app = FastAPI(
    lifespan=lifespan,
    title="CanchaQR API",
    description="""
## CanchaQR Reservation API

Court reservations with hourly slots, installment payments and QR check-in.

### Flow
- **Reservations**: created pending; unpaid ones are resolved after the TTL
- **Payments**: the payment that reaches the threshold issues the reservation QR codes
- **Guest invitations**: personal QR codes for invited guests
- **QR issuances**: lookup and verification by venue controllers
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check and monitoring endpoints"},
        {"name": "Reservations", "description": "Reservation lifecycle"},
        {"name": "Payments", "description": "Installment payments"},
        {"name": "Guest Invitations", "description": "Personal guest QR invitations"},
        {"name": "QR Issuances", "description": "Reservation QR lookup and verification"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Envelope error responses
register_exception_handlers(app)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rendered QR artifacts
Path(settings.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)
app.mount(settings.UPLOADS_URL_PREFIX, StaticFiles(directory=settings.UPLOADS_DIR), name="uploads")

# Include routers
app.include_router(reservations.router, prefix="/api")
app.include_router(payments.router, prefix="/api")
app.include_router(guest_invitations.router, prefix="/api")
app.include_router(qr_issuances.router, prefix="/api")


@app.get("/", tags=["Health"])
async def root():
    return {
        "success": True,
        "message": "CanchaQR API",
        "data": {
            "version": __version__,
            "status": "operational",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with DB ping and expiry scheduler heartbeat.
    Returns 503 if database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "reservation_expiry": _expiry_heartbeat,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
        health_status["reservations"] = await get_expiry_stats()
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Database unreachable", "data": health_status},
        )

    return {"success": True, "message": "healthy", "data": health_status}
