"""FastAPI application entry point"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from revshare.api import coupons, creator, monitoring, webhooks
from revshare.core import otel
from revshare.core.config import settings
from revshare.core.logging import setup_logging
from revshare.db.session import engine, init_db
from revshare.services.email_service import validate_email_config

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if otel.initialize_otel():
        logger.info(f"OpenTelemetry initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        otel.setup_otel_logging()
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    otel.instrument_sqlalchemy(engine)

    email_ok, email_error = validate_email_config()
    if not email_ok:
        logger.warning(f"Notification emails disabled: {email_error}")

    maturity_task = None
    if settings.ENABLE_BACKGROUND_TASKS:
        from revshare.tasks.commission_maturity import commission_maturity_task

        maturity_task = asyncio.create_task(commission_maturity_task())
        logger.info("Commission maturity task started")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if maturity_task:
        maturity_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await maturity_task


# Create FastAPI app
app = FastAPI(
    title="Revshare Backend",
    description="Commission ledger and Stripe webhook reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

# Instrument FastAPI with OpenTelemetry
otel.instrument_fastapi(app)

# Include routers
app.include_router(webhooks.router)
app.include_router(coupons.router)
app.include_router(creator.router)
app.include_router(monitoring.router)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )
