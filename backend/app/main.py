"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from app.api import router
from app.config import get_settings
from app.services import (
    ExpirationListener,
    build_auditor,
    build_reconciler,
    build_verifier,
    reconciliation_loop,
)
from app.storage import init_database, get_database, cache

APP_NAME = "Signal Outcome Reconciler"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting {APP_NAME}...")
    settings = get_settings()

    # Track initialization state for proper cleanup on failure
    db_initialized = False
    cache_initialized = False
    listener: ExpirationListener | None = None
    reconcile_task: asyncio.Task | None = None
    app.state.listener = None

    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            cache_initialized = True
            if cache.is_cache_available():
                logger.info("Redis price cache initialized")
            else:
                logger.warning("Redis cache unavailable - reading prices from database only")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - reading prices from database only")
            cache_initialized = True  # Mark as initialized to skip cleanup

        # Initialize services and expose them to API routes via app.state
        reconciler = build_reconciler(settings)
        auditor = build_auditor(settings)
        app.state.reconciler = reconciler
        app.state.verifier = build_verifier(settings)
        app.state.auditor = auditor

        # Live expiration auditing (non-fatal if the subscription fails)
        listener = ExpirationListener(
            auditor,
            channel=settings.audit_channel,
            database_url=settings.database_url,
            reconnect_delay=settings.audit_reconnect_delay_seconds,
        )
        app.state.listener = listener
        if settings.audit_listener_enabled:
            if not await listener.start():
                logger.warning("Running without live expiration auditing")

        # Initial investigation shortly after startup, then periodic if configured
        reconcile_task = asyncio.create_task(
            reconciliation_loop(
                reconciler,
                initial_delay=settings.initial_reconcile_delay_seconds,
                interval=settings.reconcile_interval_seconds,
            )
        )
        logger.info("Outcome reconciliation scheduled")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        # Cleanup on startup failure
        if listener:
            try:
                await listener.stop()
            except Exception as cleanup_err:
                logger.warning(f"Error stopping expiration listener: {cleanup_err}")
        if cache_initialized:
            try:
                await cache.close_cache()
            except Exception as cleanup_err:
                logger.warning(f"Error closing cache: {cleanup_err}")
        if db_initialized:
            try:
                db = get_database()
                await db.close()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise  # Re-raise to prevent app from starting in broken state

    yield

    # Shutdown
    logger.info("Shutting down...")

    # Stop background reconciliation
    if reconcile_task:
        reconcile_task.cancel()
        try:
            await reconcile_task
        except asyncio.CancelledError:
            pass

    # Stop listening and cancel pending audits
    if listener:
        await listener.stop()

    # Close Redis cache
    await cache.close_cache()

    # Close database connections
    try:
        db = get_database()
        await db.close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title=APP_NAME,
    description="Outcome reconciliation and auditing for forex trading signals",
    version=APP_VERSION,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
