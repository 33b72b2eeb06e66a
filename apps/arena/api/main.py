"""
Esports Arena API Server

FastAPI server for wallets, tournaments, withdrawals and support.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from arena.api.routes import router, limiter as routes_limiter
from arena.database.db import database_from_env
from arena.database.init_defaults import init_defaults
from arena.services.referral_queue import get_referral_queue
from arena.services.websocket_manager import get_websocket_manager
from arena.services import settings_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Esports Arena API...")

    # A storage client set beforehand (tests, embedding) is kept
    database = getattr(app.state, "database", None)
    if database is None:
        database = database_from_env()
        app.state.database = database
    logger.info(f"Using storage client {database!r}")

    # Create tables that migrations haven't created yet
    try:
        await database.init_schema()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - reads degrade and writes fail until the database is reachable

    # Initialize default values (settings)
    if database.available:
        try:
            await init_defaults(database)
            logger.info("✓ Default values initialized")
        except Exception as e:
            logger.error(f"Failed to initialize defaults: {e}", exc_info=True)

    # Start referral bonus worker
    try:
        get_referral_queue().start(database)
    except Exception as e:
        logger.error(f"Failed to start referral worker: {e}", exc_info=True)

    # Start idle live update connection cleanup
    try:
        get_websocket_manager().start_cleanup_worker()
    except Exception as e:
        logger.error(f"Failed to start live update cleanup worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Esports Arena API...")

    try:
        get_referral_queue().stop()
        logger.info("✓ Referral worker stopped")
    except Exception as e:
        logger.error(f"Error stopping referral worker: {e}", exc_info=True)

    try:
        get_websocket_manager().stop_cleanup_worker()
    except Exception as e:
        logger.error(f"Error stopping live update cleanup worker: {e}", exc_info=True)

    try:
        await settings_service.close_redis_connection()
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)

    try:
        await database.dispose()
        logger.info("✓ Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}", exc_info=True)


app = FastAPI(
    title="Esports Arena API",
    description="API for esports tournament wallets, entries, payouts and support",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
