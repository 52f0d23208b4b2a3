"""
LocalDink API Server

FastAPI server for pickleball game scheduling: players, courts, groups, game
sessions with RSVPs, notifications (in-app and SMS), inbound SMS replies and
the Robin chat assistant.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from localdink.api.routes import router, limiter as routes_limiter
from localdink.database import db
from localdink.database.seed_data import seed_demo_data
from localdink.services import settings_service
from localdink.services.errors import (
    LoadingFailedError,
    PermissionDeniedError,
    report_permission_error,
)

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
    logger.info("Starting up LocalDink API...")

    # Create tables that migrations have not created yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Demo players, courts and groups for an empty database
    if os.getenv("SEED_DEMO_DATA", "true").lower() == "true":
        try:
            counts = await seed_demo_data()
            logger.info(f"Demo seed: {counts}")
        except Exception as e:
            logger.error(f"Failed to seed demo data: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down LocalDink API...")

    try:
        await settings_service.close_redis_connection()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="LocalDink API",
    description="API for scheduling pickleball games, RSVPs and notifications",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    # Logged at error for critical collections, warning otherwise
    report_permission_error(exc)
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(LoadingFailedError)
async def loading_failed_handler(request: Request, exc: LoadingFailedError):
    return JSONResponse(status_code=503, content={"detail": "Loading failed"})


# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
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


@app.get("/")
async def root():
    """API root endpoint - the frontend is served separately."""
    return {"name": "LocalDink API", "docs": "/docs", "health": "/api/health"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
