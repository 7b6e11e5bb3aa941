"""
ChessFam Scheduler API - Main Application
"""
import logging
import sys
import traceback
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import uvicorn

from .core.config import settings
from .core.rate_limit import limiter
from .database import init_db
from .api.v1 import api_router
from .services.maintenance_jobs import MAINTENANCE_JOBS
from .services.scheduler_service import scheduler_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting ChessFam Scheduler API...")

    try:
        logger.info(f"Database: {settings.DATABASE_HOST}:{settings.DATABASE_PORT}/{settings.DATABASE_NAME}")
        init_db()
        logger.info("Database initialized successfully")

        if settings.SCHEDULER_ENABLED:
            scheduler_service.start()
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(f"API running at: http://{settings.API_HOST}:{settings.API_PORT}")

    except Exception as e:
        logger.error(f"Failed to initialize backend: {e}")
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down ChessFam Scheduler API...")

    try:
        scheduler_service.shutdown()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Game scheduling, quota and Stripe billing reconciliation for ChessFam",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unexpected errors."""
    # Generate a unique error ID for tracking
    error_id = str(uuid.uuid4())[:8]

    # Always log the full error on the server
    logger.error(
        f"[ERROR_ID: {error_id}] Unhandled exception on {request.method} {request.url.path}",
        exc_info=True
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "detail": str(exc),
                "error_id": error_id,
                "type": type(exc).__name__,
                "path": str(request.url.path),
                "traceback": traceback.format_exc()
            }
        )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "detail": "An internal server error occurred. Please try again later.",
            "error_id": error_id
        }
    )


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.DEBUG else "disabled",
        "jobs": [job.id for job in MAINTENANCE_JOBS]
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    from app.utils.time_utils import to_utc_isoformat, utc_now

    try:
        return {
            "status": "healthy",
            "timestamp": to_utc_isoformat(utc_now()),
            "service": "chessfam-scheduler-api",
            "version": "1.0.0",
            "services": {
                "database": {
                    "status": "configured",
                    "host": settings.DATABASE_HOST
                },
                "scheduler": {
                    "status": "running" if scheduler_service.running else "stopped",
                    "scheduled_jobs": len(scheduler_service.get_scheduled_jobs())
                },
                "email": {
                    "status": "enabled" if settings.ENABLE_EMAIL and settings.SENDGRID_API_KEY else "log-only"
                },
                "stripe": {
                    "status": "configured" if settings.STRIPE_SECRET_KEY else "not configured"
                }
            }
        }

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }


# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


if __name__ == "__main__":
    # Run the application
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
