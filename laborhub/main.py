"""LaborHub Attendance — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from laborhub.attendance.router import router as attendance_router
from laborhub.automation.scheduler import shutdown_scheduler, start_scheduler
from laborhub.common.exceptions import register_exception_handlers
from laborhub.common.rate_limit import limiter
from laborhub.config import settings
from laborhub.database import engine

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("laborhub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("Attendance scheduler disabled (SCHEDULER_ENABLED=false)")
    yield
    # Shutdown
    shutdown_scheduler()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="LaborHub Attendance",
        description="Shift attendance for site workers: step in/out, bulk operations, automation",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "scheduler_enabled": settings.SCHEDULER_ENABLED,
        }

    # Register routers
    app.include_router(attendance_router, prefix="/api/v1/attendance", tags=["attendance"])

    return app


app = create_app()
