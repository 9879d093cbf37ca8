"""LeaveTrack — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from leavetrack import __version__
from leavetrack.audit.router import router as audit_router
from leavetrack.common.exceptions import register_exception_handlers
from leavetrack.common.rate_limit import limiter
from leavetrack.config import settings
from leavetrack.database import engine
from leavetrack.entitlement.router import router as balances_router
from leavetrack.holidays.router import router as holidays_router
from leavetrack.leave.router import calendar_router
from leavetrack.leave.router import router as leave_router
from leavetrack.notifications.router import router as notifications_router
from leavetrack.notifications.service import drain_email_queue
from leavetrack.users.router import teams_router, users_router
from leavetrack.vacation_policy.router import router as settings_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("LeaveTrack %s starting (%s)", __version__, settings.ENVIRONMENT)
    yield
    # Shutdown: let queued notification emails finish before the pool closes
    await drain_email_queue()
    await engine.dispose()
    logger.info("LeaveTrack stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="LeaveTrack",
        description="Employee leave management — requests, approvals, balances and team calendar",
        version=__version__,
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
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
    app.include_router(teams_router, prefix="/api/v1/teams", tags=["teams"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])
    app.include_router(leave_router, prefix="/api/v1/leave-requests", tags=["leave-requests"])
    app.include_router(calendar_router, prefix="/api/v1/calendar", tags=["calendar"])
    app.include_router(balances_router, prefix="/api/v1/leave-balances", tags=["leave-balances"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["settings"])
    app.include_router(audit_router, prefix="/api/v1/audit-logs", tags=["audit"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])

    return app


app = create_app()
