"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database and service initialization, the health
endpoints and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.meetup.api.errors import install_error_handlers
from src.meetup.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meetup.api.v1 import health
from src.meetup.api.v1.router import router as v1_router
from src.meetup.config import get_settings
from src.meetup.core.database import close_db, get_engine, init_db, make_session_factory
from src.meetup.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.meetup.meetings.notifications import NotificationRepository
from src.meetup.meetings.participations import ParticipationEngine
from src.meetup.meetings.queries import MeetingQueryEngine
from src.meetup.meetings.repository import MeetingRepository
from src.meetup.services.geocoding import KakaoGeocoder


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, services and Sentry on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    engine = get_engine()
    await init_db(engine)
    session_factory = make_session_factory(engine)

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    app.state.db_engine = engine
    app.state.meeting_repository = MeetingRepository(session_factory=session_factory)
    app.state.participation_engine = ParticipationEngine(session_factory=session_factory)
    app.state.query_engine = MeetingQueryEngine(session_factory=session_factory)
    app.state.notification_repository = NotificationRepository(
        session_factory=session_factory
    )
    app.state.geocoder = KakaoGeocoder(
        api_key=settings.KAKAO_REST_API_KEY,
        base_url=settings.GEOCODER_BASE_URL,
        timeout=settings.GEOCODER_TIMEOUT,
    )
    log.info(
        "meetup.services_initialized",
        environment=settings.ENVIRONMENT.value,
        geocoding_enabled=app.state.geocoder.enabled,
    )

    yield

    await close_db()
    log.info("meetup.shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Meetup API",
        version="0.1.0",
        description="Capacity-limited meetings with host-approved participation",
        lifespan=lifespan,
    )

    install_error_handlers(app)

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router)
    app.include_router(v1_router, prefix="/api/v1")

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
