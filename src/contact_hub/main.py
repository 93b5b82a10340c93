"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
and a lifespan that initializes the database, wires the HubSpot client and
sync services onto app.state, and runs the background sync workers.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.contact_hub.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.contact_hub.api.v1 import health
from src.contact_hub.api.v1.router import router as v1_router
from src.contact_hub.config import Settings, get_settings
from src.contact_hub.contacts.repository import (
    FormAnalyticsRepository,
    SubmissionRepository,
    SyncAuditLog,
)
from src.contact_hub.contacts.service import IntakeService
from src.contact_hub.core.database import close_db, get_session, init_db
from src.contact_hub.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.contact_hub.crm.hubspot import HubSpotClient
from src.contact_hub.sync.dispatcher import SyncDispatcher
from src.contact_hub.sync.engine import ContactSyncEngine


def build_services(app: FastAPI, settings: Settings) -> SyncDispatcher:
    """Construct the CRM client, repositories and sync pipeline on app.state."""
    client = HubSpotClient(
        api_key=settings.HUBSPOT_API_KEY,
        base_url=settings.HUBSPOT_BASE_URL,
        retry_policy=settings.hubspot_retry_policy(),
    )
    submissions = SubmissionRepository(get_session)
    audit_log = SyncAuditLog(get_session)
    analytics = FormAnalyticsRepository(get_session)

    engine = ContactSyncEngine(
        client=client,
        submissions=submissions,
        audit_log=audit_log,
        analytics=analytics,
        form_name=settings.CONTACT_FORM_NAME,
    )
    dispatcher = SyncDispatcher(
        engine.sync_submission,
        worker_count=settings.SYNC_WORKER_COUNT,
        maxsize=settings.SYNC_QUEUE_MAXSIZE,
    )

    app.state.hubspot_client = client
    app.state.sync_dispatcher = dispatcher
    app.state.intake_service = IntakeService(
        submissions=submissions,
        analytics=analytics,
        dispatcher=dispatcher,
        form_name=settings.CONTACT_FORM_NAME,
    )
    return dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and sync workers; stop them on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    dispatcher = build_services(app, settings)
    await dispatcher.start()

    if not app.state.hubspot_client.is_configured():
        log.warning("hubspot.not_configured")

    # Submissions left unsynced by a crash or a full queue get another try
    try:
        await app.state.intake_service.resync_pending()
    except Exception:
        log.warning("startup.resync_pending_failed", exc_info=True)

    log.info("app.started", environment=settings.ENVIRONMENT.value)
    yield

    await dispatcher.stop()
    await close_db()
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Contact Hub API",
        version="0.1.0",
        description="Website contact intake with resilient HubSpot CRM sync",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(health.router)
    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
