"""FastAPI dependencies for application services.

Services are built once in the lifespan and stored on app.state; these
helpers fetch them per request and answer 503 while they are missing.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

from fastapi import HTTPException, Request, status

from src.contact_hub.contacts.service import IntakeService
from src.contact_hub.core.database import ping_db
from src.contact_hub.crm.hubspot import HubSpotClient


def get_intake_service(request: Request) -> IntakeService:
    """IntakeService from app.state, 503 if not available."""
    service = getattr(request.app.state, "intake_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Contact intake not initialized",
        )
    return service


def get_hubspot_client(request: Request) -> HubSpotClient:
    """HubSpotClient from app.state, 503 if not available."""
    client = getattr(request.app.state, "hubspot_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="HubSpot client not initialized",
        )
    return client


def get_database_probe() -> Callable[[], Awaitable[datetime]]:
    """Callable that round-trips the database and returns its clock."""
    return ping_db
