"""Contact form endpoints.

POST /contact accepts a submission and answers as soon as it is stored;
the CRM sync runs in the background and never changes the response.
GET /contact reports database connectivity and whether HubSpot is configured.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from src.contact_hub.api.deps import get_database_probe, get_hubspot_client, get_intake_service
from src.contact_hub.contacts.schemas import validate_contact_form
from src.contact_hub.contacts.service import IntakeService
from src.contact_hub.crm.errors import ContactValidationError
from src.contact_hub.crm.hubspot import HubSpotClient

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/contact", tags=["contact"])

ACCEPTED_MESSAGE = "Thank you! Your message has been received. We will get back to you soon."
FAILURE_MESSAGE = "Failed to process your request. Please try again later."


@router.post("")
async def submit_contact(
    request: Request,
    intake: IntakeService = Depends(get_intake_service),
) -> JSONResponse:
    """Validate and store a contact form submission.

    Returns 201 with the submission id, 400 on invalid input, 500 if the
    submission could not be stored.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON in request body"},
        )

    try:
        form = validate_contact_form(body)
    except ContactValidationError as exc:
        logger.info("contact.validation_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(exc)},
        )

    try:
        submission = await intake.submit(form)
    except Exception:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": FAILURE_MESSAGE},
        )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "success": True,
            "message": ACCEPTED_MESSAGE,
            "submissionId": submission.id,
            "createdAt": submission.created_at.isoformat(),
        },
    )


@router.get("")
async def contact_status(
    probe: Callable[[], Awaitable[datetime]] = Depends(get_database_probe),
    client: HubSpotClient = Depends(get_hubspot_client),
) -> JSONResponse:
    """Database and HubSpot status for the contact pipeline."""
    try:
        now = await probe()
    except Exception as exc:
        logger.error("contact.status_check_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "healthy",
            "database": "connected",
            "hubspot": "configured" if client.is_configured() else "not configured",
            "timestamp": now.isoformat(),
        },
    )
