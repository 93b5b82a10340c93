"""HubSpot integration check.

GET  /integration/test  upserts a synthetic contact with a unique email.
POST /integration/test  upserts the contact given in the body.

Both go straight through HubSpotClient.sync_contact, with its retry policy,
and map the outcome to 200 (synced), 401 (missing or rejected API key),
400 (bad test input) or 500 (any other failure).
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.contact_hub.api.deps import get_hubspot_client
from src.contact_hub.config import get_settings
from src.contact_hub.crm.hubspot import HubSpotClient
from src.contact_hub.crm.schemas import ContactPayload, FailureKind, SyncFailure

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/integration", tags=["integration"])

TEST_FIRST_NAME = "Test"
TEST_LAST_NAME = "Contact"
TEST_COMPANY = "Integration Testing"
TEST_LIFECYCLE_STAGE = "subscriber"

NEXT_STEPS = [
    "Check HubSpot portal for the test contact",
    "Verify the contact appears in your HubSpot CRM",
    "Check the crm_sync_log table for sync attempts",
    "Contact form submissions will now sync automatically",
]


class IntegrationTestContact(BaseModel):
    """Body accepted by POST /integration/test."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: str = Field(min_length=1)
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    company: str | None = None
    lifecycle_stage: str | None = Field(default=None, alias="lifecycleStage")

    def to_payload(self) -> ContactPayload:
        return ContactPayload(
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            company=self.company,
            lifecycle_stage=self.lifecycle_stage,
        )


# ── Helpers ─────────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra},
    )


def _failure_response(result: SyncFailure, message: str, **extra: Any) -> JSONResponse:
    if result.kind is FailureKind.CREDENTIAL:
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid HubSpot API key",
            error=result.error,
        )
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        message,
        error=result.error,
        **extra,
    )


# ── Endpoints ───────────────────────────────────────────────────────────────


@router.get("/test")
async def run_integration_test(
    client: HubSpotClient = Depends(get_hubspot_client),
) -> JSONResponse:
    """Upsert a synthetic contact to prove the HubSpot round trip works."""
    if not client.is_configured():
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            "HUBSPOT_API_KEY environment variable is not set",
        )

    settings = get_settings()
    test_email = f"test-{int(time.time() * 1000)}@{settings.INTEGRATION_TEST_EMAIL_DOMAIN}"
    payload = ContactPayload(
        email=test_email,
        first_name=TEST_FIRST_NAME,
        last_name=TEST_LAST_NAME,
        company=TEST_COMPANY,
        lifecycle_stage=TEST_LIFECYCLE_STAGE,
    )

    logger.info("integration_test.started", email=test_email)
    try:
        result = await client.sync_contact(payload)
    except Exception as exc:
        logger.exception("integration_test.unexpected_error", email=test_email)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Unexpected error during HubSpot integration test",
            error=str(exc),
        )

    if not result.success:
        logger.error("integration_test.failed", email=test_email, error=result.error)
        return _failure_response(
            result,
            "Failed to sync contact to HubSpot",
            testEmail=test_email,
        )

    logger.info("integration_test.succeeded", email=test_email, remote_id=result.remote_id)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "success",
            "message": "HubSpot integration is working correctly",
            "testContact": {
                "email": test_email,
                "firstName": TEST_FIRST_NAME,
                "lastName": TEST_LAST_NAME,
                "company": TEST_COMPANY,
                "hubspotId": result.remote_id,
                "operation": result.operation.value,
                "syncedAt": _now_iso(),
            },
            "nextSteps": NEXT_STEPS,
        },
    )


@router.post("/test")
async def run_custom_integration_test(
    request: Request,
    client: HubSpotClient = Depends(get_hubspot_client),
) -> JSONResponse:
    """Upsert the contact given in the request body."""
    if not client.is_configured():
        return _error(status.HTTP_401_UNAUTHORIZED, "HUBSPOT_API_KEY is not configured")

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON in request body")

    if not isinstance(body, dict) or not body.get("email"):
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required field: email")

    try:
        contact = IntegrationTestContact.model_validate(body)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid fields: {', '.join(fields)}")

    logger.info("integration_test.started", email=contact.email)
    try:
        result = await client.sync_contact(contact.to_payload())
    except Exception as exc:
        logger.exception("integration_test.unexpected_error", email=contact.email)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unexpected error", error=str(exc))

    if not result.success:
        logger.error("integration_test.failed", email=contact.email, error=result.error)
        return _failure_response(result, "Failed to sync contact")

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "success",
            "message": "Contact synced successfully",
            "contact": {
                "email": contact.email,
                "firstName": contact.first_name or "N/A",
                "lastName": contact.last_name or "N/A",
                "hubspotId": result.remote_id,
                "operation": result.operation.value,
                "syncedAt": _now_iso(),
            },
        },
    )
