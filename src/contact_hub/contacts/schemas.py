"""Pydantic schemas for contact form intake and sync bookkeeping.

Defines:
- SyncStatus: submission lifecycle (unsynced -> synced | sync_failed)
- ContactFormData + validate_contact_form(): inbound form validation
- SubmissionCreate / SubmissionRead: persisted submission
- SyncAttemptCreate / SyncAttemptRead: audit log entries
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.contact_hub.crm.errors import ContactValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED_FIELDS = ("name", "email", "message")


class SyncStatus(str, Enum):
    """Where a submission stands with respect to the CRM."""

    UNSYNCED = "unsynced"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"

    @property
    def can_sync(self) -> bool:
        return self is not SyncStatus.SYNCED


# ── Intake ──────────────────────────────────────────────────────────────────


class ContactFormData(BaseModel):
    """Validated contact form body."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    use_case: str | None = Field(default=None, alias="useCase")
    message: str = Field(min_length=1)


def validate_contact_form(body: Any) -> ContactFormData:
    """Validate a raw JSON body into ContactFormData.

    Raises:
        ContactValidationError: with the message returned to the caller as
            ``{"error": ...}`` in a 400 response.
    """
    if not isinstance(body, dict):
        raise ContactValidationError("Request body must be a JSON object")

    missing = [
        field for field in REQUIRED_FIELDS
        if not isinstance(body.get(field), str) or not body[field].strip()
    ]
    if missing:
        raise ContactValidationError("Missing required fields: name, email, message")

    if not EMAIL_PATTERN.match(body["email"].strip()):
        raise ContactValidationError("Invalid email address")

    try:
        return ContactFormData.model_validate(body)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        raise ContactValidationError(f"Invalid fields: {', '.join(fields)}") from exc


# ── Submissions ─────────────────────────────────────────────────────────────


class SubmissionCreate(BaseModel):
    """Fields persisted at intake time."""

    name: str
    email: str
    company: str | None = None
    use_case: str | None = None
    message: str

    @classmethod
    def from_form(cls, form: ContactFormData) -> SubmissionCreate:
        return cls(
            name=form.name,
            email=form.email,
            company=form.company or None,
            use_case=form.use_case or None,
            message=form.message,
        )


class SubmissionRead(BaseModel):
    """Persisted submission with sync state."""

    id: int
    name: str
    email: str
    company: str | None = None
    use_case: str | None = None
    message: str
    sync_status: SyncStatus = SyncStatus.UNSYNCED
    hubspot_contact_id: str | None = None
    created_at: datetime
    last_sync_attempt_at: datetime | None = None
    synced_at: datetime | None = None


# ── Audit Log ───────────────────────────────────────────────────────────────


class SyncAttemptCreate(BaseModel):
    """Audit entry to append for one terminal sync outcome."""

    submission_id: int
    email: str
    operation: str
    success: bool
    response: str | None = None
    error_message: str | None = None


class SyncAttemptRead(SyncAttemptCreate):
    """Stored audit entry."""

    id: int
    attempt_number: int
    created_at: datetime
