"""Contact form submissions: validation, storage, intake."""

from src.contact_hub.contacts.repository import (
    FormAnalyticsRepository,
    SubmissionRepository,
    SyncAuditLog,
)
from src.contact_hub.contacts.schemas import (
    ContactFormData,
    SubmissionRead,
    SyncStatus,
    validate_contact_form,
)
from src.contact_hub.contacts.service import IntakeService

__all__ = [
    "ContactFormData",
    "FormAnalyticsRepository",
    "IntakeService",
    "SubmissionRead",
    "SubmissionRepository",
    "SyncAuditLog",
    "SyncStatus",
    "validate_contact_form",
]
