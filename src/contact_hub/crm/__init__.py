"""HubSpot CRM integration -- resilient client and payload translation.

Provides:
- HubSpotClient: contact upsert, list membership, deals, activity notes
- call_with_retry / RetryPolicy: per-attempt timeout with exponential backoff
- Result models: SyncSuccess/SyncFailure and friends, never exceptions
"""

from src.contact_hub.crm.hubspot import HubSpotClient
from src.contact_hub.crm.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry
from src.contact_hub.crm.schemas import (
    ActivityPayload,
    ContactPayload,
    DealPayload,
    FailureKind,
    SyncFailure,
    SyncOperation,
    SyncResult,
    SyncSuccess,
)

__all__ = [
    "HubSpotClient",
    "RetryPolicy",
    "DEFAULT_RETRY_POLICY",
    "call_with_retry",
    "ActivityPayload",
    "ContactPayload",
    "DealPayload",
    "FailureKind",
    "SyncFailure",
    "SyncOperation",
    "SyncResult",
    "SyncSuccess",
]
