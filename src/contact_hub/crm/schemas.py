"""Pydantic schemas for CRM payloads and call results.

Payloads describe what we want the CRM to hold; results describe what
happened. Every public HubSpotClient operation returns one of the result
models below instead of raising:
- SyncSuccess / SyncFailure for contact upserts
- DealSuccess / OperationFailure for deal creation
- OperationSuccess / OperationFailure for list membership and activity notes
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class SyncOperation(str, Enum):
    """Remote operation recorded for each sync attempt."""

    CREATE = "create"
    UPDATE = "update"


class FailureKind(str, Enum):
    """Category of a failed CRM call, derived from the raised error type."""

    CREDENTIAL = "credential"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


# ── Payloads ────────────────────────────────────────────────────────────────


class ContactPayload(BaseModel):
    """Contact attributes to upsert, keyed by email."""

    email: str
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    lifecycle_stage: str | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)


class DealPayload(BaseModel):
    """Deal to create in the sales pipeline."""

    contact_email: str
    deal_name: str
    deal_stage: str | None = None
    amount: float | None = None
    properties: dict[str, str] = Field(default_factory=dict)


class ActivityPayload(BaseModel):
    """Timeline note to attach to an existing contact."""

    email: str
    activity_type: str
    activity_text: str


# ── Results ─────────────────────────────────────────────────────────────────


class SyncSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    remote_id: str
    operation: SyncOperation


class SyncFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error: str
    operation: SyncOperation | None = None
    kind: FailureKind = FailureKind.UNKNOWN


SyncResult = Union[SyncSuccess, SyncFailure]


class DealSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    deal_id: str


class OperationSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True


class OperationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error: str


DealResult = Union[DealSuccess, OperationFailure]
OperationResult = Union[OperationSuccess, OperationFailure]
