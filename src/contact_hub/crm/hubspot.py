"""Async HubSpot CRM client (v3 object API).

Provides HubSpotClient, the only code in the service that talks to the CRM.
Every outbound HTTP call goes through call_with_retry (3 attempts, 10s per
attempt, 2s initial backoff by default). Public methods never raise: they
return the result models from crm.schemas so callers can branch on
``result.success`` without try/except.

Upsert semantics: contacts are keyed by email. sync_contact() issues one
filtered search (email EQ, newest object id first) and then either PATCHes
the match or creates a new contact. Both writes use the flat
``{"properties": {name: value}}`` encoding of the v3 API.

The API key is injected at construction; an empty key fails every
operation before any network call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from src.contact_hub.crm.errors import (
    ContactNotFoundError,
    CredentialError,
    MalformedResponseError,
    PermanentRemoteError,
    error_for_status,
    is_retryable_error,
)
from src.contact_hub.crm.properties import (
    build_contact_properties,
    build_deal_properties,
    to_flat_properties,
)
from src.contact_hub.crm.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry
from src.contact_hub.crm.schemas import (
    ActivityPayload,
    ContactPayload,
    DealPayload,
    DealResult,
    DealSuccess,
    FailureKind,
    OperationFailure,
    OperationResult,
    OperationSuccess,
    SyncFailure,
    SyncOperation,
    SyncResult,
    SyncSuccess,
)

logger = structlog.get_logger(__name__)

# HubSpot-defined association type ids
NOTE_TO_CONTACT_ASSOCIATION = 202
DEAL_TO_CONTACT_ASSOCIATION = 3


class HubSpotClient:
    """Client for HubSpot contact, list, deal and note operations.

    Args:
        api_key: Private app access token (sent as a bearer token).
        base_url: API root, overridable for sandboxes and tests.
        retry_policy: Retry/timeout policy applied to each HTTP call.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        sleep: Backoff sleep passed through to call_with_retry.
    """

    CONTACTS_PATH = "/crm/v3/objects/contacts"
    CONTACT_SEARCH_PATH = "/crm/v3/objects/contacts/search"
    DEALS_PATH = "/crm/v3/objects/deals"
    NOTES_PATH = "/crm/v3/objects/notes"
    LIST_MEMBERSHIP_PATH = "/crm/v3/lists/{list_id}/memberships/add"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.hubapi.com",
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._policy = retry_policy
        self._transport = transport
        self._sleep = sleep

    def is_configured(self) -> bool:
        """Return True if an API key was provided."""
        return bool(self._api_key)

    # ── Contacts ────────────────────────────────────────────────────────────

    async def sync_contact(self, contact: ContactPayload) -> SyncResult:
        """Create or update the contact identified by ``contact.email``.

        Returns:
            SyncSuccess with the remote contact id and the operation performed,
            or SyncFailure carrying the error message.
        """
        operation: SyncOperation | None = None
        try:
            properties = to_flat_properties(build_contact_properties(contact))
            existing_id = await self.find_contact_id(contact.email)

            if existing_id is not None:
                operation = SyncOperation.UPDATE
                remote_id = await self._update_contact(existing_id, properties)
            else:
                operation = SyncOperation.CREATE
                remote_id = await self._create_contact(properties)
        except Exception as exc:
            logger.error(
                "hubspot.contact_sync_failed",
                email=contact.email,
                operation=operation.value if operation else None,
                error=str(exc),
            )
            return SyncFailure(error=str(exc), operation=operation, kind=failure_kind(exc))

        logger.info(
            "hubspot.contact_synced",
            email=contact.email,
            remote_id=remote_id,
            operation=operation.value,
        )
        return SyncSuccess(remote_id=remote_id, operation=operation)

    async def find_contact_id(self, email: str) -> str | None:
        """Look up a contact id by exact email match.

        Raises:
            CredentialError, RemoteAPIError, MalformedResponseError on failure.
        """
        body = {
            "filterGroups": [
                {
                    "filters": [
                        {"propertyName": "email", "operator": "EQ", "value": email},
                    ],
                },
            ],
            "sorts": [{"propertyName": "hs_object_id", "direction": "DESCENDING"}],
            "properties": ["email"],
            "limit": 1,
        }
        data = await self._request("POST", self.CONTACT_SEARCH_PATH, body, "contacts.search")

        results = data.get("results")
        if not isinstance(results, list):
            raise MalformedResponseError("Contact search response is missing 'results'")
        if not results:
            return None
        return _require_id(results[0], "contact search result")

    async def _create_contact(self, properties: dict[str, str]) -> str:
        data = await self._request(
            "POST", self.CONTACTS_PATH, {"properties": properties}, "contacts.create"
        )
        remote_id = _require_id(data, "contact create response")
        logger.info("hubspot.contact_created", remote_id=remote_id)
        return remote_id

    async def _update_contact(self, contact_id: str, properties: dict[str, str]) -> str:
        await self._request(
            "PATCH",
            f"{self.CONTACTS_PATH}/{contact_id}",
            {"properties": properties},
            "contacts.update",
        )
        logger.info("hubspot.contact_updated", remote_id=contact_id)
        return contact_id

    # ── Lists ───────────────────────────────────────────────────────────────

    async def add_contact_to_list(self, email: str, list_id: str) -> OperationResult:
        """Add the contact with ``email`` to a static list."""
        try:
            contact_id = await self._require_contact(email)
            await self._request(
                "PUT",
                self.LIST_MEMBERSHIP_PATH.format(list_id=list_id),
                [contact_id],
                "lists.add_members",
            )
        except Exception as exc:
            logger.error("hubspot.list_add_failed", email=email, list_id=list_id, error=str(exc))
            return OperationFailure(error=str(exc))

        logger.info("hubspot.list_member_added", remote_id=contact_id, list_id=list_id)
        return OperationSuccess()

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(self, deal: DealPayload) -> DealResult:
        """Create a deal, associated with the contact when one exists."""
        try:
            body: dict[str, Any] = {
                "properties": to_flat_properties(build_deal_properties(deal)),
            }
            contact_id = await self.find_contact_id(deal.contact_email)
            if contact_id is not None:
                body["associations"] = [
                    _association(contact_id, DEAL_TO_CONTACT_ASSOCIATION),
                ]
            data = await self._request("POST", self.DEALS_PATH, body, "deals.create")
            deal_id = _require_id(data, "deal create response")
        except Exception as exc:
            logger.error("hubspot.deal_create_failed", deal_name=deal.deal_name, error=str(exc))
            return OperationFailure(error=str(exc))

        logger.info(
            "hubspot.deal_created",
            deal_id=deal_id,
            associated=contact_id is not None,
        )
        return DealSuccess(deal_id=deal_id)

    # ── Activity ────────────────────────────────────────────────────────────

    async def log_activity(self, activity: ActivityPayload) -> OperationResult:
        """Attach a note to an existing contact's timeline.

        Fails with "Contact not found in HubSpot" if the lookup finds nothing.
        """
        try:
            contact_id = await self._require_contact(activity.email)
            body = {
                "properties": {
                    "hs_timestamp": datetime.now(timezone.utc).isoformat(),
                    "hs_note_body": f"[{activity.activity_type}] {activity.activity_text}",
                },
                "associations": [
                    _association(contact_id, NOTE_TO_CONTACT_ASSOCIATION),
                ],
            }
            await self._request("POST", self.NOTES_PATH, body, "notes.create")
        except Exception as exc:
            logger.warning(
                "hubspot.activity_log_failed",
                email=activity.email,
                activity_type=activity.activity_type,
                error=str(exc),
            )
            return OperationFailure(error=str(exc))

        logger.info(
            "hubspot.activity_logged",
            remote_id=contact_id,
            activity_type=activity.activity_type,
        )
        return OperationSuccess()

    # ── Transport ───────────────────────────────────────────────────────────

    async def _require_contact(self, email: str) -> str:
        contact_id = await self.find_contact_id(email)
        if contact_id is None:
            raise ContactNotFoundError(email)
        return contact_id

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with auth headers and the attempt timeout."""
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._policy.timeout_seconds,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        payload: Any,
        operation_name: str,
    ) -> dict[str, Any]:
        """Send one JSON request through the retry wrapper and decode the body."""
        if not self._api_key:
            raise CredentialError.missing()

        async def _attempt() -> dict[str, Any]:
            async with self._client() as client:
                response = await client.request(method, path, json=payload)
            return _decode_response(response)

        return await call_with_retry(
            _attempt,
            self._policy,
            operation_name=f"hubspot.{operation_name}",
            sleep=self._sleep,
        )


# ── Helpers ─────────────────────────────────────────────────────────────────


def failure_kind(exc: BaseException) -> FailureKind:
    """Classify the error that ended a call."""
    if isinstance(exc, CredentialError):
        return FailureKind.CREDENTIAL
    if isinstance(exc, MalformedResponseError):
        return FailureKind.MALFORMED
    if isinstance(exc, ContactNotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(exc, PermanentRemoteError):
        return FailureKind.PERMANENT
    if is_retryable_error(exc):
        return FailureKind.TRANSIENT
    return FailureKind.UNKNOWN


def _decode_response(response: httpx.Response) -> dict[str, Any]:
    """Return the JSON object body of a 2xx response, raise for anything else."""
    if not response.is_success:
        raise error_for_status(response.status_code, _error_message(response))

    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise MalformedResponseError(f"Response body is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("Response body is not a JSON object")
    return data


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase or response.text[:200] or "Unknown error"


def _require_id(data: Any, context: str) -> str:
    if not isinstance(data, dict) or data.get("id") in (None, ""):
        raise MalformedResponseError(f"Missing 'id' in {context}")
    return str(data["id"])


def _association(contact_id: str, association_type_id: int) -> dict[str, Any]:
    return {
        "to": {"id": contact_id},
        "types": [
            {
                "associationCategory": "HUBSPOT_DEFINED",
                "associationTypeId": association_type_id,
            },
        ],
    }
