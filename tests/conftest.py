"""Shared test doubles and fixtures.

Provides:
- HubSpotStub: in-memory HubSpot v3 API served through httpx.MockTransport
- SleepRecorder: stand-in for asyncio.sleep that records backoff delays
- In-memory submission, audit log and analytics repositories
- Fixtures wiring those into a HubSpotClient and ContactSyncEngine

No real database or network is touched.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio

from src.contact_hub.contacts.schemas import (
    SubmissionCreate,
    SubmissionRead,
    SyncAttemptCreate,
    SyncAttemptRead,
    SyncStatus,
)
from src.contact_hub.crm.hubspot import HubSpotClient
from src.contact_hub.crm.retry import RetryPolicy
from src.contact_hub.sync.engine import ContactSyncEngine

HUBSPOT_BASE_URL = "https://api.hubapi.com"
TEST_API_KEY = "pat-test-key"


# ── HubSpot Stub ─────────────────────────────────────────────────────────────


class HubSpotStub:
    """Minimal in-memory HubSpot CRM.

    Contacts are stored by id. Responses queued with ``fail_next`` are
    returned (in order) before any routing, for any request.
    """

    CONTACT_PATH = re.compile(r"^/crm/v3/objects/contacts/(?P<id>[^/]+)$")
    LIST_PATH = re.compile(r"^/crm/v3/lists/(?P<id>[^/]+)/memberships/add$")

    def __init__(self) -> None:
        self.contacts: dict[str, dict[str, str]] = {}
        self.notes: list[dict[str, Any]] = []
        self.deals: list[dict[str, Any]] = []
        self.list_members: dict[str, list[str]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_next: list[httpx.Response] = []
        self.note_status: int | None = None
        self._next_id = 1001

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def add_contact(self, email: str, **properties: str) -> str:
        contact_id = str(self._next_id)
        self._next_id += 1
        self.contacts[contact_id] = {"email": email, **properties}
        return contact_id

    def fail_with(self, status_code: int, times: int = 1, message: str = "stub failure") -> None:
        for _ in range(times):
            self.fail_next.append(
                httpx.Response(status_code, json={"status": "error", "message": message})
            )

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            return self.fail_next.pop(0)

        body = json.loads(request.content) if request.content else None
        path = request.url.path

        if request.method == "POST" and path == "/crm/v3/objects/contacts/search":
            return self._search(body)
        if request.method == "POST" and path == "/crm/v3/objects/contacts":
            contact_id = self.add_contact(**body["properties"])
            return httpx.Response(201, json={"id": contact_id, "properties": body["properties"]})
        if request.method == "PATCH" and (match := self.CONTACT_PATH.match(path)):
            contact_id = match["id"]
            if contact_id not in self.contacts:
                return httpx.Response(404, json={"message": "resource not found"})
            self.contacts[contact_id].update(body["properties"])
            return httpx.Response(200, json={"id": contact_id, "properties": body["properties"]})
        if request.method == "POST" and path == "/crm/v3/objects/notes":
            if self.note_status is not None:
                return httpx.Response(self.note_status, json={"message": "note rejected"})
            self.notes.append(body)
            return httpx.Response(201, json={"id": f"note-{len(self.notes)}"})
        if request.method == "POST" and path == "/crm/v3/objects/deals":
            self.deals.append(body)
            return httpx.Response(201, json={"id": f"deal-{len(self.deals)}"})
        if request.method == "PUT" and (match := self.LIST_PATH.match(path)):
            self.list_members.setdefault(match["id"], []).extend(body)
            return httpx.Response(200, json={"recordIdsAdded": body, "recordIdsMissing": []})

        return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})

    def _search(self, body: dict[str, Any]) -> httpx.Response:
        email = body["filterGroups"][0]["filters"][0]["value"]
        matches = sorted(
            (cid for cid, props in self.contacts.items() if props.get("email") == email),
            key=int,
            reverse=True,
        )
        results = [{"id": cid, "properties": {"email": email}} for cid in matches[: body["limit"]]]
        return httpx.Response(200, json={"total": len(matches), "results": results})


class SleepRecorder:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ── In-Memory Repositories ──────────────────────────────────────────────────


class InMemorySubmissionRepository:
    """In-memory SubmissionRepository for testing without database."""

    def __init__(self) -> None:
        self._rows: dict[int, SubmissionRead] = {}
        self._next_id = 1
        self.fail_create = False
        self.fail_mark_synced = False

    async def create(self, data: SubmissionCreate) -> SubmissionRead:
        if self.fail_create:
            raise ConnectionError("database unavailable")
        submission = SubmissionRead(
            id=self._next_id,
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._rows[submission.id] = submission
        self._next_id += 1
        return submission

    async def get(self, submission_id: int) -> SubmissionRead | None:
        return self._rows.get(submission_id)

    async def mark_synced(self, submission_id: int, hubspot_contact_id: str) -> None:
        if self.fail_mark_synced:
            raise ConnectionError("database unavailable")
        now = datetime.now(timezone.utc)
        self._update(
            submission_id,
            sync_status=SyncStatus.SYNCED,
            hubspot_contact_id=hubspot_contact_id,
            last_sync_attempt_at=now,
            synced_at=now,
        )

    async def mark_sync_failed(self, submission_id: int) -> None:
        self._update(
            submission_id,
            sync_status=SyncStatus.SYNC_FAILED,
            last_sync_attempt_at=datetime.now(timezone.utc),
        )

    async def list_pending(self, limit: int = 500) -> list[SubmissionRead]:
        pending = [s for s in self._rows.values() if s.sync_status.can_sync]
        return sorted(pending, key=lambda s: s.created_at)[:limit]

    def _update(self, submission_id: int, **values: Any) -> None:
        if submission_id in self._rows:
            self._rows[submission_id] = self._rows[submission_id].model_copy(update=values)


class InMemorySyncAuditLog:
    """In-memory SyncAuditLog for testing without database."""

    def __init__(self) -> None:
        self.entries: list[SyncAttemptRead] = []

    async def append(self, entry: SyncAttemptCreate) -> SyncAttemptRead:
        previous = await self.count_for_submission(entry.submission_id)
        record = SyncAttemptRead(
            id=len(self.entries) + 1,
            attempt_number=previous + 1,
            created_at=datetime.now(timezone.utc),
            **entry.model_dump(),
        )
        self.entries.append(record)
        return record

    async def list_for_submission(self, submission_id: int) -> list[SyncAttemptRead]:
        return [e for e in self.entries if e.submission_id == submission_id]

    async def count_for_submission(self, submission_id: int) -> int:
        return len(await self.list_for_submission(submission_id))


class InMemoryFormAnalytics:
    """In-memory FormAnalyticsRepository keeping today's counters per form."""

    def __init__(self) -> None:
        self.counters: dict[str, dict[str, int]] = {}

    def _row(self, form_name: str) -> dict[str, int]:
        return self.counters.setdefault(
            form_name,
            {"total": 0, "successful": 0, "failed": 0, "crm_synced": 0},
        )

    async def record_submission(self, form_name: str, success: bool) -> None:
        row = self._row(form_name)
        row["total"] += 1
        row["successful" if success else "failed"] += 1

    async def increment_synced(self, form_name: str) -> None:
        self._row(form_name)["crm_synced"] += 1


# ── Fixtures ────────────────────────────────────────────────────────────────


FAST_POLICY = RetryPolicy(max_attempts=3, timeout_seconds=1.0, initial_delay_seconds=2.0)


@pytest.fixture
def hubspot_stub() -> HubSpotStub:
    return HubSpotStub()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def hubspot_client(hubspot_stub, sleep_recorder) -> HubSpotClient:
    """HubSpotClient talking to the stub; backoff delays are recorded, not slept."""
    return HubSpotClient(
        api_key=TEST_API_KEY,
        base_url=HUBSPOT_BASE_URL,
        retry_policy=FAST_POLICY,
        transport=hubspot_stub.transport(),
        sleep=sleep_recorder,
    )


@pytest.fixture
def submissions() -> InMemorySubmissionRepository:
    return InMemorySubmissionRepository()


@pytest.fixture
def audit_log() -> InMemorySyncAuditLog:
    return InMemorySyncAuditLog()


@pytest.fixture
def analytics() -> InMemoryFormAnalytics:
    return InMemoryFormAnalytics()


@pytest_asyncio.fixture
async def sync_engine(hubspot_client, submissions, audit_log, analytics) -> ContactSyncEngine:
    return ContactSyncEngine(
        client=hubspot_client,
        submissions=submissions,
        audit_log=audit_log,
        analytics=analytics,
        form_name="contact",
    )
