"""Contact sync engine -- reflects one local submission into HubSpot.

Per submission the lifecycle is::

    unsynced --(sync)--> synced          (terminal)
        |                  ^
        +--> sync_failed --+ (may be retried)

For each call on an eligible submission the engine:
1. Upserts the contact through HubSpotClient.sync_contact (never raises)
2. Appends exactly one audit row carrying the client's result
3. On success: stores the remote id and marks the submission synced, then
   bumps the daily synced counter (best effort)
4. On failure, or when the audit row or the synced mark could not be
   written: marks the submission sync_failed so it is attempted again
5. Best-effort logs a timeline note on the contact; failures there never
   change the submission's state

Syncs for the same email are serialised within this process so two
concurrent submissions cannot both miss the lookup and create duplicates.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from prometheus_client import Counter

from src.contact_hub.contacts.repository import (
    FormAnalyticsRepository,
    SubmissionRepository,
    SyncAuditLog,
)
from src.contact_hub.contacts.schemas import SubmissionRead, SyncAttemptCreate
from src.contact_hub.crm.hubspot import HubSpotClient
from src.contact_hub.crm.properties import split_full_name
from src.contact_hub.crm.schemas import (
    ActivityPayload,
    ContactPayload,
    SyncOperation,
    SyncResult,
)

logger = structlog.get_logger(__name__)

crm_sync_total = Counter(
    "crm_sync_total",
    "CRM contact sync outcomes",
    ["operation", "outcome"],
)

LEAD_LIFECYCLE_STAGE = "lead"
ACTIVITY_TYPE = "contact_form_submission"


def build_contact_payload(submission: SubmissionRead) -> ContactPayload:
    """Map a stored submission to the CRM contact payload."""
    first_name, last_name = split_full_name(submission.name)
    custom_fields: dict[str, str] = {"hs_message": submission.message}
    if submission.use_case:
        custom_fields["hs_use_case"] = submission.use_case
    return ContactPayload(
        email=submission.email,
        first_name=first_name,
        last_name=last_name,
        company=submission.company,
        lifecycle_stage=LEAD_LIFECYCLE_STAGE,
        custom_fields=custom_fields,
    )


def build_activity_payload(submission: SubmissionRead) -> ActivityPayload:
    """Timeline note summarising the submission."""
    return ActivityPayload(
        email=submission.email,
        activity_type=ACTIVITY_TYPE,
        activity_text=(
            f"Contact form submission from {submission.name}\n\n"
            f"Use Case: {submission.use_case or 'N/A'}\n\n"
            f"Message: {submission.message}"
        ),
    )


class ContactSyncEngine:
    """Orchestrates the create-or-update of one submission in HubSpot.

    Args:
        client: HubSpotClient used for all remote calls.
        submissions: Submission repository (sync state).
        audit_log: Append-only sync attempt log.
        analytics: Daily counters.
        form_name: Analytics bucket for synced counts.
    """

    def __init__(
        self,
        client: HubSpotClient,
        submissions: SubmissionRepository,
        audit_log: SyncAuditLog,
        analytics: FormAnalyticsRepository,
        form_name: str = "contact",
    ) -> None:
        self._client = client
        self._submissions = submissions
        self._audit_log = audit_log
        self._analytics = analytics
        self._form_name = form_name
        self._email_locks: dict[str, asyncio.Lock] = {}
        self._email_lock_users: defaultdict[str, int] = defaultdict(int)

    async def sync_submission(self, submission_id: int) -> SyncResult | None:
        """Sync one submission to the CRM.

        Returns:
            The client's SyncResult, or None if the submission doesn't exist
            or is already synced (nothing attempted, nothing logged).
        """
        submission = await self._submissions.get(submission_id)
        if submission is None:
            logger.warning("sync.submission_missing", submission_id=submission_id)
            return None

        async with self._email_lock(submission.email):
            # Re-read under the lock: another worker may have synced it meanwhile
            submission = await self._submissions.get(submission_id)
            if submission is None or not submission.sync_status.can_sync:
                logger.info(
                    "sync.already_synced",
                    submission_id=submission_id,
                    remote_id=submission.hubspot_contact_id if submission else None,
                )
                return None
            result = await self._sync_locked(submission)

        await self._log_activity(submission)
        return result

    @asynccontextmanager
    async def _email_lock(self, email: str) -> AsyncIterator[None]:
        """Hold a per-email lock; the lock is dropped once nobody needs it."""
        key = email.strip().lower()
        lock = self._email_locks.setdefault(key, asyncio.Lock())
        self._email_lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._email_lock_users[key] -= 1
            if self._email_lock_users[key] == 0:
                del self._email_lock_users[key]
                del self._email_locks[key]

    async def _sync_locked(self, submission: SubmissionRead) -> SyncResult:
        result = await self._client.sync_contact(build_contact_payload(submission))
        operation = result.operation or SyncOperation.CREATE

        # The audit row is written before the lifecycle flips, so a missing row
        # leaves the submission eligible for another attempt.
        audited = await self._append_audit(submission, operation, result)

        if result.success and audited:
            if await self._mark_synced(submission.id, result.remote_id):
                await self._increment_synced(submission.id)
        else:
            await self._mark_failed_quietly(submission.id)

        crm_sync_total.labels(
            operation=operation.value,
            outcome="success" if result.success else "failure",
        ).inc()

        if result.success:
            logger.info(
                "sync.completed",
                submission_id=submission.id,
                remote_id=result.remote_id,
                operation=operation.value,
            )
        else:
            logger.error(
                "sync.failed",
                submission_id=submission.id,
                operation=operation.value,
                error=result.error,
            )
        return result

    async def _append_audit(
        self,
        submission: SubmissionRead,
        operation: SyncOperation,
        result: SyncResult,
    ) -> bool:
        """Record the client's result; returns False if the row was not written."""
        try:
            await self._audit_log.append(
                SyncAttemptCreate(
                    submission_id=submission.id,
                    email=submission.email,
                    operation=operation.value,
                    success=result.success,
                    response=result.model_dump_json() if result.success else None,
                    error_message=None if result.success else result.error,
                )
            )
        except Exception:
            logger.exception(
                "sync.audit_failed",
                submission_id=submission.id,
                operation=operation.value,
                success=result.success,
                remote_id=result.remote_id if result.success else None,
                error=None if result.success else result.error,
            )
            return False
        return True

    async def _mark_synced(self, submission_id: int, remote_id: str) -> bool:
        try:
            await self._submissions.mark_synced(submission_id, remote_id)
        except Exception:
            logger.exception(
                "sync.mark_synced_failed",
                submission_id=submission_id,
                remote_id=remote_id,
            )
            await self._mark_failed_quietly(submission_id)
            return False
        return True

    async def _increment_synced(self, submission_id: int) -> None:
        try:
            await self._analytics.increment_synced(self._form_name)
        except Exception:
            logger.exception(
                "sync.analytics_failed",
                submission_id=submission_id,
                form_name=self._form_name,
            )

    async def _mark_failed_quietly(self, submission_id: int) -> None:
        try:
            await self._submissions.mark_sync_failed(submission_id)
        except Exception:
            logger.exception("sync.mark_failed_error", submission_id=submission_id)

    async def _log_activity(self, submission: SubmissionRead) -> None:
        """Attach a timeline note; never affects the submission's sync state."""
        try:
            activity = await self._client.log_activity(build_activity_payload(submission))
        except Exception:
            logger.exception("sync.activity_error", submission_id=submission.id)
            return
        if not activity.success:
            logger.warning(
                "sync.activity_not_logged",
                submission_id=submission.id,
                error=activity.error,
            )
