"""Contact submission repositories -- async CRUD over the website schema.

Provides three repositories sharing the session_factory callable pattern:
- SubmissionRepository: submissions and their sync state
- SyncAuditLog: append-only sync attempt log
- FormAnalyticsRepository: daily per-form counters

Each method opens, commits and releases its own session. There is no
transaction spanning intake and sync: a crash in between leaves the
submission durably "unsynced", and it is picked up again on restart.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.contact_hub.contacts.models import (
    ContactSubmissionModel,
    FormAnalyticsModel,
    SyncAttemptModel,
)
from src.contact_hub.contacts.schemas import (
    SubmissionCreate,
    SubmissionRead,
    SyncAttemptCreate,
    SyncAttemptRead,
    SyncStatus,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_submission(model: ContactSubmissionModel) -> SubmissionRead:
    """Convert ContactSubmissionModel to SubmissionRead schema."""
    return SubmissionRead(
        id=model.id,
        name=model.name,
        email=model.email,
        company=model.company,
        use_case=model.use_case,
        message=model.message,
        sync_status=SyncStatus(model.sync_status),
        hubspot_contact_id=model.hubspot_contact_id,
        created_at=model.created_at,
        last_sync_attempt_at=model.last_sync_attempt_at,
        synced_at=model.synced_at,
    )


def _model_to_attempt(model: SyncAttemptModel) -> SyncAttemptRead:
    """Convert SyncAttemptModel to SyncAttemptRead schema."""
    return SyncAttemptRead(
        id=model.id,
        submission_id=model.submission_id,
        email=model.email,
        operation=model.operation,
        success=model.success,
        response=model.response,
        error_message=model.error_message,
        attempt_number=model.attempt_number,
        created_at=model.created_at,
    )


# ── Submissions ─────────────────────────────────────────────────────────────


class SubmissionRepository:
    """Async CRUD for contact form submissions.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def create(self, data: SubmissionCreate) -> SubmissionRead:
        """Insert a new submission in the unsynced state."""
        async for session in self._session_factory():
            model = ContactSubmissionModel(
                name=data.name,
                email=data.email,
                company=data.company,
                use_case=data.use_case,
                message=data.message,
                sync_status=SyncStatus.UNSYNCED.value,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info("submission.created", submission_id=model.id)
            return _model_to_submission(model)

    async def get(self, submission_id: int) -> SubmissionRead | None:
        """Get a submission by ID, or None if it doesn't exist."""
        async for session in self._session_factory():
            model = await session.get(ContactSubmissionModel, submission_id)
            if model is None:
                return None
            return _model_to_submission(model)

    async def mark_synced(self, submission_id: int, hubspot_contact_id: str) -> None:
        """Record a successful sync and the remote contact id."""
        now = datetime.now(timezone.utc)
        await self._update(
            submission_id,
            sync_status=SyncStatus.SYNCED.value,
            hubspot_contact_id=hubspot_contact_id,
            last_sync_attempt_at=now,
            synced_at=now,
        )

    async def mark_sync_failed(self, submission_id: int) -> None:
        """Record a failed sync; the submission stays eligible for retry."""
        await self._update(
            submission_id,
            sync_status=SyncStatus.SYNC_FAILED.value,
            last_sync_attempt_at=datetime.now(timezone.utc),
        )

    async def list_pending(self, limit: int = 500) -> list[SubmissionRead]:
        """List unsynced and failed submissions, oldest first."""
        async for session in self._session_factory():
            stmt = (
                select(ContactSubmissionModel)
                .where(
                    ContactSubmissionModel.sync_status.in_(
                        [SyncStatus.UNSYNCED.value, SyncStatus.SYNC_FAILED.value]
                    )
                )
                .order_by(ContactSubmissionModel.created_at.asc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [_model_to_submission(m) for m in result.scalars().all()]

    async def _update(self, submission_id: int, **values: object) -> None:
        async for session in self._session_factory():
            stmt = (
                update(ContactSubmissionModel)
                .where(ContactSubmissionModel.id == submission_id)
                .values(**values)
            )
            await session.execute(stmt)
            await session.commit()


# ── Audit Log ───────────────────────────────────────────────────────────────


class SyncAuditLog:
    """Append-only log of sync attempts, keyed by submission.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def append(self, entry: SyncAttemptCreate) -> SyncAttemptRead:
        """Store one attempt; its ordinal is one past the submission's prior attempts."""
        async for session in self._session_factory():
            count_stmt = select(func.count(SyncAttemptModel.id)).where(
                SyncAttemptModel.submission_id == entry.submission_id
            )
            previous = (await session.execute(count_stmt)).scalar_one()

            model = SyncAttemptModel(
                submission_id=entry.submission_id,
                email=entry.email,
                operation=entry.operation,
                success=entry.success,
                response=entry.response,
                error_message=entry.error_message,
                attempt_number=previous + 1,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_attempt(model)

    async def list_for_submission(self, submission_id: int) -> list[SyncAttemptRead]:
        """All attempts for a submission, in order."""
        async for session in self._session_factory():
            stmt = (
                select(SyncAttemptModel)
                .where(SyncAttemptModel.submission_id == submission_id)
                .order_by(SyncAttemptModel.attempt_number.asc())
            )
            result = await session.execute(stmt)
            return [_model_to_attempt(m) for m in result.scalars().all()]

    async def count_for_submission(self, submission_id: int) -> int:
        async for session in self._session_factory():
            stmt = select(func.count(SyncAttemptModel.id)).where(
                SyncAttemptModel.submission_id == submission_id
            )
            return (await session.execute(stmt)).scalar_one()


# ── Analytics ───────────────────────────────────────────────────────────────


class FormAnalyticsRepository:
    """Daily counters per form name, upserted with ON CONFLICT.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record_submission(self, form_name: str, success: bool) -> None:
        """Count one submission (successful or failed) for today."""
        success_count = 1 if success else 0
        failed_count = 0 if success else 1
        stmt = insert(FormAnalyticsModel).values(
            form_name=form_name,
            submission_date=func.current_date(),
            total_submissions=1,
            successful_submissions=success_count,
            failed_submissions=failed_count,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_form_analytics_form_date",
            set_={
                "total_submissions": FormAnalyticsModel.total_submissions + 1,
                "successful_submissions": (
                    FormAnalyticsModel.successful_submissions + success_count
                ),
                "failed_submissions": FormAnalyticsModel.failed_submissions + failed_count,
                "updated_at": func.now(),
            },
        )
        await self._execute(stmt)

    async def increment_synced(self, form_name: str) -> None:
        """Count one successful CRM sync for today."""
        stmt = insert(FormAnalyticsModel).values(
            form_name=form_name,
            submission_date=func.current_date(),
            crm_synced_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_form_analytics_form_date",
            set_={
                "crm_synced_count": FormAnalyticsModel.crm_synced_count + 1,
                "updated_at": func.now(),
            },
        )
        await self._execute(stmt)

    async def _execute(self, stmt: object) -> None:
        async for session in self._session_factory():
            await session.execute(stmt)
            await session.commit()
