"""Contact form intake.

IntakeService.submit() persists the submission, counts it, and queues the
CRM sync. The caller gets its answer as soon as the row is stored; CRM
availability never affects the response.
"""

from __future__ import annotations

import structlog

from src.contact_hub.contacts.repository import FormAnalyticsRepository, SubmissionRepository
from src.contact_hub.contacts.schemas import ContactFormData, SubmissionCreate, SubmissionRead
from src.contact_hub.sync.dispatcher import SyncDispatcher

logger = structlog.get_logger(__name__)


class IntakeService:
    """Accepts validated contact forms.

    Args:
        submissions: Submission repository.
        analytics: Daily counters.
        dispatcher: Background sync queue.
        form_name: Analytics bucket for this form.
    """

    def __init__(
        self,
        submissions: SubmissionRepository,
        analytics: FormAnalyticsRepository,
        dispatcher: SyncDispatcher,
        form_name: str = "contact",
    ) -> None:
        self._submissions = submissions
        self._analytics = analytics
        self._dispatcher = dispatcher
        self._form_name = form_name

    async def submit(self, form: ContactFormData) -> SubmissionRead:
        """Store the submission and schedule its CRM sync.

        Raises:
            Any storage error, after counting the failed submission.
        """
        try:
            submission = await self._submissions.create(SubmissionCreate.from_form(form))
            await self._analytics.record_submission(self._form_name, success=True)
        except Exception:
            logger.exception("intake.submission_failed", form_name=self._form_name)
            await self._record_failure()
            raise

        queued = self._dispatcher.submit(submission.id)
        logger.info(
            "intake.submission_accepted",
            submission_id=submission.id,
            sync_queued=queued,
        )
        return submission

    async def resync_pending(self, limit: int = 500) -> int:
        """Queue every unsynced or failed submission. Returns the number queued."""
        pending = await self._submissions.list_pending(limit=limit)
        queued = sum(1 for submission in pending if self._dispatcher.submit(submission.id))
        logger.info("intake.pending_requeued", pending=len(pending), queued=queued)
        return queued

    async def _record_failure(self) -> None:
        try:
            await self._analytics.record_submission(self._form_name, success=False)
        except Exception:
            logger.exception("intake.analytics_failed", form_name=self._form_name)
