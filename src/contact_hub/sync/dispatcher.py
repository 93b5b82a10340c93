"""Bounded background worker pool for CRM sync jobs.

Intake hands submission ids to SyncDispatcher.submit(), which never blocks
the request path. A fixed number of worker tasks drain the queue and run the
handler (ContactSyncEngine.sync_submission) inside an error boundary: a
handler exception is logged with traceback and counted, and the worker moves
on to the next job.

If the queue is full the job is dropped, not lost: the submission stays
"unsynced" in the database and is re-queued at the next startup sweep.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from prometheus_client import Counter, Gauge

logger = structlog.get_logger(__name__)

sync_jobs_total = Counter(
    "sync_jobs_total",
    "Background sync jobs by outcome",
    ["outcome"],
)

sync_queue_depth = Gauge(
    "sync_queue_depth",
    "Sync jobs waiting in the queue",
)


class SyncDispatcher:
    """Queue + worker tasks that run sync jobs detached from requests.

    Args:
        handler: Async callable invoked with each submitted submission id.
        worker_count: Number of concurrent worker tasks.
        maxsize: Queue capacity; submit() rejects jobs beyond it.
    """

    def __init__(
        self,
        handler: Callable[[int], Awaitable[Any]],
        worker_count: int = 4,
        maxsize: int = 1000,
    ) -> None:
        self._handler = handler
        self._worker_count = worker_count
        self._queue: asyncio.Queue[int] = asyncio.Queue(maxsize=maxsize)
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def pending(self) -> int:
        """Number of jobs waiting to be picked up."""
        return self._queue.qsize()

    async def start(self) -> None:
        """Spawn worker tasks. Calling start() twice is a no-op."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"sync-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("sync_dispatcher.started", workers=self._worker_count)

    def submit(self, submission_id: int) -> bool:
        """Queue a sync job without waiting.

        Returns:
            True if queued, False if the queue is full.
        """
        try:
            self._queue.put_nowait(submission_id)
        except asyncio.QueueFull:
            sync_jobs_total.labels(outcome="rejected").inc()
            logger.warning(
                "sync_dispatcher.queue_full",
                submission_id=submission_id,
                maxsize=self._queue.maxsize,
            )
            return False
        sync_queue_depth.set(self._queue.qsize())
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel workers. Jobs still queued stay unsynced in the database."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("sync_dispatcher.stopped", abandoned=self._queue.qsize())

    async def _worker(self, index: int) -> None:
        while True:
            submission_id = await self._queue.get()
            sync_queue_depth.set(self._queue.qsize())
            try:
                await self._handler(submission_id)
                sync_jobs_total.labels(outcome="completed").inc()
            except Exception:
                sync_jobs_total.labels(outcome="error").inc()
                logger.exception(
                    "sync_dispatcher.job_failed",
                    worker=index,
                    submission_id=submission_id,
                )
            finally:
                self._queue.task_done()
