"""
Job poller — fixed-interval status checks until every job is terminal.

One poller owns one asyncio task. It is started once per batch and stops
itself when the open set drains; ``stop()`` and ``async with`` release it
early.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from app.receipts.schemas import JobResult
from app.receipts.upstream import ReceiptAPIClient, UpstreamError
from app.receipts.workflow.batch import BatchState, Job, ReceiptBatch
from app.receipts.workflow.cancellation import cancel_job

logger = logging.getLogger(__name__)


class JobPoller:
    def __init__(
        self,
        batch: ReceiptBatch,
        client: ReceiptAPIClient,
        token: str,
        interval: float = 2.0,
        max_attempts: int = 0,
    ):
        self.batch = batch
        self.client = client
        self.token = token
        self.interval = interval
        self.max_attempts = max_attempts
        self.ticks = 0
        self._attempts: dict[str, int] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Poller already started")
        if not self.batch.has_open_jobs:
            self.batch.state = BatchState.DRAINED
            return
        self.batch.state = BatchState.POLLING
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Polling %d job(s) for batch %s", len(self.batch.open_jobs()), self.batch.batch_id)

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Poller stopped for batch %s", self.batch.batch_id)

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def __aenter__(self) -> "JobPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        while self.batch.has_open_jobs:
            await asyncio.sleep(self.interval)
            await self.tick()
        if self.batch.state == BatchState.POLLING:
            self.batch.state = BatchState.DRAINED
        logger.info("Batch %s drained after %d tick(s)", self.batch.batch_id, self.ticks)

    # ── One cycle ────────────────────────────────────────────────────────

    async def tick(self) -> None:
        """Check every job that was open when the cycle started."""
        snapshot = self.batch.open_jobs()
        if not snapshot:
            return
        self.ticks += 1
        await asyncio.gather(*(self._check(job) for job in snapshot))

    async def _check(self, job: Job) -> None:
        if not self.batch.is_open(job):
            return
        attempts = self._attempts.get(job.job_id, 0) + 1
        self._attempts[job.job_id] = attempts

        try:
            status = await asyncio.to_thread(self.client.get_job, self.token, job.job_id)
        except UpstreamError as e:
            logger.warning("Status check failed for job %s, retrying: %s", job.job_id, e.message)
            status = None

        # the file may have been removed while the check was in flight
        if not self.batch.is_open(job):
            return

        if status is not None and status.status == "completed":
            try:
                result = JobResult.completed(job.job_id, job.original_name, status.result or {})
            except ValidationError:
                logger.error("Unreadable extraction result for job %s", job.job_id)
                result = JobResult.failed("Unreadable extraction result", job.job_id, job.original_name)
            self.batch.record_result(job.file_key, result)
            logger.info("Job %s %s", job.job_id, result.status)
        elif status is not None and status.status == "failed":
            self.batch.record_result(
                job.file_key,
                JobResult.failed(status.error or "Processing failed", job.job_id, job.original_name),
            )
            logger.info("Job %s failed: %s", job.job_id, status.error)
        elif self.max_attempts and attempts >= self.max_attempts:
            self.batch.record_result(
                job.file_key,
                JobResult.failed(
                    f"Processing timed out after {attempts} checks", job.job_id, job.original_name
                ),
            )
            logger.warning("Job %s gave up after %d checks", job.job_id, attempts)
            self.batch.forget_job(job.file_key)
            await cancel_job(self.client, self.token, job)
