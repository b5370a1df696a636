"""
Cancellation — local removal first, upstream cancel best-effort.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from app.receipts.upstream import ReceiptAPIClient, UpstreamError
from app.receipts.workflow.batch import Job, ReceiptBatch

logger = logging.getLogger(__name__)


@dataclass
class Removal:
    file_key: str
    position: int
    cancelled_job_id: Optional[str] = None
    cancel_error: Optional[str] = None


async def cancel_job(client: ReceiptAPIClient, token: str, job: Job) -> Optional[str]:
    """Ask the backend to drop a job. Returns the error text instead of raising."""
    try:
        await asyncio.to_thread(client.cancel_job, token, job.job_id)
    except UpstreamError as e:
        logger.warning("Cancel failed for job %s (%s): %s", job.job_id, job.original_name, e.message)
        return e.message
    logger.info("Cancelled job %s (%s)", job.job_id, job.original_name)
    return None


async def remove_file(batch: ReceiptBatch, file_key: str, client: ReceiptAPIClient, token: str) -> Removal:
    """Remove a file from the batch and cancel its job if it has one.

    The file is spliced out before the network call so later files shift
    down at once and an unreachable backend cannot keep it on screen.
    Raises FileNotInBatchError for an unknown key.
    """
    position = batch.position_of(file_key)
    job = batch.remove(file_key)
    removal = Removal(file_key=file_key, position=position)
    if job is not None:
        removal.cancelled_job_id = job.job_id
        removal.cancel_error = await cancel_job(client, token, job)
    return removal


async def cancel_unsaved(batch: ReceiptBatch, client: ReceiptAPIClient, token: str) -> int:
    """Cancel every job whose result was never saved. Returns the count attempted."""
    jobs = batch.unsaved_jobs()
    for job in jobs:
        await cancel_job(client, token, job)
    return len(jobs)
