"""
Job submission — one upload per selected file, failure-isolated.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from app.config import settings
from app.receipts.schemas import JobResult
from app.receipts.upstream import ReceiptAPIClient, UpstreamError
from app.receipts.workflow.batch import BatchState, Job, ReceiptBatch, SelectedFile
from app.receipts.workflow.cancellation import cancel_job

logger = logging.getLogger(__name__)


def validate_file(selected: SelectedFile, max_bytes: int) -> Optional[str]:
    """Return a rejection message, or None if the file may be uploaded."""
    if not selected.content:
        return "File is empty"
    if not (selected.content_type or "").startswith("image/"):
        return f"Unsupported file type: {selected.content_type or 'unknown'}"
    if len(selected.content) > max_bytes:
        return f"File exceeds {max_bytes} bytes"
    return None


async def submit_batch(batch: ReceiptBatch, client: ReceiptAPIClient, token: str) -> list[Job]:
    """Upload every file in order and return the jobs that were created.

    A file that fails validation or upload gets a terminal failed result
    straight away; the remaining files are still submitted.
    """
    jobs: list[Job] = []
    for selected in batch.files:
        if not batch.contains(selected.file_key):
            continue
        rejection = validate_file(selected, settings.MAX_UPLOAD_BYTES)
        if rejection:
            logger.info("Rejected %s: %s", selected.filename, rejection)
            batch.record_result(
                selected.file_key,
                JobResult.failed(rejection, original_name=selected.filename),
            )
            continue

        try:
            job_id = await asyncio.to_thread(
                client.upload, token, selected.filename, selected.content, selected.content_type
            )
        except UpstreamError as e:
            logger.warning("Upload failed for %s: %s", selected.filename, e.message)
            batch.record_result(
                selected.file_key,
                JobResult.failed(e.message or "Upload failed", original_name=selected.filename),
            )
            continue

        job = Job(job_id=job_id, file_key=selected.file_key, original_name=selected.filename)
        if not batch.contains(selected.file_key):
            # removed while its upload was in flight
            await cancel_job(client, token, job)
            continue
        batch.add_job(job)
        jobs.append(job)
        logger.info("Job %s created for %s", job_id, selected.filename)

    if not jobs:
        batch.state = BatchState.DRAINED
    logger.info("Batch %s submitted: %d/%d uploads accepted", batch.batch_id, len(jobs), len(batch.files))
    return jobs
