"""
Persistence submitter — sequential bulk save with duplicate tolerance.
"""
from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from app.receipts.schemas import SavedReceipt, SaveFailure, SaveOutcome
from app.receipts.upstream import ReceiptAPIClient, UpstreamError
from app.receipts.workflow.batch import BatchNotReadyError, ReceiptBatch

logger = logging.getLogger(__name__)


def _summarize(saved: list[SavedReceipt], failures: list[SaveFailure]) -> tuple[str, str]:
    lines = "\n".join(f.message for f in failures)
    if not saved and not failures:
        return "all_saved", "All receipts are already saved"
    if not failures:
        return "all_saved", f"Successfully saved {len(saved)} receipt(s) to database"
    if saved:
        return "partial", f"Saved {len(saved)} receipt(s). {len(failures)} duplicate(s) skipped:\n{lines}"
    return "none_saved", f"No receipts saved. All were duplicates:\n{lines}"


async def save_all(batch: ReceiptBatch, client: ReceiptAPIClient, token: str) -> SaveOutcome:
    """Commit every unsaved result of a fully resolved batch, one at a time.

    Failed extractions are reported without a request; a duplicate or any
    other rejection is collected and the next receipt is still attempted.
    A fully successful run clears the batch.
    """
    if not batch.all_resolved:
        raise BatchNotReadyError("Please wait for all receipts to finish processing")

    saved: list[SavedReceipt] = []
    failures: list[SaveFailure] = []

    for idx, (selected, result) in enumerate(zip(batch.files, batch.results)):
        if result.is_saved:
            continue
        label = f"Receipt #{idx + 1}"

        if result.status == "failed":
            failures.append(
                SaveFailure(
                    file_key=selected.file_key,
                    position=idx,
                    reason="extraction_failed",
                    message=f"{label}: {result.error or 'Processing failed'}",
                )
            )
            continue

        payload = {
            "filePath": result.file_path,
            "originalName": result.original_name or selected.filename,
            "extracted": result.extracted.model_dump(by_alias=True, exclude_none=True) if result.extracted else {},
            "jobId": result.job_id,
        }
        try:
            record = await asyncio.to_thread(client.save_receipt, token, payload)
            receipt = SavedReceipt.model_validate(record)
        except ValidationError:
            failures.append(
                SaveFailure(
                    file_key=selected.file_key,
                    position=idx,
                    reason="error",
                    message=f"{label}: Unexpected response from receipts API",
                )
            )
            logger.error("Unreadable save response for %s", selected.filename)
            continue
        except UpstreamError as e:
            if e.is_duplicate:
                failures.append(
                    SaveFailure(
                        file_key=selected.file_key,
                        position=idx,
                        reason="duplicate",
                        message=f"{label}: {e.message or 'Duplicate receipt'}",
                    )
                )
            else:
                failures.append(
                    SaveFailure(
                        file_key=selected.file_key,
                        position=idx,
                        reason="error",
                        message=f"{label}: {e.message or 'Save failed'}",
                    )
                )
            logger.warning("Save failed for %s (%s): %s", selected.filename, e.status_code, e.message)
            continue

        batch.mark_saved(selected.file_key, receipt.id)
        saved.append(receipt)
        logger.info("Saved receipt %s from %s", receipt.id, selected.filename)

    kind, message = _summarize(saved, failures)
    if kind == "all_saved":
        batch.clear()
    logger.info("Batch %s save: %d saved, %d failed", batch.batch_id, len(saved), len(failures))
    return SaveOutcome(kind=kind, saved=saved, failures=failures, message=message)
