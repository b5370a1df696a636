"""
Receipt intake workflow.

Orchestrates: submit uploads → poll jobs → aggregate results → save batch,
with removal and cancellation possible at any point before the save.
"""
from app.receipts.workflow.batch import (
    BatchNotFoundError,
    BatchNotReadyError,
    BatchState,
    FileNotInBatchError,
    Job,
    ReceiptBatch,
    SelectedFile,
)
from app.receipts.workflow.cancellation import Removal, cancel_job, remove_file
from app.receipts.workflow.persistence import save_all
from app.receipts.workflow.poller import JobPoller
from app.receipts.workflow.registry import BatchRegistry, get_registry, owner_key
from app.receipts.workflow.submission import submit_batch

__all__ = [
    "BatchNotFoundError",
    "BatchNotReadyError",
    "BatchRegistry",
    "BatchState",
    "FileNotInBatchError",
    "Job",
    "JobPoller",
    "ReceiptBatch",
    "Removal",
    "SelectedFile",
    "cancel_job",
    "get_registry",
    "owner_key",
    "remove_file",
    "save_all",
    "submit_batch",
]
