from app.receipts.schemas.base import (
    BatchFileView,
    BatchView,
    EmployeeReimbursements,
    ExtractedFields,
    JobResult,
    JobStatus,
    ReceiptGroup,
    ReimbursementReport,
    RemovalResponse,
    SavedReceipt,
    SavedReceiptsResponse,
    SaveFailure,
    SaveOutcome,
    SaveResponse,
    TERMINAL_STATUSES,
)

__all__ = [
    "BatchFileView",
    "BatchView",
    "EmployeeReimbursements",
    "ExtractedFields",
    "JobResult",
    "JobStatus",
    "ReceiptGroup",
    "ReimbursementReport",
    "RemovalResponse",
    "SavedReceipt",
    "SavedReceiptsResponse",
    "SaveFailure",
    "SaveOutcome",
    "SaveResponse",
    "TERMINAL_STATUSES",
]
