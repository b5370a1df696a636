"""
Receipt intake contracts — JSON shapes shared by the workflow, the upstream
client and the HTTP API.

Upstream speaks camelCase. Models that mirror upstream records accept either
spelling and keep the camelCase names when dumped ``by_alias=True``, which is
how FastAPI renders them.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractedFields(BaseModel):
    """Structured data read off a receipt by the OCR engine."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    shop_name: Optional[str] = Field(default=None, alias="shopName")
    date: Optional[str] = None
    address: Optional[str] = None
    tin_number: Optional[str] = Field(default=None, alias="tinNumber")
    amount_due: Optional[str] = Field(default=None, alias="amountDue")


JobStatusName = Literal["pending", "processing", "completed", "failed"]
TERMINAL_STATUSES = frozenset({"completed", "failed"})


class JobStatus(BaseModel):
    """Body of ``GET /api/receipts/jobs/{jobId}``."""
    status: JobStatusName
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Per-file results
# ---------------------------------------------------------------------------

class JobResult(BaseModel):
    """Terminal outcome of one file. A pending file has no result at all."""
    status: Literal["completed", "failed"]
    job_id: Optional[str] = None
    original_name: Optional[str] = None
    extracted: Optional[ExtractedFields] = None
    file_path: Optional[str] = None
    error: Optional[str] = None
    saved_receipt_id: Optional[str] = None

    @classmethod
    def completed(cls, job_id: str, original_name: str, payload: dict[str, Any]) -> "JobResult":
        return cls(
            status="completed",
            job_id=job_id,
            original_name=payload.get("originalName") or original_name,
            extracted=ExtractedFields.model_validate(payload.get("extracted") or {}),
            file_path=payload.get("filePath"),
        )

    @classmethod
    def failed(cls, error: str, job_id: Optional[str] = None, original_name: Optional[str] = None) -> "JobResult":
        return cls(status="failed", job_id=job_id, original_name=original_name, error=error)

    @property
    def is_saved(self) -> bool:
        return self.saved_receipt_id is not None


# ---------------------------------------------------------------------------
# Saved receipts
# ---------------------------------------------------------------------------

class SavedReceipt(BaseModel):
    """A persisted receipt record as returned by the HR backend."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    file_path: Optional[str] = Field(default=None, alias="filePath")
    original_name: Optional[str] = Field(default=None, alias="originalName")
    extracted: ExtractedFields = Field(default_factory=ExtractedFields)
    month_year_key: Optional[str] = Field(default=None, alias="monthYearKey")
    job_id: Optional[str] = Field(default=None, alias="jobId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator("extracted", mode="before")
    @classmethod
    def _missing_extraction(cls, value):
        return value or {}


class ReceiptGroup(BaseModel):
    month_year_key: str
    display_label: str
    count: int
    total: str
    items: list[SavedReceipt] = Field(default_factory=list)


class SavedReceiptsResponse(BaseModel):
    groups: list[ReceiptGroup] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Batch views
# ---------------------------------------------------------------------------

class BatchFileView(BaseModel):
    file_key: str
    position: int
    original_name: str
    job_id: Optional[str] = None
    result: Optional[JobResult] = None


class BatchView(BaseModel):
    batch_id: str
    state: Literal["idle", "polling", "drained"]
    files: list[BatchFileView] = Field(default_factory=list)
    all_resolved: bool = False


class RemovalResponse(BaseModel):
    batch: BatchView
    cancelled_job_id: Optional[str] = None
    cancel_error: Optional[str] = None


class SaveFailure(BaseModel):
    file_key: str
    position: int
    reason: Literal["duplicate", "error", "extraction_failed"]
    message: str


class SaveOutcome(BaseModel):
    kind: Literal["all_saved", "partial", "none_saved"]
    saved: list[SavedReceipt] = Field(default_factory=list)
    failures: list[SaveFailure] = Field(default_factory=list)
    message: str = ""

    @property
    def attempted(self) -> int:
        return len(self.saved) + len(self.failures)


class SaveResponse(BaseModel):
    outcome: SaveOutcome
    batch: BatchView


# ---------------------------------------------------------------------------
# Manager report
# ---------------------------------------------------------------------------

class EmployeeReimbursements(BaseModel):
    user_id: str
    user_name: str
    user_email: str = ""
    total_amount: str
    receipts: list[SavedReceipt] = Field(default_factory=list)


class ReimbursementReport(BaseModel):
    start_date: str
    end_date: str
    employees: list[EmployeeReimbursements] = Field(default_factory=list)
