"""
Receipt batch — the result aggregator.

Files and results are keyed by a stable ``file_key`` generated when the file
is selected. Positions are derived from the ordered file list on every read,
so a removal never leaves a result pointing at the wrong file.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from app.receipts.schemas import BatchFileView, BatchView, JobResult

logger = logging.getLogger(__name__)


class BatchNotFoundError(LookupError):
    """No such batch for this owner."""


class FileNotInBatchError(LookupError):
    """The file key is not part of the batch."""


class BatchNotReadyError(RuntimeError):
    """Some files are still being processed."""


class BatchState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    DRAINED = "drained"


@dataclass
class SelectedFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    file_key: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class Job:
    job_id: str
    file_key: str
    original_name: str


class ReceiptBatch:
    def __init__(self, owner: str, files: list[SelectedFile]):
        self.batch_id = uuid.uuid4().hex
        self.owner = owner
        self.state = BatchState.IDLE
        self._files: list[SelectedFile] = list(files)
        self._results: dict[str, Optional[JobResult]] = {f.file_key: None for f in self._files}
        # every job created for a file still in the batch, open or not
        self._jobs: dict[str, Job] = {}
        self._open: dict[str, Job] = {}

    # ── Reads ────────────────────────────────────────────────────────────

    @property
    def files(self) -> list[SelectedFile]:
        return list(self._files)

    @property
    def results(self) -> list[Optional[JobResult]]:
        return [self._results[f.file_key] for f in self._files]

    @property
    def all_resolved(self) -> bool:
        return bool(self._files) and all(r is not None for r in self.results)

    @property
    def has_open_jobs(self) -> bool:
        return bool(self._open)

    def contains(self, file_key: str) -> bool:
        return file_key in self._results

    def position_of(self, file_key: str) -> int:
        for idx, f in enumerate(self._files):
            if f.file_key == file_key:
                return idx
        raise FileNotInBatchError(file_key)

    def result_for(self, file_key: str) -> Optional[JobResult]:
        return self._results.get(file_key)

    def job_for(self, file_key: str) -> Optional[Job]:
        return self._jobs.get(file_key)

    def is_open(self, job: Job) -> bool:
        return self._open.get(job.file_key) == job

    def open_jobs(self) -> list[Job]:
        """Snapshot of the open set, in file order."""
        return [self._open[f.file_key] for f in self._files if f.file_key in self._open]

    # ── Writes ───────────────────────────────────────────────────────────

    def add_job(self, job: Job) -> None:
        if job.file_key not in self._results:
            raise FileNotInBatchError(job.file_key)
        self._jobs[job.file_key] = job
        self._open[job.file_key] = job

    def record_result(self, file_key: str, result: JobResult) -> bool:
        """Write one slot and close its job. Returns False for a removed file."""
        if file_key not in self._results:
            logger.info("Dropping result for removed file %s", file_key)
            return False
        self._results[file_key] = result
        self._open.pop(file_key, None)
        return True

    def mark_saved(self, file_key: str, saved_receipt_id: str) -> None:
        result = self._results.get(file_key)
        if result is None:
            return
        self._results[file_key] = result.model_copy(update={"saved_receipt_id": saved_receipt_id})
        # saved uploads belong to the receipt now, never cancel them
        self._jobs.pop(file_key, None)

    def forget_job(self, file_key: str) -> None:
        """Drop a job that must not be cancelled again."""
        self._open.pop(file_key, None)
        self._jobs.pop(file_key, None)

    def remove(self, file_key: str) -> Optional[Job]:
        """Splice a file out and return its job if it may still be cancelled."""
        idx = self.position_of(file_key)
        del self._files[idx]
        self._results.pop(file_key, None)
        self._open.pop(file_key, None)
        job = self._jobs.pop(file_key, None)
        if not self._open and self.state == BatchState.POLLING:
            self.state = BatchState.DRAINED
        return job

    def clear(self) -> None:
        self._files.clear()
        self._results.clear()
        self._jobs.clear()
        self._open.clear()
        self.state = BatchState.DRAINED

    def unsaved_jobs(self) -> list[Job]:
        return [self._jobs[f.file_key] for f in self._files if f.file_key in self._jobs]

    # ── Views ────────────────────────────────────────────────────────────

    def to_view(self) -> BatchView:
        files = []
        for idx, f in enumerate(self._files):
            job = self._jobs.get(f.file_key)
            result = self._results[f.file_key]
            files.append(
                BatchFileView(
                    file_key=f.file_key,
                    position=idx,
                    original_name=f.filename,
                    job_id=job.job_id if job else (result.job_id if result else None),
                    result=result,
                )
            )
        return BatchView(
            batch_id=self.batch_id,
            state=self.state.value,
            files=files,
            all_resolved=self.all_resolved,
        )
