"""
Receipt batch endpoints.

POST   /api/batches                          — upload files, start polling
GET    /api/batches/current                  — the caller's active batch
GET    /api/batches/{batch_id}               — batch view
DELETE /api/batches/{batch_id}/files/{key}   — remove one file, cancel its job
POST   /api/batches/{batch_id}/save          — save every resolved receipt
DELETE /api/batches/{batch_id}               — discard the batch
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.config import settings
from app.receipts.auth import get_owner, get_token
from app.receipts.database import get_db
from app.receipts.ledger import record_saved
from app.receipts.schemas import BatchView, RemovalResponse, SaveResponse
from app.receipts.upstream import ReceiptAPIClient, get_client
from app.receipts.workflow import (
    BatchNotFoundError,
    BatchNotReadyError,
    BatchRegistry,
    FileNotInBatchError,
    JobPoller,
    ReceiptBatch,
    SelectedFile,
    get_registry,
    remove_file,
    save_all,
    submit_batch,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _batch_or_404(registry: BatchRegistry, batch_id: str, owner: str) -> ReceiptBatch:
    try:
        return registry.get(batch_id, owner)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")


# ── POST /api/batches ────────────────────────────────────────────────────
@router.post("/batches", response_model=BatchView, status_code=201)
async def create_batch(
    receipts: List[UploadFile] = File(...),
    token: str = Depends(get_token),
    owner: str = Depends(get_owner),
    client: ReceiptAPIClient = Depends(get_client),
    registry: BatchRegistry = Depends(get_registry),
):
    if not receipts:
        raise HTTPException(status_code=400, detail="Please select or capture receipts")

    files = []
    for upload in receipts:
        files.append(
            SelectedFile(
                filename=upload.filename or "receipt",
                content=await upload.read(),
                content_type=upload.content_type or "application/octet-stream",
            )
        )

    batch = await registry.open(owner, files)
    await submit_batch(batch, client, token)
    if batch.has_open_jobs:
        registry.start_polling(
            batch,
            JobPoller(
                batch,
                client,
                token,
                interval=settings.POLL_INTERVAL_SECONDS,
                max_attempts=settings.POLL_MAX_ATTEMPTS,
            ),
        )
    return batch.to_view()


# ── GET /api/batches/current ─────────────────────────────────────────────
@router.get("/batches/current", response_model=BatchView)
def get_current_batch(
    owner: str = Depends(get_owner),
    registry: BatchRegistry = Depends(get_registry),
):
    try:
        return registry.current(owner).to_view()
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="No active batch")


# ── GET /api/batches/{batch_id} ──────────────────────────────────────────
@router.get("/batches/{batch_id}", response_model=BatchView)
def get_batch(
    batch_id: str,
    owner: str = Depends(get_owner),
    registry: BatchRegistry = Depends(get_registry),
):
    return _batch_or_404(registry, batch_id, owner).to_view()


# ── DELETE /api/batches/{batch_id}/files/{file_key} ──────────────────────
@router.delete("/batches/{batch_id}/files/{file_key}", response_model=RemovalResponse)
async def delete_batch_file(
    batch_id: str,
    file_key: str,
    token: str = Depends(get_token),
    owner: str = Depends(get_owner),
    client: ReceiptAPIClient = Depends(get_client),
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch_or_404(registry, batch_id, owner)
    try:
        removal = await remove_file(batch, file_key, client, token)
    except FileNotInBatchError:
        raise HTTPException(status_code=404, detail="File not in batch")
    logger.info("Removed file %s (position %d) from batch %s", file_key, removal.position, batch_id)
    return RemovalResponse(
        batch=batch.to_view(),
        cancelled_job_id=removal.cancelled_job_id,
        cancel_error=removal.cancel_error,
    )


# ── POST /api/batches/{batch_id}/save ────────────────────────────────────
@router.post("/batches/{batch_id}/save", response_model=SaveResponse)
async def save_batch(
    batch_id: str,
    token: str = Depends(get_token),
    owner: str = Depends(get_owner),
    client: ReceiptAPIClient = Depends(get_client),
    registry: BatchRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    batch = _batch_or_404(registry, batch_id, owner)
    try:
        outcome = await save_all(batch, client, token)
    except BatchNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if outcome.saved:
        record_saved(db, owner, outcome.saved)
    return SaveResponse(outcome=outcome, batch=batch.to_view())


# ── DELETE /api/batches/{batch_id} ───────────────────────────────────────
@router.delete("/batches/{batch_id}")
async def discard_batch(
    batch_id: str,
    token: str = Depends(get_token),
    owner: str = Depends(get_owner),
    client: ReceiptAPIClient = Depends(get_client),
    registry: BatchRegistry = Depends(get_registry),
):
    try:
        cancelled = await registry.discard(batch_id, owner, client, token)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")
    return {"message": "Batch discarded", "batch_id": batch_id, "cancelled_jobs": cancelled}
