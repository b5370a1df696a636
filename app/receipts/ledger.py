"""
Local mirror of saved receipts, one set per owner.
"""
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from app.receipts.models import SavedReceiptModel
from app.receipts.schemas import ExtractedFields, SavedReceipt
from app.receipts.workflow.grouping import month_year_key

logger = logging.getLogger(__name__)


def record_saved(db: Session, owner: str, receipts: Iterable[SavedReceipt]) -> int:
    """Insert or refresh receipts for an owner. Returns the number written."""
    count = 0
    for receipt in receipts:
        row = db.query(SavedReceiptModel).filter(SavedReceiptModel.id == receipt.id).first()
        if row is None:
            row = SavedReceiptModel(id=receipt.id, owner=owner)
            db.add(row)
        row.file_path = receipt.file_path
        row.original_name = receipt.original_name
        row.job_id = receipt.job_id
        row.month_year_key = month_year_key(receipt)
        row.extracted_json = receipt.extracted.model_dump(by_alias=True, exclude_none=True)
        row.created_at = receipt.created_at
        count += 1
    db.commit()
    logger.info("Recorded %d saved receipt(s) for owner %s", count, owner[:8])
    return count


def list_saved(db: Session, owner: str) -> list[SavedReceipt]:
    rows = (
        db.query(SavedReceiptModel)
        .filter(SavedReceiptModel.owner == owner)
        .order_by(SavedReceiptModel.created_at.desc())
        .all()
    )
    return [
        SavedReceipt(
            id=r.id,
            file_path=r.file_path,
            original_name=r.original_name,
            extracted=ExtractedFields.model_validate(r.extracted_json or {}),
            month_year_key=r.month_year_key,
            job_id=r.job_id,
            created_at=r.created_at,
        )
        for r in rows
    ]


def sync_saved(db: Session, owner: str, receipts: list[SavedReceipt]) -> int:
    """Make the owner's mirror match the backend's list exactly."""
    keep = [r.id for r in receipts]
    stale = (
        db.query(SavedReceiptModel)
        .filter(SavedReceiptModel.owner == owner, SavedReceiptModel.id.notin_(keep))
        .delete(synchronize_session=False)
    )
    if stale:
        logger.info("Dropped %d receipt(s) no longer on the backend", stale)
    return record_saved(db, owner, receipts)
