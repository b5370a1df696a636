"""
Saved receipt endpoints.

GET /api/receipts/saved              — caller's receipts grouped by month
GET /api/reports/reimbursements      — manager view grouped by employee
"""
from __future__ import annotations

import asyncio
import calendar
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.receipts.auth import get_owner, get_token
from app.receipts.database import get_db
from app.receipts.ledger import list_saved, sync_saved
from app.receipts.schemas import ReimbursementReport, SavedReceipt, SavedReceiptsResponse
from app.receipts.upstream import ReceiptAPIClient, UpstreamError, get_client
from app.receipts.workflow.grouping import group_by_employee, group_by_month

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/receipts/saved ──────────────────────────────────────────────
@router.get("/receipts/saved", response_model=SavedReceiptsResponse)
async def list_saved_receipts(
    token: str = Depends(get_token),
    owner: str = Depends(get_owner),
    client: ReceiptAPIClient = Depends(get_client),
    db: Session = Depends(get_db),
):
    error = None
    try:
        records = await asyncio.to_thread(client.list_receipts, token)
        receipts = []
        for record in records:
            try:
                receipts.append(SavedReceipt.model_validate(record))
            except ValidationError:
                logger.warning("Skipping malformed receipt record: %r", record.get("_id"))
        sync_saved(db, owner, receipts)
    except UpstreamError as e:
        # serve the local mirror and say why it may be stale
        logger.warning("Saved receipts refresh failed: %s", e.message)
        error = e.message or "Failed to load saved receipts"

    return SavedReceiptsResponse(groups=group_by_month(list_saved(db, owner)), error=error)


def _current_month() -> tuple[date, date]:
    today = date.today()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


# ── GET /api/reports/reimbursements ──────────────────────────────────────
@router.get("/reports/reimbursements", response_model=ReimbursementReport)
async def reimbursement_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: str = "",
    token: str = Depends(get_token),
    client: ReceiptAPIClient = Depends(get_client),
):
    month_start, month_end = _current_month()
    start_date = start_date or month_start
    end_date = end_date or month_end
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    try:
        records = await asyncio.to_thread(
            client.list_all_receipts, token, start_date.isoformat(), end_date.isoformat()
        )
    except UpstreamError as e:
        status = e.status_code if e.status_code in (401, 403) else 502
        raise HTTPException(status_code=status, detail=e.message or "Failed to fetch receipts")

    logger.info("Report %s..%s: %d receipt(s)", start_date, end_date, len(records))
    return ReimbursementReport(
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
        employees=group_by_employee(records, search),
    )
