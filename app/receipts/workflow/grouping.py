"""
Grouping and totals for saved receipts.
"""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from app.receipts.schemas import EmployeeReimbursements, ReceiptGroup, SavedReceipt

logger = logging.getLogger(__name__)

UNKNOWN_MONTH = "Unknown Month"
UNKNOWN_USER = "Unknown User"

_CURRENCY_NOISE = re.compile(r"[₱$,\s]")
_MONTH_KEY = re.compile(r"^\d{4}-\d{2}$")
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%d-%m-%Y", "%B %d, %Y", "%b %d, %Y")


def parse_amount(raw: Optional[str]) -> Decimal:
    """'₱1,234.50' -> Decimal('1234.50'); anything unreadable counts as 0."""
    if not raw:
        return Decimal("0")
    cleaned = _CURRENCY_NOISE.sub("", raw)
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    return value if value.is_finite() else Decimal("0")


def format_total(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('0.01'))}"


def month_year_key(receipt: SavedReceipt) -> str:
    if receipt.month_year_key and _MONTH_KEY.match(receipt.month_year_key):
        return receipt.month_year_key
    raw_date = (receipt.extracted.date or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw_date, fmt).strftime("%Y-%m")
        except ValueError:
            continue
    return UNKNOWN_MONTH


def month_label(key: str) -> str:
    """'2025-01' -> 'January 2025'"""
    if key == UNKNOWN_MONTH:
        return key
    try:
        return datetime.strptime(key, "%Y-%m").strftime("%B %Y")
    except ValueError:
        return key


def group_by_month(receipts: Iterable[SavedReceipt]) -> list[ReceiptGroup]:
    groups: dict[str, list[SavedReceipt]] = {}
    for r in receipts:
        groups.setdefault(month_year_key(r), []).append(r)

    keys = sorted(k for k in groups if k != UNKNOWN_MONTH)
    keys.reverse()
    if UNKNOWN_MONTH in groups:
        keys.append(UNKNOWN_MONTH)

    result = []
    for key in keys:
        items = groups[key]
        total = sum((parse_amount(r.extracted.amount_due) for r in items), Decimal("0"))
        result.append(
            ReceiptGroup(
                month_year_key=key,
                display_label=month_label(key),
                count=len(items),
                total=format_total(total),
                items=items,
            )
        )
    return result


def _employee(record: dict[str, Any]) -> tuple[str, str, str]:
    user = record.get("userId")
    if not isinstance(user, dict):
        return "unknown", UNKNOWN_USER, ""
    email = user.get("email") or ""
    name = f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()
    return str(user.get("_id") or "unknown"), name or email or UNKNOWN_USER, email


def group_by_employee(records: Iterable[dict[str, Any]], search: str = "") -> list[EmployeeReimbursements]:
    """Per-employee totals for the manager report, sorted by name."""
    grouped: "OrderedDict[str, dict[str, Any]]" = OrderedDict()
    for record in records:
        try:
            receipt = SavedReceipt.model_validate(record)
        except ValidationError:
            logger.warning("Skipping malformed receipt record: %r", record.get("_id"))
            continue
        user_id, user_name, user_email = _employee(record)
        entry = grouped.setdefault(
            user_id,
            {"user_name": user_name, "user_email": user_email, "total": Decimal("0"), "receipts": []},
        )
        entry["receipts"].append(receipt)
        entry["total"] += parse_amount(receipt.extracted.amount_due)

    needle = search.strip().lower()
    employees = [
        EmployeeReimbursements(
            user_id=user_id,
            user_name=entry["user_name"],
            user_email=entry["user_email"],
            total_amount=format_total(entry["total"]),
            receipts=entry["receipts"],
        )
        for user_id, entry in grouped.items()
        if not needle or needle in entry["user_name"].lower() or needle in entry["user_email"].lower()
    ]
    employees.sort(key=lambda e: e.user_name.lower())
    return employees
