"""
HR backend client for the receipt endpoints.

Every call carries ``Authorization: Bearer <token>`` and raises
:class:`UpstreamError` on transport failures and non-2xx responses.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError

from app.config import settings
from app.receipts.schemas import JobStatus

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The HR backend could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_duplicate(self) -> bool:
        return self.status_code == 409


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class ReceiptAPIClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, token: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {token}"
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"{method} {path} failed: {e}") from e
        if not response.ok:
            raise UpstreamError(_error_message(response), status_code=response.status_code)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Malformed JSON from receipts API", status_code=response.status_code) from e

    # ── Jobs ─────────────────────────────────────────────────────────────

    def upload(self, token: str, filename: str, content: bytes, content_type: str) -> str:
        """Upload one receipt image and return the server-assigned job id."""
        files = {"receipt": (filename, content, content_type)}
        body = self._json(self._request("POST", "/api/receipts/upload", token, files=files))
        job_id = body.get("jobId") if isinstance(body, dict) else None
        if not job_id:
            raise UpstreamError("Upload response carried no jobId")
        return str(job_id)

    def get_job(self, token: str, job_id: str) -> JobStatus:
        body = self._json(self._request("GET", f"/api/receipts/jobs/{job_id}", token))
        try:
            return JobStatus.model_validate(body)
        except ValidationError as e:
            raise UpstreamError(f"Unexpected job status payload for {job_id}") from e

    def cancel_job(self, token: str, job_id: str) -> None:
        self._request("DELETE", f"/api/receipts/jobs/{job_id}", token)

    # ── Receipts ─────────────────────────────────────────────────────────

    def save_receipt(self, token: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = self._json(self._request("POST", "/api/receipts", token, json=payload))
        # Some deployments wrap the record
        if isinstance(body, dict) and isinstance(body.get("receipt"), dict):
            return body["receipt"]
        return body

    def list_receipts(self, token: str) -> list[dict[str, Any]]:
        body = self._json(self._request("GET", "/api/receipts", token))
        return list(body.get("receipts") or []) if isinstance(body, dict) else []

    def list_all_receipts(self, token: str, start_date: str, end_date: str) -> list[dict[str, Any]]:
        """Manager view: every employee's receipts between two ISO dates."""
        params = {"startDate": start_date, "endDate": end_date}
        body = self._json(self._request("GET", "/api/receipts/manager/all", token, params=params))
        return list(body.get("receipts") or []) if isinstance(body, dict) else []


_client: Optional[ReceiptAPIClient] = None


def get_client() -> ReceiptAPIClient:
    """Upstream client dependency"""
    global _client
    if _client is None:
        _client = ReceiptAPIClient(settings.RECEIPTS_API_BASE_URL, timeout=settings.RECEIPTS_API_TIMEOUT)
    return _client
