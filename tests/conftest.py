"""
Shared pytest fixtures — in‑memory SQLite, a scripted HR backend and a
FastAPI TestClient wired to both.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.receipts.database import Base, get_db
from app.receipts.models import SavedReceiptModel  # noqa: F401  — register model
from app.receipts.schemas import JobStatus
from app.receipts.upstream import UpstreamError, get_client
from app.receipts.workflow import BatchRegistry
import app.receipts.workflow.registry as registry_module
from app.main import app

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

TOKEN = "employee-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


class FakeReceiptAPI:
    """Stand-in for the HR backend's receipt endpoints.

    Job statuses are scripted per job id: each check consumes one step and the
    last step repeats. A step is a status name, a JobStatus, or an exception
    to raise. Unscripted jobs complete on their first check.
    """

    def __init__(self):
        self.calls = []
        self.steps = {}
        self.upload_failures = set()
        self.duplicates = set()
        self.cancel_error = None
        self.list_error = None
        self.records = []
        self.manager_records = []
        self._uploaded = 0

    def script(self, job_id, *steps):
        self.steps[job_id] = list(steps)

    def calls_to(self, name):
        return [arg for method, arg in self.calls if method == name]

    # ── ReceiptAPIClient surface ─────────────────────────────────────────

    def upload(self, token, filename, content, content_type):
        self.calls.append(("upload", filename))
        if filename in self.upload_failures:
            raise UpstreamError("Upload rejected", status_code=400)
        self._uploaded += 1
        return f"job-{self._uploaded}"

    def get_job(self, token, job_id):
        self.calls.append(("get_job", job_id))
        steps = self.steps.get(job_id)
        step = (steps.pop(0) if len(steps) > 1 else steps[0]) if steps else "completed"
        if isinstance(step, Exception):
            raise step
        if isinstance(step, JobStatus):
            return step
        if step == "completed":
            return JobStatus(
                status="completed",
                result={
                    "filePath": f"uploads/{job_id}.jpg",
                    "extracted": {
                        "shopName": f"Shop {job_id}",
                        "date": "2025-01-15",
                        "tinNumber": "123-456-789-000",
                        "amountDue": "₱100.00",
                    },
                },
            )
        if step == "failed":
            return JobStatus(status="failed", error="Could not read receipt")
        return JobStatus(status=step)

    def cancel_job(self, token, job_id):
        self.calls.append(("cancel_job", job_id))
        if self.cancel_error is not None:
            raise self.cancel_error

    def save_receipt(self, token, payload):
        self.calls.append(("save_receipt", payload["jobId"]))
        if payload["jobId"] in self.duplicates:
            raise UpstreamError("Duplicate receipt", status_code=409)
        record = {
            "_id": f"r-{payload['jobId']}",
            "filePath": payload["filePath"],
            "originalName": payload["originalName"],
            "extracted": payload["extracted"],
            "jobId": payload["jobId"],
            "monthYearKey": "2025-01",
            "createdAt": f"2025-01-15T00:00:0{len(self.records)}Z",
        }
        self.records.append(record)
        return record

    def list_receipts(self, token):
        self.calls.append(("list_receipts", token))
        if self.list_error is not None:
            raise self.list_error
        return list(self.records)

    def list_all_receipts(self, token, start_date, end_date):
        self.calls.append(("list_all_receipts", (start_date, end_date)))
        return list(self.manager_records)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_api():
    return FakeReceiptAPI()


@pytest.fixture()
def registry(monkeypatch):
    fresh = BatchRegistry()
    monkeypatch.setattr(registry_module, "registry", fresh)
    return fresh


@pytest.fixture()
def client(db, fake_api, registry, monkeypatch):
    monkeypatch.setattr(settings, "POLL_INTERVAL_SECONDS", 0.01)

    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_client] = lambda: fake_api
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
