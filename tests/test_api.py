"""
Integration tests for the receipt intake HTTP endpoints.
"""
import time

from app.receipts.upstream import UpstreamError

AUTH = {"Authorization": "Bearer employee-token"}
OTHER_AUTH = {"Authorization": "Bearer someone-else"}


def _files(*names, content_type="image/jpeg"):
    return [("receipts", (name, b"\xff\xd8img", content_type)) for name in names]


def _create(client, *names):
    resp = client.post("/api/batches", files=_files(*names), headers=AUTH)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _wait_drained(client, batch_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/batches/{batch_id}", headers=AUTH).json()
        if body["all_resolved"] and body["state"] == "drained":
            return body
        assert time.monotonic() < deadline, body
        time.sleep(0.02)


class TestService:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "running"
        assert client.get("/health").json() == {"status": "healthy"}

    def test_requires_bearer_token(self, client):
        resp = client.get("/api/batches/current")
        assert resp.status_code in (401, 403)


class TestBatches:
    def test_create_uploads_every_file(self, client, fake_api):
        fake_api.script("job-1", "processing")
        body = _create(client, "a.jpg", "b.jpg", "c.jpg")
        assert [f["original_name"] for f in body["files"]] == ["a.jpg", "b.jpg", "c.jpg"]
        assert [f["position"] for f in body["files"]] == [0, 1, 2]
        assert [f["job_id"] for f in body["files"]] == ["job-1", "job-2", "job-3"]
        assert body["state"] == "polling"
        assert fake_api.calls_to("upload") == ["a.jpg", "b.jpg", "c.jpg"]

    def test_polling_fills_results(self, client, fake_api):
        fake_api.script("job-2", "processing", "failed")
        batch_id = _create(client, "a.jpg", "b.jpg")["batch_id"]

        body = _wait_drained(client, batch_id)
        first, second = body["files"]
        assert first["result"]["status"] == "completed"
        assert first["result"]["extracted"]["shopName"] == "Shop job-1"
        assert second["result"]["status"] == "failed"
        assert second["result"]["error"] == "Could not read receipt"

    def test_upload_failure_resolves_immediately(self, client, fake_api):
        fake_api.upload_failures = {"a.jpg"}
        body = _create(client, "a.jpg")
        assert body["state"] == "drained"
        assert body["all_resolved"] is True
        assert body["files"][0]["result"]["error"] == "Upload rejected"
        assert fake_api.calls_to("get_job") == []

    def test_current_batch(self, client, fake_api):
        batch_id = _create(client, "a.jpg")["batch_id"]
        assert client.get("/api/batches/current", headers=AUTH).json()["batch_id"] == batch_id
        assert client.get("/api/batches/current", headers=OTHER_AUTH).status_code == 404

    def test_other_owner_cannot_see_batch(self, client, fake_api):
        batch_id = _create(client, "a.jpg")["batch_id"]
        assert client.get(f"/api/batches/{batch_id}", headers=OTHER_AUTH).status_code == 404

    def test_new_batch_replaces_previous(self, client, fake_api):
        fake_api.script("job-1", "processing")
        first = _create(client, "a.jpg")["batch_id"]
        second = _create(client, "b.jpg")["batch_id"]
        assert client.get(f"/api/batches/{first}", headers=AUTH).status_code == 404
        assert client.get("/api/batches/current", headers=AUTH).json()["batch_id"] == second

    def test_remove_file_cancels_job(self, client, fake_api):
        fake_api.script("job-2", "processing")
        body = _create(client, "a.jpg", "b.jpg", "c.jpg")
        key = body["files"][1]["file_key"]

        resp = client.delete(f"/api/batches/{body['batch_id']}/files/{key}", headers=AUTH)
        assert resp.status_code == 200
        removal = resp.json()
        assert removal["cancelled_job_id"] == "job-2"
        assert removal["cancel_error"] is None
        assert [f["original_name"] for f in removal["batch"]["files"]] == ["a.jpg", "c.jpg"]
        assert [f["position"] for f in removal["batch"]["files"]] == [0, 1]
        assert fake_api.calls_to("cancel_job") == ["job-2"]

    def test_remove_survives_cancel_failure(self, client, fake_api):
        fake_api.script("job-1", "processing")
        fake_api.cancel_error = UpstreamError("backend unreachable")
        body = _create(client, "a.jpg")
        key = body["files"][0]["file_key"]

        resp = client.delete(f"/api/batches/{body['batch_id']}/files/{key}", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["cancel_error"] == "backend unreachable"
        assert resp.json()["batch"]["files"] == []

    def test_remove_unknown_file(self, client, fake_api):
        batch_id = _create(client, "a.jpg")["batch_id"]
        resp = client.delete(f"/api/batches/{batch_id}/files/nope", headers=AUTH)
        assert resp.status_code == 404

    def test_discard_batch(self, client, fake_api):
        fake_api.script("job-1", "processing")
        batch_id = _create(client, "a.jpg")["batch_id"]
        resp = client.delete(f"/api/batches/{batch_id}", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["cancelled_jobs"] == 1
        assert client.get("/api/batches/current", headers=AUTH).status_code == 404


class TestSave:
    def test_save_refused_while_processing(self, client, fake_api):
        fake_api.script("job-1", "processing")
        batch_id = _create(client, "a.jpg")["batch_id"]
        resp = client.post(f"/api/batches/{batch_id}/save", headers=AUTH)
        assert resp.status_code == 409
        assert fake_api.calls_to("save_receipt") == []

    def test_save_all_clears_batch_and_fills_ledger(self, client, fake_api):
        batch_id = _create(client, "a.jpg", "b.jpg")["batch_id"]
        _wait_drained(client, batch_id)

        resp = client.post(f"/api/batches/{batch_id}/save", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["outcome"]["kind"] == "all_saved"
        assert len(body["outcome"]["saved"]) == 2
        assert body["batch"]["files"] == []

        fake_api.list_error = UpstreamError("backend unreachable")
        saved = client.get("/api/receipts/saved", headers=AUTH).json()
        assert saved["error"] == "backend unreachable"
        assert saved["groups"][0]["month_year_key"] == "2025-01"
        assert saved["groups"][0]["count"] == 2

    def test_partial_save_keeps_batch(self, client, fake_api):
        fake_api.script("job-3", "failed")
        fake_api.duplicates = {"job-1"}
        batch_id = _create(client, "a.jpg", "b.jpg", "c.jpg")["batch_id"]
        _wait_drained(client, batch_id)

        body = client.post(f"/api/batches/{batch_id}/save", headers=AUTH).json()
        outcome = body["outcome"]
        assert outcome["kind"] == "partial"
        assert [r["_id"] for r in outcome["saved"]] == ["r-job-2"]
        assert [f["reason"] for f in outcome["failures"]] == ["duplicate", "extraction_failed"]
        assert len(body["batch"]["files"]) == 3
        assert body["batch"]["files"][1]["result"]["saved_receipt_id"] == "r-job-2"


class TestSavedReceipts:
    def test_grouped_by_month_with_totals(self, client, fake_api):
        fake_api.records = [
            {"_id": "r1", "monthYearKey": "2024-12", "extracted": {"shopName": "A", "amountDue": "₱100.00"}},
            {"_id": "r2", "monthYearKey": "2025-01", "extracted": {"shopName": "B", "amountDue": "₱1,200.50"}},
            {"_id": "r3", "monthYearKey": "2025-01", "extracted": {"shopName": "C", "amountDue": "99.50"}},
            {"_id": "r4", "extracted": {"shopName": "D", "amountDue": "oops"}},
        ]
        resp = client.get("/api/receipts/saved", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] is None
        assert [g["month_year_key"] for g in body["groups"]] == ["2025-01", "2024-12", "Unknown Month"]
        assert body["groups"][0]["display_label"] == "January 2025"
        assert body["groups"][0]["total"] == "1300.00"
        assert body["groups"][2]["total"] == "0.00"

    def test_mirror_follows_backend(self, client, fake_api):
        fake_api.records = [{"_id": "r1", "monthYearKey": "2025-01", "extracted": {}}]
        client.get("/api/receipts/saved", headers=AUTH)
        fake_api.records = []
        body = client.get("/api/receipts/saved", headers=AUTH).json()
        assert body["groups"] == []

    def test_mirror_is_per_owner(self, client, fake_api):
        fake_api.records = [{"_id": "r1", "monthYearKey": "2025-01", "extracted": {}}]
        client.get("/api/receipts/saved", headers=AUTH)
        fake_api.list_error = UpstreamError("backend unreachable")
        body = client.get("/api/receipts/saved", headers=OTHER_AUTH).json()
        assert body["groups"] == []


class TestReport:
    def test_grouped_by_employee(self, client, fake_api):
        fake_api.manager_records = [
            {"_id": "1", "extracted": {"amountDue": "100"},
             "userId": {"_id": "u1", "firstName": "Ana", "lastName": "Reyes", "email": "ana@example.com"}},
            {"_id": "2", "extracted": {"amountDue": "₱50"},
             "userId": {"_id": "u1", "firstName": "Ana", "lastName": "Reyes", "email": "ana@example.com"}},
        ]
        resp = client.get(
            "/api/reports/reimbursements",
            params={"start_date": "2025-01-01", "end_date": "2025-01-31"},
            headers=AUTH,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["employees"][0]["user_name"] == "Ana Reyes"
        assert body["employees"][0]["total_amount"] == "150.00"
        assert fake_api.calls_to("list_all_receipts") == [("2025-01-01", "2025-01-31")]

    def test_defaults_to_current_month(self, client, fake_api):
        body = client.get("/api/reports/reimbursements", headers=AUTH).json()
        assert body["start_date"].endswith("-01")
        assert body["start_date"][:7] == body["end_date"][:7]

    def test_rejects_inverted_range(self, client, fake_api):
        resp = client.get(
            "/api/reports/reimbursements",
            params={"start_date": "2025-02-01", "end_date": "2025-01-01"},
            headers=AUTH,
        )
        assert resp.status_code == 400
