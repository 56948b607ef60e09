"""
Tests for the HTTP routes — upload, scaling run, Excel download.
"""

import json
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

from main import app

SAMPLE_CSV = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_cohort.csv")


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def cohort_records():
    students = [1, 1, 1, 2, 2, 2, 3, 3, 3]
    subjects = [1, 2, 3, 1, 2, 3, 1, 2, 3]
    results = [85.0, 70.0, 60.0, 90.0, 75.0, 65.0, 80.0, 68.0, 58.0]
    return [
        {"student_id": s, "subject_id": j, "result": r}
        for s, j, r in zip(students, subjects, results)
    ]


class TestScalingRoutes:
    """Tests for /api/scaling."""

    def test_run_returns_contract_fields(self, client, cohort_records):
        response = client.post(
            "/api/scaling/run",
            json={"data": cohort_records, "options": {"iterations": 10, "swing": 0}},
        )
        assert response.status_code == 200
        body = response.json()
        assert len(body["r"]) == 9
        assert len(body["p"]) == 3
        assert len(body["pdash"]) == 3
        assert len(body["max_rank_changes"]) == 10
        assert body["summary"]["total_students"] == 3

    def test_run_early_stop(self, client, cohort_records):
        response = client.post(
            "/api/scaling/run",
            json={"data": cohort_records, "options": {"iterations": 10, "swing": 2}},
        )
        body = response.json()
        assert len(body["max_rank_changes"]) == 1
        assert body["summary"]["converged"] is True

    def test_run_without_data(self, client):
        response = client.post("/api/scaling/run", json={})
        assert response.status_code == 400

    def test_run_with_duplicates(self, client, cohort_records):
        data = cohort_records + [{"student_id": 1, "subject_id": 1, "result": 50.0}]
        response = client.post("/api/scaling/run", json={"data": data})
        assert response.status_code == 400

    def test_run_with_bad_option(self, client, cohort_records):
        response = client.post(
            "/api/scaling/run",
            json={"data": cohort_records, "options": {"iterations": "many"}},
        )
        assert response.status_code == 400

    def test_defaults(self, client):
        response = client.get("/api/scaling/defaults")
        assert response.status_code == 200
        assert "reject" in response.json()["duplicate_policies"]


class TestUploadRoutes:
    """Tests for /api/upload."""

    def test_sample_dataset(self, client):
        response = client.get("/api/upload/sample/cohort")
        assert response.status_code == 200
        body = response.json()
        assert body["layout"] == "long"
        assert body["suggested_mapping"]["subject_id"] == "subject"

    def test_unknown_sample(self, client):
        response = client.get("/api/upload/sample/unknown")
        assert response.status_code == 404

    def test_upload_then_confirm(self, client):
        with open(SAMPLE_CSV, "rb") as f:
            response = client.post(
                "/api/upload/file",
                files={"file": ("cohort.csv", f.read(), "text/csv")},
            )
        assert response.status_code == 200
        body = response.json()

        confirmed = client.post(
            "/api/upload/confirm-mapping",
            data={"session_id": body["session_id"], "mapping": json.dumps(body["suggested_mapping"])},
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["row_count"] == 48

        # Session is dropped after confirmation
        again = client.get(f"/api/upload/session/{body['session_id']}")
        assert again.status_code == 404

    def test_unsupported_upload(self, client):
        response = client.post(
            "/api/upload/file",
            files={"file": ("cohort.txt", b"student_id,subject_id,result\n", "text/plain")},
        )
        assert response.status_code == 400


class TestReportRoutes:
    """Tests for /api/reports."""

    def test_excel_download(self, client, cohort_records):
        response = client.post(
            "/api/reports/excel",
            json={"data": cohort_records, "options": {"iterations": 3}},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert response.content[:2] == b"PK"


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
