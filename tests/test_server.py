"""HTTP layer tests — routes, status codes, admin auth and error mapping.

The app is built without running its lifespan: the session manager and
worker are placed on ``app.state`` directly and ``get_db`` is overridden
to yield the AsyncMock database.
"""

import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from helpers.mocks import make_alert
from stockalert_server.app import create_app
from stockalert_server.config import ServerSettings
from stockalert_server.dependencies import get_db
from stockalert_server.routes import admin as admin_routes
from stockalert_server.routes import reference as reference_routes

ADMIN = {"X-Admin-Key": "secret"}


class RecordingWorker:
    """Stands in for DistributionWorker; records scheduled jobs."""

    def __init__(self):
        self.jobs = []
        self.retry_error: Exception | None = None

    async def run(self, job):
        self.jobs.append(job)

    async def retry_delivery(self, db, record_id):
        raise self.retry_error or ValueError(f"Delivery record {record_id} not found")


class SlowManager:
    async def handle(self, db, **kwargs):
        await asyncio.sleep(1)


@pytest.fixture
def worker():
    return RecordingWorker()


def _build(manager, worker, mock_db, **overrides):
    settings = ServerSettings(
        admin_api_key=overrides.pop("admin_api_key", "secret"),
        request_timeout_seconds=overrides.pop("request_timeout_seconds", 5.0),
    )
    app = create_app(settings)
    app.state.session_manager = manager
    app.state.worker = worker

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db
    return TestClient(app)


@pytest.fixture
def client(manager, worker, mock_db):
    return _build(manager, worker, mock_db)


def form(text="", **fields):
    body = {
        "sessionId": "ATUid_web",
        "serviceCode": "*789*12345#",
        "phoneNumber": "+254712345678",
        "networkCode": "63902",
        "text": text,
    }
    body.update(fields)
    return body


# =====================================================================
# POST /ussd — gateway callback
# =====================================================================


class TestUssdCallback:

    def test_form_request_returns_plain_text(self, client, hospital):
        resp = client.post("/api/v1/ussd", data=form())
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text.startswith("CON Welcome Kisumu County Hospital")
        assert "no-cache" in resp.headers["cache-control"]

    def test_form_validation_error_still_200(self, client):
        body = form()
        del body["phoneNumber"]
        resp = client.post("/api/v1/ussd", data=body)
        assert resp.status_code == 200
        assert resp.text == "END Invalid request. Missing required parameters."

    def test_full_report_schedules_distribution(self, client, worker, hospital, alert_repo):
        for text in ("", "1", "1*1", "1*1*1", "1*1*1*10"):
            assert client.post("/api/v1/ussd", data=form(text)).text.startswith("CON")
        resp = client.post("/api/v1/ussd", data=form("1*1*1*10*3"))
        assert resp.text.startswith("END Alert submitted successfully!")
        assert len(worker.jobs) == 1, "distribution runs once, after the response"
        assert worker.jobs[0].alert_id == alert_repo.alerts[0].id

    def test_request_is_committed(self, client, mock_db, hospital):
        client.post("/api/v1/ussd", data=form())
        mock_db.commit.assert_awaited()

    def test_json_request_returns_diagnostics(self, client, hospital):
        resp = client.post("/api/v1/ussd", json=form())
        assert resp.status_code == 200
        body = resp.json()
        assert body["result"]["endSession"] is False
        assert body["result"]["response"].startswith("Welcome")
        assert body["provider"] == "safaricom"
        assert "processingTime" in body
        assert "error" not in body

    def test_json_validation_error_is_400(self, client):
        resp = client.post("/api/v1/ussd", json=form(phoneNumber="12345"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_phone_number"

    def test_json_body_must_be_object(self, client):
        resp = client.post("/api/v1/ussd", json=["not", "an", "object"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_body"

    @pytest.mark.parametrize("field, value", [
        ("phoneNumber", 254712345678),
        ("sessionId", ["ATUid_web"]),
        ("text", {"input": "1"}),
        ("networkCode", 63902),
    ])
    def test_json_non_string_field_is_400(self, client, session_repo, field, value):
        resp = client.post("/api/v1/ussd", json=form(**{field: value}))
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"
        assert field in resp.json()["details"]
        assert session_repo.sessions == {}

    def test_json_null_field_is_a_missing_field(self, client):
        resp = client.post("/api/v1/ussd", json=form(phoneNumber=None))
        assert resp.status_code == 400
        assert resp.json()["error"] == "missing_fields"

    def test_timeout(self, worker, mock_db):
        client = _build(SlowManager(), worker, mock_db, request_timeout_seconds=0.05)
        resp = client.post("/api/v1/ussd", data=form())
        assert resp.status_code == 200
        assert resp.text == "END Request timeout. Please try again."
        mock_db.rollback.assert_awaited()

        resp = client.post("/api/v1/ussd", json=form())
        assert resp.status_code == 504
        assert resp.json()["error"] == "timeout"


# =====================================================================
# Diagnostics
# =====================================================================


class TestDiagnostics:

    def test_walkthrough_defaults(self, client, session_repo, hospital):
        resp = client.get("/api/v1/ussd")
        assert resp.status_code == 200
        body = resp.json()
        assert body["sessionId"] == "test-session-123"
        assert body["formatted"].startswith("CON ")
        assert "test-session-123" in session_repo.sessions

    def test_session_info(self, client, hospital):
        client.post("/api/v1/ussd", data=form())
        resp = client.get("/api/v1/ussd/sessions/ATUid_web")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "active"
        assert body["phone_number"].endswith("***")

    def test_session_info_not_found(self, client):
        resp = client.get("/api/v1/ussd/sessions/missing")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Resource not found"


# =====================================================================
# Admin
# =====================================================================


class TestAdmin:

    def test_missing_key(self, client):
        assert client.post("/api/v1/admin/cleanup/sessions").status_code == 401

    def test_wrong_key(self, client):
        resp = client.post("/api/v1/admin/cleanup/sessions", headers={"X-Admin-Key": "nope"})
        assert resp.status_code == 403

    def test_disabled_without_configured_key(self, manager, worker, mock_db):
        client = _build(manager, worker, mock_db, admin_api_key=None)
        resp = client.post("/api/v1/admin/cleanup/sessions", headers=ADMIN)
        assert resp.status_code == 403

    def test_cleanup(self, client):
        resp = client.post("/api/v1/admin/cleanup/sessions", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == {"affected_rows": 0, "action": "expire_stale"}

    def test_retry_unknown_record(self, client):
        resp = client.post(f"/api/v1/admin/deliveries/{uuid.uuid4()}/retry", headers=ADMIN)
        assert resp.status_code == 404

    def test_retry_not_failed(self, client, worker):
        worker.retry_error = ValueError("Delivery record x is not in failed state")
        resp = client.post(f"/api/v1/admin/deliveries/{uuid.uuid4()}/retry", headers=ADMIN)
        assert resp.status_code == 409

    def test_deliveries_for_unknown_alert(self, client, monkeypatch, alert_repo, delivery_repo):
        monkeypatch.setattr(admin_routes, "_alerts", alert_repo)
        monkeypatch.setattr(admin_routes, "_deliveries", delivery_repo)
        resp = client.get(f"/api/v1/admin/alerts/{uuid.uuid4()}/deliveries", headers=ADMIN)
        assert resp.status_code == 404

    def test_deliveries_for_alert(self, client, monkeypatch, alert_repo, delivery_repo):
        monkeypatch.setattr(admin_routes, "_alerts", alert_repo)
        monkeypatch.setattr(admin_routes, "_deliveries", delivery_repo)
        alert = make_alert()
        alert_repo.alerts.append(alert)
        resp = client.get(f"/api/v1/admin/alerts/{alert.id}/deliveries", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == []


# =====================================================================
# Reference data
# =====================================================================


class TestReference:

    def test_urgency_levels(self, client):
        resp = client.get("/api/v1/reference/urgency-levels")
        assert [u["id"] for u in resp.json()] == ["low", "medium", "high", "critical"]
        assert resp.json()[3]["option"] == "4"

    def test_providers(self, client):
        providers = {p["id"]: p for p in client.get("/api/v1/reference/providers").json()}
        assert providers["airtel"]["network_codes"] == ["63907"]
        assert providers["safaricom"]["default"] is True

    def test_drug_categories(self, client, monkeypatch, drug_repo):
        monkeypatch.setattr(reference_routes, "_drugs", drug_repo)
        body = client.get("/api/v1/reference/drug-categories").json()
        assert body == [
            {"category": "Analgesics", "drugs": ["Ibuprofen", "Paracetamol"]},
            {"category": "Antibiotics", "drugs": ["Amoxicillin"]},
        ]
