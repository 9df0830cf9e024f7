"""Unit tests for the HTTP layer."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from jobtrack.core.errors import InvalidSyncRequestError, MailboxError, SyncConflictError
from jobtrack.core.models import Application, ApplicationStatus, SyncSummary
from jobtrack.main import app


@pytest.fixture
def client():
    """TestClient without lifespan, so no database or scheduler is started."""
    return TestClient(app)


@pytest.fixture
def processor():
    """Mock SyncProcessor instance returned by the constructor."""
    with patch("jobtrack.main.SyncProcessor") as processor_cls:
        yield processor_cls.return_value


class TestHealth:
    """Tests for /health."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSyncEndpoint:
    """Tests for POST /sync status mapping."""

    def test_success_returns_summary(self, client, processor):
        processor.sync.return_value = SyncSummary(processed=1, skipped=2, ai_calls=1, total=3, elapsed_ms=42)

        response = client.post("/sync", json={"user_id": "user-1", "days": 5})

        assert response.status_code == 200
        assert response.json() == {
            "processed": 1,
            "skipped": 2,
            "aiCalls": 1,
            "total": 3,
            "elapsedMs": 42,
            "failed": 0,
            "quotaExhausted": False,
        }
        processor.sync.assert_called_once_with("user-1", 5)

    def test_days_is_optional(self, client, processor):
        processor.sync.return_value = SyncSummary()

        client.post("/sync", json={"user_id": "user-1"})

        processor.sync.assert_called_once_with("user-1", None)

    def test_invalid_request(self, client, processor):
        processor.sync.side_effect = InvalidSyncRequestError("user_id is required")

        response = client.post("/sync", json={"user_id": ""})

        assert response.status_code == 400
        assert response.json()["detail"] == "user_id is required"

    def test_invalid_request_rejected_before_setup(self, client, monkeypatch):
        # Without a Gemini key the processor cannot be built, the request must still be a 400
        monkeypatch.setattr("jobtrack.main.settings.gemini_api_key", "")

        with patch("jobtrack.main.Database") as database_cls:
            response = client.post("/sync", json={"user_id": "", "days": 0})

        assert response.status_code == 400
        assert response.json()["detail"] == "user_id is required"
        database_cls.assert_not_called()

    def test_non_positive_days(self, client, processor):
        response = client.post("/sync", json={"user_id": "user-1", "days": 0})

        assert response.status_code == 400
        assert "window_days" in response.json()["detail"]
        processor.sync.assert_not_called()

    def test_processor_is_closed(self, client, processor):
        processor.sync.side_effect = MailboxError("No Google account linked")

        client.post("/sync", json={"user_id": "user-1"})

        processor.close.assert_called_once()

    def test_malformed_body(self, client, processor):
        response = client.post("/sync", json={"user_id": "user-1", "days": "lots"})

        assert response.status_code == 400
        processor.sync.assert_not_called()

    def test_conflict(self, client, processor):
        processor.sync.side_effect = SyncConflictError("sync already in progress")

        response = client.post("/sync", json={"user_id": "user-1"})

        assert response.status_code == 409

    def test_mailbox_failure(self, client, processor):
        processor.sync.side_effect = MailboxError("No Google account linked")

        response = client.post("/sync", json={"user_id": "user-1"})

        assert response.status_code == 502
        assert "Google account" in response.json()["detail"]

    def test_unexpected_failure_hides_details(self, client, processor):
        processor.sync.side_effect = RuntimeError("password=hunter2")

        response = client.post("/sync", json={"user_id": "user-1"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Sync failed"}


class TestApplicationsEndpoint:
    """Tests for GET /applications."""

    def test_lists_with_display_status(self, client):
        now = datetime.now(timezone.utc)
        stale = Application(
            id="a1", user_id="user-1", company="Acme", position="Backend Engineer",
            status=ApplicationStatus.SENT, created_at=now - timedelta(days=30), updated_at=now - timedelta(days=30),
        )
        fresh = Application(
            id="a2", user_id="user-1", company="Globex", position="Data Engineer",
            status=ApplicationStatus.INTERVIEW, created_at=now, updated_at=now,
        )
        db = MagicMock()
        db.list_applications.return_value = [fresh, stale]

        with patch("jobtrack.main.Database", return_value=db):
            response = client.get("/applications", params={"user_id": "user-1"})

        assert response.status_code == 200
        body = response.json()
        assert [a["id"] for a in body] == ["a2", "a1"]
        assert body[0]["status"] == "INTERVIEW"
        assert body[1]["status"] == "GHOSTED"
        db.list_applications.assert_called_once_with("user-1")

    def test_user_id_required(self, client):
        response = client.get("/applications")
        assert response.status_code == 400
