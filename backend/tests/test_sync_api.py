"""
HTTP surface tests: health checks and the manual sync trigger.

Supabase and the sync itself are mocked; the scheduler is disabled.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.config import SyncSettings
from app.dependencies import get_message_store_factory, get_sync_settings
from app.models.email_sync import SyncSummary
from app.services.message_store import CredentialLookupError


@pytest.fixture()
def store():
    return MagicMock()


@pytest.fixture()
def client(store, monkeypatch):
    """TestClient with the store and settings dependencies overridden."""
    monkeypatch.setenv("SYNC_SCHEDULER_ENABLED", "false")
    from app.main import app

    app.dependency_overrides[get_message_store_factory] = lambda: (lambda: store)
    app.dependency_overrides[get_sync_settings] = lambda: SyncSettings(scheduler_enabled=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:

    def test_health_reports_service_and_timestamp(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "email-sync-service"
        assert "T" in body["timestamp"]

    def test_health_db_ok(self, client):
        with patch("app.main.get_supabase_admin") as mock_get:
            mock_get.return_value.table.return_value.select.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
            response = client.get("/health/db")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "reachable"}

    def test_health_db_unreachable_returns_503(self, client):
        with patch("app.main.get_supabase_admin") as mock_get:
            mock_get.return_value.table.return_value.select.return_value.limit.return_value.execute.side_effect = Exception("timeout")
            response = client.get("/health/db")

        assert response.status_code == 503
        assert "timeout" in response.json()["detail"]

    def test_health_db_unconfigured_returns_503(self, client):
        with patch("app.main.get_supabase_admin", side_effect=ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")):
            response = client.get("/health/db")

        assert response.status_code == 503


class TestManualSync:

    def test_success_returns_summaries(self, client, store):
        summaries = [
            SyncSummary(user_id="user-1", user_email="a@example.com", synced=2),
            SyncSummary(user_id="user-2", user_email="b@example.com", failed=True, error="auth"),
        ]
        with patch("app.routers.sync.sync_all_users", new=AsyncMock(return_value=summaries)) as mock_sync:
            response = client.post("/sync")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Sync completed"
        assert [s["user_id"] for s in body["summaries"]] == ["user-1", "user-2"]
        assert body["summaries"][1]["failed"] is True

        args = mock_sync.call_args[0]
        assert args[0] is store
        assert isinstance(args[1], SyncSettings)

    def test_no_users_still_succeeds(self, client):
        with patch("app.routers.sync.sync_all_users", new=AsyncMock(return_value=[])):
            response = client.post("/sync")

        assert response.status_code == 200
        assert response.json()["summaries"] == []

    def test_enumeration_failure_returns_500(self, client):
        error = CredentialLookupError("Failed to fetch user email credentials: db down")
        with patch("app.routers.sync.sync_all_users", new=AsyncMock(side_effect=error)):
            response = client.post("/sync")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "db down" in body["error"]

    def test_end_to_end_with_real_orchestrator(self, client, store):
        """No users configured: the real orchestrator returns immediately."""
        store.fetch_user_credentials.return_value = []

        response = client.post("/sync")

        assert response.status_code == 200
        assert response.json()["success"] is True
        store.fetch_user_credentials.assert_called_once()

    def test_unconfigured_store_returns_500_json(self, client):
        from app.main import app

        def unconfigured():
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")

        app.dependency_overrides[get_message_store_factory] = lambda: unconfigured
        with patch("app.routers.sync.sync_all_users", new=AsyncMock()) as mock_sync:
            response = client.post("/sync")

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set",
        }
        mock_sync.assert_not_called()
