from fastapi.testclient import TestClient

from servicepro.models.company import CompanySettings
from servicepro.services import OfflineStore
from tests.utils.test_utils import assert_response_success


class TestSyncAPI:
    """Test cases for the sync API endpoints."""

    def test_sync_empty_queue(self, client: TestClient):
        response = client.post("/api/v1/sync/")
        assert_response_success(response)
        assert response.json() == {
            "success": True,
            "processed_count": 0,
            "failed_count": 0,
            "skipped_count": 0,
            "errors": [],
        }

    def test_sync_replays_queued_note(self, client: TestClient, store: OfflineStore, company_settings: CompanySettings):
        job = client.post("/api/v1/jobs/", json={"title": "Boiler service"}).json()
        store.queue_action("NOTE", {"text": "Written offline"}, job_id=job["id"])

        pending = client.get("/api/v1/sync/pending").json()
        assert len(pending) == 1
        assert pending[0]["status"] == "pending"

        response = client.post("/api/v1/sync/")
        assert_response_success(response)
        assert response.json()["processed_count"] == 1
        assert client.get("/api/v1/sync/pending").json() == []

    def test_failed_actions_stay_visible(self, client: TestClient, store: OfflineStore, company_settings: CompanySettings):
        store.queue_action("NOTE", {"text": "Orphan"}, job_id="00000000-0000-0000-0000-000000000003")

        result = client.post("/api/v1/sync/").json()
        assert result["success"] is False
        assert result["failed_count"] == 1

        pending = client.get("/api/v1/sync/pending").json()
        assert pending[0]["status"] == "failed"
        assert client.get("/api/v1/sync/stats").json()["failed_actions"] == 1
