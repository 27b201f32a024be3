from fastapi.testclient import TestClient

from servicepro.models.company import CompanySettings
from tests.utils.test_utils import assert_response_error, assert_response_success


def create_job(client: TestClient, **kwargs) -> dict:
    body = {"title": "Boiler service", "priority": "high"}
    body.update(kwargs)
    response = client.post("/api/v1/jobs/", json=body)
    assert_response_success(response, 201)
    return response.json()


class TestJobsAPI:
    """Test cases for the jobs API endpoints."""

    def test_create_and_get_job(self, client: TestClient, company_settings: CompanySettings):
        job = create_job(client)
        assert job["job_number"] == "JOB-1000"
        assert job["status"] == "scheduled"

        response = client.get(f"/api/v1/jobs/{job['id']}")
        assert_response_success(response)
        assert response.json()["job"]["priority"] == "high"
        assert response.json()["from_cache"] is False

    def test_status_transitions(self, client: TestClient, company_settings: CompanySettings):
        job = create_job(client)

        response = client.post(f"/api/v1/jobs/{job['id']}/status", json={"status": "completed"})
        assert_response_error(response, 409)

        response = client.post(f"/api/v1/jobs/{job['id']}/status", json={"status": "in_progress"})
        assert_response_success(response)
        assert response.json()["started_at"] is not None

        response = client.post(f"/api/v1/jobs/{job['id']}/status", json={"status": "paused"})
        assert response.status_code == 422

    def test_parts_and_checklist(self, client: TestClient, company_settings: CompanySettings):
        job = create_job(client)

        response = client.post(
            f"/api/v1/jobs/{job['id']}/parts",
            json={"name": "Pressure valve", "unit_cost": "35.50", "quantity_used": "2"},
        )
        assert_response_success(response, 201)
        assert response.json()["name"] == "Pressure valve"

        response = client.get(f"/api/v1/jobs/{job['id']}/checklist")
        assert_response_success(response)
        assert response.json()["items"] == []

        response = client.patch(f"/api/v1/jobs/{job['id']}/checklist/item-1", json={"completed": True})
        assert_response_error(response, 404)

    def test_notes_and_time_entries(self, client: TestClient, company_settings: CompanySettings):
        job = create_job(client)

        response = client.post(f"/api/v1/jobs/{job['id']}/notes", json={"text": "Parts ordered"})
        assert_response_success(response, 201)
        assert response.json()["text"] == "Parts ordered"

        response = client.post(f"/api/v1/jobs/{job['id']}/time-entries", json={"event": "check_in"})
        assert_response_success(response, 201)
        assert response.json()["event"] == "check_in"

    def test_list_jobs(self, client: TestClient, company_settings: CompanySettings):
        later = create_job(client, scheduled_date="2024-06-02T09:00:00")
        earlier = create_job(client, title="Duct cleaning", scheduled_date="2024-06-01T09:00:00")
        client.post(f"/api/v1/jobs/{later['id']}/status", json={"status": "in_progress"})

        response = client.get("/api/v1/jobs/")
        assert_response_success(response)
        data = response.json()
        assert data["count"] == 2
        assert [job["id"] for job in data["jobs"]] == [earlier["id"], later["id"]]
        assert data["from_cache"] is False

        response = client.get("/api/v1/jobs/", params={"status": "in_progress"})
        assert [job["id"] for job in response.json()["jobs"]] == [later["id"]]

        response = client.get("/api/v1/jobs/", params={"limit": 0})
        assert response.status_code == 422

    def test_visits_and_time_tracking(self, client: TestClient, company_settings: CompanySettings):
        job = create_job(client)
        for event, at in [("check_in", "2024-06-01T09:00:00"), ("check_out", "2024-06-01T10:00:00")]:
            response = client.post(
                f"/api/v1/jobs/{job['id']}/time-entries",
                json={"event": event, "timestamp": at, "created_by": "tech-1", "latitude": 24.7, "longitude": 46.6},
            )
            assert_response_success(response, 201)

        response = client.get(f"/api/v1/jobs/{job['id']}/time-entries")
        assert_response_success(response)
        assert [entry["event"] for entry in response.json()] == ["check_in", "check_out"]

        response = client.get(f"/api/v1/jobs/{job['id']}/visits")
        assert_response_success(response)
        assert response.json()[0]["duration_minutes"] == 60

        response = client.get(
            "/api/v1/jobs/technicians/tech-1/time-entries",
            params={"start": "2024-06-01T00:00:00", "end": "2024-06-02T00:00:00"},
        )
        assert_response_success(response)
        assert [entry["job_title"] for entry in response.json()] == ["Boiler service", "Boiler service"]

        response = client.get("/api/v1/jobs/time-tracking/stats", params={"technician": "tech-1"})
        assert_response_success(response)
        assert response.json() == {
            "total_hours_worked": 1.0,
            "location_compliance_rate": 100,
            "average_time_per_job": 60.0,
            "total_jobs_tracked": 1,
        }

    def test_unknown_job(self, client: TestClient):
        response = client.get("/api/v1/jobs/00000000-0000-0000-0000-000000000000")
        assert_response_error(response, 404)


class TestJobsOfflineAPI:
    """Test cases for job endpoints while the server database is unreachable."""

    def test_note_is_queued(self, offline_client: TestClient):
        response = offline_client.post(
            "/api/v1/jobs/00000000-0000-0000-0000-000000000002/notes",
            json={"text": "Customer asked to reschedule"},
        )
        assert response.status_code == 202
        assert response.json()["queued"] is True

        stats = offline_client.get("/api/v1/sync/stats").json()
        assert stats["total_actions"] == 1
        assert stats["actions_by_type"] == {"NOTE": 1}

    def test_check_out_is_queued(self, offline_client: TestClient):
        response = offline_client.post(
            "/api/v1/jobs/00000000-0000-0000-0000-000000000002/time-entries",
            json={"event": "check_out"},
        )
        assert response.status_code == 202

    def test_list_jobs_from_cache(self, offline_client: TestClient):
        response = offline_client.get("/api/v1/jobs/")
        assert_response_success(response)
        assert response.json()["from_cache"] is True
        assert response.json()["jobs"] == []
