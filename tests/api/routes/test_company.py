from fastapi.testclient import TestClient

from servicepro.models.company import CompanySettings
from tests.utils.test_utils import assert_response_error, assert_response_success


class TestCompanySettingsAPI:
    """Test cases for the company settings API endpoints."""

    def test_get_settings_not_configured(self, client: TestClient):
        response = client.get("/api/v1/company-settings/")
        assert_response_error(response, 404)
        assert response.json()["detail"] == "Company settings not configured"

    def test_initialize_settings(self, client: TestClient):
        response = client.post("/api/v1/company-settings/initialize")
        assert_response_success(response)

        data = response.json()
        assert data["company_name_en"] == "ServicePro"
        assert data["next_quote_number"] == 1000

        # Initializing twice returns the same row
        again = client.post("/api/v1/company-settings/initialize")
        assert again.json()["id"] == data["id"]

    def test_update_settings(self, client: TestClient, company_settings: CompanySettings):
        response = client.put(
            "/api/v1/company-settings/",
            json={"vat_number": "310122393500003", "city": "Jeddah"},
        )
        assert_response_success(response)
        assert response.json()["vat_number"] == "310122393500003"
        assert response.json()["city"] == "Jeddah"

    def test_update_settings_validation(self, client: TestClient, company_settings: CompanySettings):
        response = client.put(
            "/api/v1/company-settings/",
            json={"vat_number": "410122393500003", "next_invoice_number": 5},
        )
        assert_response_error(response, 422)

        detail = response.json()["detail"]
        assert detail["message"] == "Invalid company settings"
        assert "VAT number must start with 3" in detail["errors"]
        assert "next_invoice_number cannot be lowered below 1000" in detail["errors"]
