from fastapi.testclient import TestClient
from sqlmodel import Session

from servicepro.models.company import CompanySettings
from servicepro.services import OfflineStore
from tests.utils.test_utils import assert_response_error, assert_response_success, create_completed_job


class TestInvoicesAPI:
    """Test cases for the invoices API endpoints."""

    def test_generate_invoice(self, client: TestClient, db: Session, store: OfflineStore, company_settings: CompanySettings):
        job = create_completed_job(db, store)

        response = client.post("/api/v1/invoices/", json={"job_id": str(job.id), "additional_charges": "25"})
        assert_response_success(response, 201)

        data = response.json()
        assert data["invoice"]["invoice_number"] == "INV-1000"
        assert data["invoice"]["total_amount"] == "1016.60"
        assert len(data["invoice_items"]) == 3
        assert data["company_settings"]["company_name_en"] == "ServicePro"
        assert data["zatca_qr_code"] == data["invoice"]["zatca_qr_code"]

        response = client.get(f"/api/v1/invoices/{data['invoice']['id']}/qr")
        assert_response_success(response)
        qr = response.json()
        assert qr["format"] == "tlv"
        assert qr["fields"]["invoice_total"] == "1016.60"
        assert qr["fields"]["vat_total"] == "132.60"

    def test_generate_for_unfinished_job(self, client: TestClient, company_settings: CompanySettings):
        job = client.post("/api/v1/jobs/", json={"title": "Not started"}).json()

        response = client.post("/api/v1/invoices/", json={"job_id": job["id"]})
        assert_response_error(response, 409)
        assert response.json()["detail"] == "Can only generate invoices for completed jobs"

    def test_list_get_and_pay(self, client: TestClient, db: Session, store: OfflineStore, company_settings: CompanySettings):
        job = create_completed_job(db, store)
        invoice = client.post("/api/v1/invoices/", json={"job_id": str(job.id)}).json()["invoice"]

        response = client.get("/api/v1/invoices/", params={"status": "draft"})
        assert_response_success(response)
        assert [i["id"] for i in response.json()] == [invoice["id"]]

        response = client.get(f"/api/v1/invoices/{invoice['id']}")
        assert_response_success(response)
        assert response.json()["invoice_number"] == "INV-1000"

        response = client.post(
            f"/api/v1/invoices/{invoice['id']}/status",
            json={"status": "paid", "payment_reference": "TRX-1"},
        )
        assert_response_success(response)
        assert response.json()["paid_date"] is not None

        response = client.delete(f"/api/v1/invoices/{invoice['id']}")
        assert_response_error(response, 409)

    def test_delete_draft_invoice(self, client: TestClient, db: Session, store: OfflineStore, company_settings: CompanySettings):
        job = create_completed_job(db, store)
        invoice = client.post("/api/v1/invoices/", json={"job_id": str(job.id)}).json()["invoice"]

        response = client.delete(f"/api/v1/invoices/{invoice['id']}")
        assert response.status_code == 204
        assert client.get(f"/api/v1/invoices/{invoice['id']}").status_code == 404
