"""
Tests for API endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from erp_desk import api
from erp_desk.api import RateLimiter, app, configure_services, status_for_error
from erp_desk.config import config
from erp_desk.exceptions import (
    BuilderValidationError, DuplicateIdentifierError, InvoiceNotFoundError, NetworkError,
    UnauthorizedError,
)
from erp_desk.store_client import InMemoryDocumentStore


@pytest.fixture
def services(tmp_path, monkeypatch):
    """Empty in-memory service graph with exports under tmp_path."""
    monkeypatch.setattr(config, "exports_dir", tmp_path)
    return configure_services(InMemoryDocumentStore(), seed=False)


@pytest.fixture
def client(services):
    return TestClient(app)


@pytest.fixture
def invoice(client):
    response = client.post("/api/invoices", json={
        "client_name": "Acme Corp",
        "client_id": "C-ACME",
        "line_items": [
            {"description": "Consulting", "quantity": "10", "unit_price": "100.00"},
        ],
    })
    assert response.status_code == 201
    return response.json()


class TestHealthEndpoints:
    """Tests for health/status endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "ERP Desk API"
        assert data["status"] == "running"

    def test_status_endpoint(self, client):
        response = client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert "store_configured" in data
        assert data["default_currency"] == config.financial.default_currency
        assert data["search_debounce_ms"] == config.ui.search_debounce_ms


class TestInvoiceEndpoints:
    """Tests for invoice endpoints."""

    def test_create_invoice(self, invoice):
        assert invoice["invoice_number"].startswith("INV-")
        assert invoice["total_amount"] == "1000.00"
        assert invoice["remaining_amount"] == "1000.00"
        assert invoice["status"] == "draft"

    def test_create_requires_line_items(self, client):
        response = client.post("/api/invoices", json={"client_name": "Acme", "line_items": []})
        assert response.status_code == 422

    def test_duplicate_number_is_400(self, client, invoice):
        response = client.post("/api/invoices", json={
            "client_name": "Other",
            "invoice_number": invoice["invoice_number"],
            "line_items": [{"description": "x", "unit_price": "1"}],
        })
        assert response.status_code == 400
        assert response.json()["code"] == "DUPLICATE_IDENTIFIER"

    def test_unknown_currency_is_400(self, client):
        response = client.post("/api/invoices", json={
            "client_name": "Acme",
            "currency": "XXX",
            "line_items": [{"description": "x", "unit_price": "1"}],
        })
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "currency"

    def test_list_and_filter(self, client, invoice):
        data = client.get("/api/invoices").json()
        assert data["total"] == 1

        assert client.get("/api/invoices", params={"status": "paid"}).json()["total"] == 0
        assert client.get("/api/invoices", params={"search": "acme"}).json()["total"] == 1

    def test_get_missing_invoice_is_404(self, client):
        response = client.get("/api/invoices/missing")
        assert response.status_code == 404
        assert response.json()["code"] == "INVOICE_NOT_FOUND"

    def test_update_and_send(self, client, invoice):
        response = client.put(f"/api/invoices/{invoice['id']}", json={"notes": "Net 30"})
        assert response.json()["notes"] == "Net 30"

        response = client.post(f"/api/invoices/{invoice['id']}/send")
        assert response.json()["status"] == "sent"

    def test_duplicate_and_delete(self, client, invoice):
        response = client.post(f"/api/invoices/{invoice['id']}/duplicate")
        assert response.status_code == 201
        copy_id = response.json()["id"]
        assert copy_id != invoice["id"]

        assert client.delete(f"/api/invoices/{copy_id}").json() == {"deleted": copy_id}
        assert client.get("/api/invoices").json()["total"] == 1


class TestPaymentEndpoints:
    """Tests for payments and the reconciliation they trigger."""

    def test_partial_then_full_payment(self, client, invoice):
        response = client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "400.00"})
        assert response.status_code == 201
        data = response.json()
        assert data["payment"]["payment_number"].startswith("PAY-")
        assert data["invoice"]["status"] == "partially_paid"
        assert data["invoice"]["remaining_amount"] == "600.00"

        data = client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "600.00"}).json()
        assert data["invoice"]["status"] == "paid"

        detail = client.get(f"/api/invoices/{invoice['id']}").json()
        assert len(detail["payments"]) == 2
        assert detail["payment_count"] == 2

    def test_non_positive_amount_is_400(self, client, invoice):
        response = client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "0"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_AMOUNT"
        assert client.get("/api/payments").json()["total"] == 0

    def test_payment_for_unknown_invoice(self, client):
        response = client.post("/api/payments", json={"invoice_id": "missing", "amount": "10"})
        assert response.status_code == 404

    def test_pending_payment_leaves_invoice(self, client, invoice):
        data = client.post("/api/payments", json={
            "invoice_id": invoice["id"], "amount": "1000.00", "status": "pending",
        }).json()
        assert data["invoice"]["status"] == "draft"

    def test_update_payment_reconciles(self, client, invoice):
        payment = client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "1000.00"}).json()
        payment_id = payment["payment"]["id"]

        data = client.put(f"/api/payments/{payment_id}", json={"amount": "250.00"}).json()

        assert data["payment"]["amount"] == "250.00"
        assert data["invoice"]["status"] == "partially_paid"

    def test_delete_payment(self, client, invoice):
        payment = client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "100.00"}).json()
        payment_id = payment["payment"]["id"]

        assert client.delete(f"/api/payments/{payment_id}").status_code == 200
        assert client.get("/api/payments", params={"invoice_id": invoice["id"]}).json()["total"] == 0
        assert client.delete(f"/api/payments/{payment_id}").status_code == 404


class TestAnalyticsAndExport:

    def test_analytics(self, client, invoice):
        client.post("/api/payments", json={"invoice_id": invoice["id"], "amount": "1000.00"})

        data = client.get("/api/analytics").json()

        assert data["total_revenue"] == "1000.00"
        assert data["paid_invoices"] == 1

    def test_utc_dates_from_clients(self, client):
        created = client.post("/api/invoices", json={
            "client_name": "Acme Corp",
            "issue_date": "2023-12-01T00:00:00Z",
            "due_date": "2024-01-01T00:00:00Z",
            "line_items": [{"description": "Consulting", "unit_price": "100.00"}],
        }).json()
        assert "+" not in created["due_date"]

        data = client.post("/api/payments", json={
            "invoice_id": created["id"], "amount": "50.00", "status": "pending",
            "payment_date": "2024-01-05T09:30:00+02:00",
        }).json()
        assert data["invoice"]["status"] == "overdue"

        response = client.get("/api/analytics")
        assert response.status_code == 200
        assert response.json()["overdue_invoices"] == 1

    def test_invoice_csv(self, client, invoice):
        response = client.get("/api/export/invoices.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.text.startswith("Invoice Number,")
        assert len(response.text.strip().split("\n")) == 2

    def test_unknown_export(self, client):
        assert client.get("/api/export/clients.csv").status_code == 404


class TestReportEndpoints:
    """Tests for report endpoints."""

    @pytest.fixture
    def report(self, client):
        response = client.post("/api/reports", json={
            "report_name": "Open invoices",
            "selected_fields": ["invoice_number", "total_amount"],
            "tags": ["ar"],
        })
        assert response.status_code == 201
        return response.json()

    def test_create_report(self, report):
        assert report["status"] == "Not Generated"
        assert report["tags"] == ["ar"]

    def test_blank_name_is_422(self, client):
        response = client.post("/api/reports", json={"report_name": " "})
        assert response.status_code == 422
        assert response.json()["code"] == "BUILDER_INVALID"

    def test_generate(self, client, report, invoice):
        data = client.post(f"/api/reports/{report['id']}/generate").json()

        assert data["row_count"] == 1
        assert data["rows"][0]["invoice_number"] == invoice["invoice_number"]
        assert data["report"]["status"] == "Active"
        assert data["report"]["data_row_count"] == 1

    def test_list_search_and_analytics(self, client, report):
        assert client.get("/api/reports", params={"search": "open"}).json()["total"] == 1
        assert client.get("/api/reports", params={"category": "sales"}).json()["total"] == 0
        assert client.get("/api/reports/analytics").json()["total_reports"] == 1

    def test_export(self, client, report, invoice):
        response = client.get(f"/api/reports/{report['id']}/export/csv")
        assert response.status_code == 200
        assert '"invoice_number"' in response.text

    def test_unknown_export_format(self, client, report):
        assert client.get(f"/api/reports/{report['id']}/export/pdf").status_code == 400

    def test_delete(self, client, report):
        assert client.delete(f"/api/reports/{report['id']}").status_code == 200
        assert client.get(f"/api/reports/{report['id']}").status_code == 404


class TestRateLimiter:

    def test_limit_per_client(self):
        limiter = RateLimiter(requests_per_minute=2, clock=lambda: 1000.0)

        assert limiter.is_allowed("10.0.0.1") is True
        assert limiter.is_allowed("10.0.0.1") is True
        assert limiter.is_allowed("10.0.0.1") is False
        assert limiter.is_allowed("10.0.0.2") is True

    def test_idle_clients_dropped(self):
        clock = {"now": 1000.0}
        limiter = RateLimiter(requests_per_minute=2, clock=lambda: clock["now"])
        limiter.is_allowed("10.0.0.1")
        limiter.is_allowed("10.0.0.2")

        clock["now"] += 61
        assert limiter.is_allowed("10.0.0.3") is True

        assert set(limiter.requests) == {"10.0.0.3"}


class TestServiceWiring:

    def test_seeded_in_memory_store(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "exports_dir", tmp_path)
        services = configure_services(InMemoryDocumentStore())

        assert api.get_services() is services
        assert services.financial.invoices.value
        assert services.reporting.reports.value

    def test_unreachable_store_fails_startup(self):
        store = InMemoryDocumentStore()
        store.fail_on("query")

        with pytest.raises(NetworkError):
            configure_services(store, seed=False)

    @pytest.mark.parametrize("error,status_code", [
        (InvoiceNotFoundError("x"), 404),
        (BuilderValidationError(["bad"]), 422),
        (DuplicateIdentifierError("INV-1"), 400),
        (UnauthorizedError("expired"), 401),
        (NetworkError("down"), 500),
    ])
    def test_status_for_error(self, error, status_code):
        assert status_for_error(error) == status_code
