"""Tests for api/invoices.py - invoice and settings routes."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from core.exceptions import InvalidStatusTransitionError, NumberingConflictError
from core.models import Invoice, InvoiceBreakdown, InvoiceSettings
from core.services.invoice_service import with_totals

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_invoice(organization_id="org_test_a", number="INV-2025-0001", currency="USD", status="draft"):
    invoice_id = uuid4()
    return with_totals(Invoice(
        id=invoice_id,
        organization_id=organization_id,
        client_id="cl_1",
        number=number,
        status=status,
        issue_date=date(2025, 3, 1),
        due_date=None,
        currency=currency,
        discount_type=None,
        discount_value=None,
        shipping_amount=None,
        shipping_tax_rate=None,
        notes=None,
        terms=None,
        created_at=NOW,
        updated_at=NOW,
        items=[{
            "id": uuid4(),
            "invoice_id": invoice_id,
            "description": "Consulting",
            "quantity": Decimal("3"),
            "unit_price": Decimal("10.005"),
            "tax_rate": None,
            "position": 0,
        }],
    ))


def make_settings(organization_id="org_test_a", **overrides):
    data = {
        "organization_id": organization_id,
        "prefix_template": "INV-YYYY-",
        "last_prefix": None,
        "next_number": 1,
        "number_padding": 4,
        "default_currency": "USD",
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return InvoiceSettings(**data)


CREATE_BODY = {
    "client_id": "cl_1",
    "items": [{"description": "Consulting", "quantity": "3", "unit_price": "10.005"}],
}


class TestTotalsPreview:
    """POST /api/invoices/totals."""

    def test_usd(self, client):
        """Half-up rounding to cents."""
        response = client.post("/api/invoices/totals", json={
            "currency": "USD",
            "items": [{"description": "A", "quantity": "3", "unit_price": "10.005"}],
        })

        assert response.status_code == 200
        assert response.json()["data"] == {"subtotal": "30.02", "total": "30.02"}

    def test_lowercase_jpy(self, client):
        """Currency code is case-insensitive."""
        response = client.post("/api/invoices/totals", json={
            "currency": "jpy",
            "items": [{"description": "A", "quantity": "3", "unit_price": "10.5"}],
        })

        assert response.json()["data"]["total"] == "32"

    def test_empty_items(self, client):
        """No items yields zero."""
        response = client.post("/api/invoices/totals", json={"currency": "USD", "items": []})

        assert response.json()["data"] == {"subtotal": "0.00", "total": "0.00"}

    def test_non_numeric_price_rejected(self, client):
        """Malformed amounts are a validation error."""
        response = client.post("/api/invoices/totals", json={
            "currency": "USD",
            "items": [{"description": "A", "quantity": "1", "unit_price": "abc"}],
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_precision_beyond_storage_rejected(self, client):
        """A preview never totals amounts a saved invoice could not hold."""
        response = client.post("/api/invoices/totals", json={
            "currency": "USD",
            "items": [{"description": "A", "quantity": "100000", "unit_price": "0.0000004"}],
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestCreateInvoice:
    """POST /api/invoices."""

    def test_created(self, client, invoice_service):
        """Returns 201 with number and totals."""
        invoice_service.create.return_value = make_invoice()

        response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["number"] == "INV-2025-0001"
        assert body["data"]["totals"] == {"subtotal": "30.02", "total": "30.02"}

    def test_number_in_body_ignored(self, client, invoice_service):
        """Callers cannot choose the number."""
        invoice_service.create.return_value = make_invoice()

        client.post("/api/invoices", json={**CREATE_BODY, "number": "MINE-1"})

        data = invoice_service.create.call_args[0][0]
        assert not hasattr(data, "number")

    def test_empty_items_rejected(self, client, invoice_service):
        """Invoices need at least one line."""
        response = client.post("/api/invoices", json={"client_id": "cl_1", "items": []})

        assert response.status_code == 422
        invoice_service.create.assert_not_called()

    def test_numbering_conflict_is_retryable(self, client, invoice_service):
        """Conflicts map to 409 with retryable=True."""
        invoice_service.create.side_effect = NumberingConflictError("org_test_a", "LockNotAvailable")

        response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "0"
        error = response.json()["error"]
        assert error["code"] == "NUMBERING_CONFLICT"
        assert error["retryable"] is True

    def test_unknown_client_is_404(self, client, invoice_service):
        """Missing client maps to NOT_FOUND."""
        invoice_service.create.side_effect = ValueError("Client cl_x not found")

        response = client.post("/api/invoices", json=CREATE_BODY)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestReadInvoices:
    """GET /api/invoices and /api/invoices/{id}."""

    def test_get_by_id(self, client, invoice_service):
        """Returns the invoice with totals."""
        invoice = make_invoice(currency="JPY")
        invoice_service.get_by_id.return_value = invoice

        response = client.get(f"/api/invoices/{invoice.id}")

        assert response.status_code == 200
        assert response.json()["data"]["totals"]["total"] == "30"

    def test_get_missing_is_404(self, client, invoice_service):
        """None from the service is NOT_FOUND."""
        invoice_service.get_by_id.return_value = None

        response = client.get(f"/api/invoices/{uuid4()}")

        assert response.status_code == 404

    def test_bad_uuid_is_422(self, client):
        """Path IDs must be UUIDs."""
        response = client.get("/api/invoices/not-a-uuid")

        assert response.status_code == 422

    def test_list_passes_limit(self, client, invoice_service):
        """limit query param reaches the service."""
        invoice_service.list_for_organization.return_value = [make_invoice(), make_invoice()]

        response = client.get("/api/invoices?limit=2")

        assert len(response.json()["data"]) == 2
        invoice_service.list_for_organization.assert_called_once_with(limit=2)

    def test_list_limit_bounds(self, client):
        """limit above 500 is rejected."""
        assert client.get("/api/invoices?limit=501").status_code == 422

    def test_breakdown(self, client, invoice_service):
        """Breakdown returned as-is."""
        invoice_service.get_breakdown.return_value = InvoiceBreakdown(
            subtotal="100.00", discount_total="10.00", tax_total="18.00",
            shipping_total="0.00", shipping_tax="0.00", total="108.00",
        )

        response = client.get(f"/api/invoices/{uuid4()}/breakdown")

        assert response.json()["data"]["total"] == "108.00"


class TestUpdateDeleteInvoice:
    """PATCH and DELETE /api/invoices/{id}."""

    def test_update(self, client, invoice_service):
        """Updated invoice returned."""
        invoice = make_invoice(status="sent")
        invoice_service.update.return_value = invoice

        response = client.patch(f"/api/invoices/{invoice.id}", json={"status": "sent"})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "sent"

    def test_invalid_transition_is_409(self, client, invoice_service):
        """Terminal statuses cannot change."""
        invoice_service.update.side_effect = InvalidStatusTransitionError("paid", "draft")

        response = client.patch(f"/api/invoices/{uuid4()}", json={"status": "draft"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_closed_invoice_edit_is_400(self, client, invoice_service):
        """Edits to closed invoices are invalid requests."""
        invoice_service.update.side_effect = ValueError("Invoice x is paid and cannot be edited")

        response = client.patch(f"/api/invoices/{uuid4()}", json={"notes": "late"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_delete(self, client, invoice_service):
        """Successful delete has no body."""
        invoice_service.delete.return_value = True

        response = client.delete(f"/api/invoices/{uuid4()}")

        assert response.status_code == 204

    def test_delete_missing(self, client, invoice_service):
        """Deleting nothing is 404."""
        invoice_service.delete.return_value = False

        assert client.delete(f"/api/invoices/{uuid4()}").status_code == 404


class TestInvoiceSettings:
    """GET and PATCH /api/invoice-settings."""

    def test_get(self, client, invoice_settings_service):
        """Returns settings for the active organization."""
        invoice_settings_service.get.return_value = make_settings()

        response = client.get("/api/invoice-settings")

        assert response.json()["data"]["prefix_template"] == "INV-YYYY-"

    def test_patch(self, client, invoice_settings_service):
        """Update body is validated and passed through."""
        invoice_settings_service.update.return_value = make_settings(number_padding=6)

        response = client.patch("/api/invoice-settings", json={"number_padding": 6})

        assert response.status_code == 200
        data = invoice_settings_service.update.call_args[0][0]
        assert data.number_padding == 6

    def test_patch_empty_rejected(self, client, invoice_settings_service):
        """At least one field is required."""
        response = client.patch("/api/invoice-settings", json={})

        assert response.status_code == 422
        invoice_settings_service.update.assert_not_called()


class TestOrganizationRequired:
    """Routes need an active organization."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/invoices"),
        ("get", "/api/invoice-settings"),
        ("post", "/api/invoices/totals"),
    ])
    def test_missing_header_is_400(self, anonymous_client, method, path):
        response = getattr(anonymous_client, method)(path)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "NO_ACTIVE_ORGANIZATION"

    def test_health_is_public(self, anonymous_client):
        response = anonymous_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
