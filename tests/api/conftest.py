"""API test fixtures - TestClient over the assembled app with mocked services."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.services.invoice_service import InvoiceService
from core.services.invoice_settings_service import InvoiceSettingsService


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def invoice_service():
    return Mock(spec=InvoiceService)


@pytest.fixture
def invoice_settings_service():
    return Mock(spec=InvoiceSettingsService)


@pytest.fixture
def services(invoice_service, invoice_settings_service):
    return {
        "invoice": invoice_service,
        "invoice_settings": invoice_settings_service,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """Full app: request IDs, organization context, error handlers, invoice routes."""
    return create_app(services)


@pytest.fixture
def client(app, test_org_id):
    """Test client acting for the primary test organization."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Organization-ID"] = test_org_id
    return c


@pytest.fixture
def anonymous_client(app):
    """Test client with no active organization."""
    return TestClient(app, raise_server_exceptions=False)
