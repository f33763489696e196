"""FastAPI application assembly."""

import logging

from fastapi import FastAPI

from api.errors import register_error_handlers
from api.invoices import create_invoices_router
from api.middleware import OrganizationContextMiddleware, RequestIDMiddleware
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import InvoicingConfig, load_config
from core.services.invoice_service import InvoiceService
from core.services.invoice_settings_service import InvoiceSettingsService

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, config: InvoicingConfig | None = None) -> dict:
    """Construct the service objects the routers depend on."""
    config = config or load_config()
    audit = AuditLogger(postgres)
    return {
        "invoice": InvoiceService(postgres, audit, config),
        "invoice_settings": InvoiceSettingsService(postgres, audit, config),
    }


def create_app(services: dict) -> FastAPI:
    """FastAPI app with request IDs, organization context, error handlers and invoice routes."""
    app = FastAPI(title="Invoicing API")

    # Added last runs first: request ID is assigned before the organization check
    app.add_middleware(OrganizationContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_invoices_router(services), prefix="/api")

    logger.info("Invoicing API assembled")
    return app
