"""Invoice and invoice-settings routes."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse, Response

from api.base import success_response
from core.models import InvoiceCreate, InvoiceSettingsUpdate, InvoiceUpdate, TotalsRequest
from core.totals import compute_totals


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def create_invoices_router(services: dict) -> APIRouter:
    """
    Build the invoice router.

    Args:
        services: {"invoice": InvoiceService, "invoice_settings": InvoiceSettingsService}
    """
    router = APIRouter()

    invoice_svc = services["invoice"]
    settings_svc = services["invoice_settings"]

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @router.get("/invoice-settings")
    async def get_settings(request: Request):
        settings = settings_svc.get()
        return success_response(
            settings.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.patch("/invoice-settings")
    async def update_settings(request: Request, body: InvoiceSettingsUpdate):
        settings = settings_svc.update(body)
        return success_response(
            settings.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Totals preview (registered before /invoices/{invoice_id})
    # -------------------------------------------------------------------------

    @router.post("/invoices/totals")
    async def preview_totals(request: Request, body: TotalsRequest):
        totals = compute_totals(body.items, body.currency)
        return success_response(
            totals.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    @router.get("/invoices")
    async def list_invoices(request: Request, limit: int = Query(50, ge=1, le=500)):
        invoices = invoice_svc.list_for_organization(limit=limit)
        return success_response(
            [inv.model_dump(mode="json") for inv in invoices],
            request_id=_request_id(request),
        ).model_dump(mode="json")

    @router.post("/invoices")
    async def create_invoice(request: Request, body: InvoiceCreate):
        invoice = invoice_svc.create(body)
        return JSONResponse(
            status_code=201,
            content=success_response(
                invoice.model_dump(mode="json"), request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @router.get("/invoices/{invoice_id}")
    async def get_invoice(request: Request, invoice_id: UUID):
        invoice = invoice_svc.get_by_id(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice {invoice_id} not found")
        return success_response(
            invoice.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.get("/invoices/{invoice_id}/breakdown")
    async def get_invoice_breakdown(request: Request, invoice_id: UUID):
        breakdown = invoice_svc.get_breakdown(invoice_id)
        return success_response(
            breakdown.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.patch("/invoices/{invoice_id}")
    async def update_invoice(request: Request, invoice_id: UUID, body: InvoiceUpdate):
        invoice = invoice_svc.update(invoice_id, body)
        return success_response(
            invoice.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.delete("/invoices/{invoice_id}")
    async def delete_invoice(request: Request, invoice_id: UUID):
        if not invoice_svc.delete(invoice_id):
            raise ValueError(f"Invoice {invoice_id} not found")
        return Response(status_code=204)

    return router
