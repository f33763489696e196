"""Core domain models."""

from core.models.invoice import (
    CurrencyCode,
    DiscountType,
    Invoice,
    InvoiceBreakdown,
    InvoiceCreate,
    InvoiceItem,
    InvoiceLineItemInput,
    InvoiceStatus,
    InvoiceTotals,
    InvoiceUpdate,
    InvoiceWithTotals,
    TotalsRequest,
)
from core.models.invoice_settings import InvoiceSettings, InvoiceSettingsUpdate, ReservedNumber

__all__ = [
    # Invoice
    "CurrencyCode", "DiscountType", "Invoice", "InvoiceBreakdown", "InvoiceCreate",
    "InvoiceItem", "InvoiceLineItemInput", "InvoiceStatus", "InvoiceTotals",
    "InvoiceUpdate", "InvoiceWithTotals", "TotalsRequest",
    # Settings
    "InvoiceSettings", "InvoiceSettingsUpdate", "ReservedNumber",
]
