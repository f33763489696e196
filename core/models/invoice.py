"""Invoice domain models.

Quantities, prices and rates are exact decimals (decimal.Decimal), never
floats. Totals are derived from line items on every read and rendered as
fixed-point strings at the currency's precision.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field, model_validator


def _uppercase(value: str) -> str:
    return value.upper()


CurrencyCode = Annotated[str, Field(pattern=r"^[A-Za-z]{3}$"), AfterValidator(_uppercase)]

# Bounds match the NUMERIC(20, 6) and NUMERIC(10, 6) columns, so nothing
# accepted here is rounded or rejected on write
Amount = Annotated[Decimal, Field(max_digits=20, decimal_places=6)]
Rate = Annotated[Decimal, Field(max_digits=10, decimal_places=6)]


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    VOID = "void"


class DiscountType(str, Enum):
    """How discount_value is applied to the subtotal."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class InvoiceLineItemInput(BaseModel):
    """One billable line as submitted by a caller."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Amount
    unit_price: Amount
    tax_rate: Rate | None = None  # Fraction: 0.2 = 20%


class InvoiceItem(BaseModel):
    """Line item as stored."""

    id: UUID
    invoice_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal | None = None
    position: int

    model_config = {"from_attributes": True}


class InvoiceTotals(BaseModel):
    """Canonical totals: currency-rounded fixed-point strings."""

    subtotal: str
    total: str


class InvoiceBreakdown(BaseModel):
    """Totals under the discount/tax/shipping pricing rules."""

    subtotal: str
    discount_total: str
    tax_total: str
    shipping_total: str
    shipping_tax: str
    total: str


class TotalsRequest(BaseModel):
    """Ad-hoc totals preview input."""

    items: list[InvoiceLineItemInput] = Field(default_factory=list)
    currency: CurrencyCode


def _check_discount_pair(discount_type, discount_value) -> None:
    if discount_type is not None and discount_value is None:
        raise ValueError("discount_value is required when discount_type is set")
    if discount_type is None and discount_value is not None:
        raise ValueError("discount_type is required when discount_value is set")


class InvoiceCreate(BaseModel):
    """Data required to create an invoice. The number is always reserved, never supplied."""

    client_id: str = Field(..., min_length=1)
    issue_date: date | None = None
    due_date: date | None = None
    currency: CurrencyCode | None = None
    discount_type: DiscountType | None = None
    discount_value: Amount | None = Field(None, ge=0)
    shipping_amount: Amount | None = Field(None, ge=0)
    shipping_tax_rate: Rate | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=5000)
    terms: str | None = Field(None, max_length=5000)
    items: list[InvoiceLineItemInput] = Field(..., min_length=1)

    @model_validator(mode="after")
    def discount_fields_paired(self) -> "InvoiceCreate":
        _check_discount_pair(self.discount_type, self.discount_value)
        return self


class InvoiceUpdate(BaseModel):
    """Data that can be updated on an invoice. All fields optional; items replace wholesale."""

    status: InvoiceStatus | None = None
    issue_date: date | None = None
    due_date: date | None = None
    currency: CurrencyCode | None = None
    discount_type: DiscountType | None = None
    discount_value: Amount | None = Field(None, ge=0)
    shipping_amount: Amount | None = Field(None, ge=0)
    shipping_tax_rate: Rate | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=5000)
    terms: str | None = Field(None, max_length=5000)
    items: list[InvoiceLineItemInput] | None = Field(None, min_length=1)

    @model_validator(mode="after")
    def discount_fields_paired(self) -> "InvoiceUpdate":
        # Only enforce the pairing when the caller touched the discount at all
        if {"discount_type", "discount_value"} & self.model_fields_set:
            _check_discount_pair(self.discount_type, self.discount_value)
        return self


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    organization_id: str
    client_id: str
    number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date | None
    currency: str
    discount_type: DiscountType | None
    discount_value: Decimal | None
    shipping_amount: Decimal | None
    shipping_tax_rate: Decimal | None
    notes: str | None
    terms: str | None
    created_at: datetime
    updated_at: datetime
    items: list[InvoiceItem] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def is_editable(self) -> bool:
        """Paid and voided invoices are closed."""
        return self.status not in (InvoiceStatus.PAID, InvoiceStatus.VOID)


class InvoiceWithTotals(Invoice):
    """Invoice plus totals computed from its items at read time."""

    totals: InvoiceTotals
