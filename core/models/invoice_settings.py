"""Per-organization invoice numbering state and settings."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from core.models.invoice import CurrencyCode


class InvoiceSettings(BaseModel):
    """
    Numbering state row, one per organization.

    prefix_template, number_padding and default_currency are configurable.
    last_prefix and next_number are owned by number reservation.
    """

    organization_id: str
    prefix_template: str
    last_prefix: str | None
    next_number: int = Field(..., ge=1)
    number_padding: int = Field(..., ge=1)
    default_currency: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceSettingsUpdate(BaseModel):
    """Configurable settings. At least one field is required."""

    prefix_template: str | None = Field(None, min_length=1, max_length=50)
    number_padding: int | None = Field(None, ge=1, le=10)
    default_currency: CurrencyCode | None = None

    @model_validator(mode="after")
    def require_at_least_one(self) -> "InvoiceSettingsUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one setting is required")
        return self


class ReservedNumber(BaseModel):
    """Result of reserving an invoice number."""

    number: str
    default_currency: str
