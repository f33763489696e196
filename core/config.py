"""Invoicing configuration."""

import logging
import os

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class InvoicingConfig(BaseModel):
    """
    Invoicing configuration.

    The numbering defaults are written into an organization's settings row
    the first time it reserves a number or reads its settings.
    """

    # Numbering defaults
    default_prefix_template: str = Field(
        default="INV-YYYY-",
        description="Prefix template for new organizations (YYYY, YY, MM, DD placeholders)",
        min_length=1,
    )
    default_number_padding: int = Field(
        default=4,
        description="Minimum digit width of the sequence portion",
        ge=1,
        le=10,
    )
    default_currency: str = Field(
        default="USD",
        description="Currency for organizations that never configured one",
        pattern=r"^[A-Za-z]{3}$",
    )

    # Reservation
    lock_timeout_ms: int = Field(
        default=5000,
        description="Max wait for the numbering row lock; 0 waits indefinitely",
        ge=0,
        le=60000,
    )

    # Listing
    list_limit_max: int = Field(
        default=500,
        description="Upper bound on invoices returned by one list call",
        ge=1,
    )

    @field_validator("default_currency")
    @classmethod
    def uppercase_currency(cls, value: str) -> str:
        return value.upper()


# Vault field name -> InvoicingConfig field
_VAULT_FIELDS = {
    "prefix_template": "default_prefix_template",
    "number_padding": "default_number_padding",
    "default_currency": "default_currency",
}


def load_config() -> InvoicingConfig:
    """
    Build the runtime configuration.

    With VAULT_ADDR set, numbering defaults stored under invoicing/numbering
    override the built-in ones. Without Vault the built-in defaults apply.
    """
    if not os.getenv("VAULT_ADDR"):
        return InvoicingConfig()

    from clients.vault_client import get_numbering_defaults

    try:
        overrides = get_numbering_defaults()
    except PermissionError as e:
        logger.warning(f"No numbering defaults in Vault, using built-in defaults: {e}")
        return InvoicingConfig()

    config = InvoicingConfig(**{_VAULT_FIELDS[key]: value for key, value in overrides.items()})
    logger.info(f"Invoicing config loaded from Vault ({', '.join(sorted(overrides)) or 'no overrides'})")
    return config
