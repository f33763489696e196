"""
Invoice settings service.

Reads and updates the configurable part of an organization's numbering
state. The counter fields (last_prefix, next_number) belong to number
reservation and are never written here.
"""

import logging

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import InvoicingConfig
from core.models import InvoiceSettings, InvoiceSettingsUpdate
from utils.org_context import get_current_organization_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"prefix_template", "number_padding", "default_currency"}


class InvoiceSettingsService:
    """Service for invoice settings operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: InvoicingConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or InvoicingConfig()

    def get(self) -> InvoiceSettings:
        """
        Get the active organization's settings, creating the defaults on first use.

        Returns:
            Settings row (never None)
        """
        organization_id = get_current_organization_id()
        now = now_utc()

        # DO UPDATE with a no-op assignment so RETURNING yields the existing row too
        row = self.postgres.execute_returning(
            """
            INSERT INTO invoice_settings (
                organization_id, prefix_template, last_prefix, next_number,
                number_padding, default_currency, created_at, updated_at
            ) VALUES (%s, %s, NULL, 1, %s, %s, %s, %s)
            ON CONFLICT (organization_id)
            DO UPDATE SET organization_id = invoice_settings.organization_id
            RETURNING *
            """,
            (
                organization_id,
                self.config.default_prefix_template,
                self.config.default_number_padding,
                self.config.default_currency,
                now, now
            )
        )[0]

        return InvoiceSettings.model_validate(row)

    def update(self, data: InvoiceSettingsUpdate) -> InvoiceSettings:
        """
        Update prefix template, padding and/or default currency.

        A new prefix template takes effect on the next reservation whose
        realized prefix differs from the last one; issued numbers are untouched.

        Args:
            data: Fields to update (at least one, enforced by the model)

        Returns:
            Updated settings
        """
        current = self.get()

        updates = data.model_dump(exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(current.organization_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE invoice_settings
            SET {', '.join(set_parts)}
            WHERE organization_id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = InvoiceSettings.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="invoice_settings",
                entity_id=current.organization_id,
                action=AuditAction.UPDATE,
                changes=changes,
                organization_id=current.organization_id
            )
            logger.info(
                f"Invoice settings updated for organization {current.organization_id}: "
                f"{', '.join(sorted(changes))}"
            )

        return updated
