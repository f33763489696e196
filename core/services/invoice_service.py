"""
Invoice service.

Creation reserves the invoice number and writes the invoice in one
transaction, so a rolled-back creation also rolls back the reservation.
Totals are never stored; every read recomputes them from the line items.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Iterable
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import InvoicingConfig
from core.currency import normalize_currency
from core.exceptions import InvalidStatusTransitionError
from core.models import (
    Invoice,
    InvoiceBreakdown,
    InvoiceCreate,
    InvoiceLineItemInput,
    InvoiceStatus,
    InvoiceUpdate,
    InvoiceWithTotals,
)
from core.numbering import InvoiceNumberReserver
from core.pricing import compute_breakdown
from core.totals import compute_totals
from utils.org_context import get_current_organization_id
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "status", "issue_date", "due_date", "currency",
    "discount_type", "discount_value", "shipping_amount", "shipping_tax_rate",
    "notes", "terms",
}

_NON_NULLABLE_COLUMNS = {"status", "issue_date", "currency"}

# Paid and void are terminal
_ALLOWED_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.VOID},
    InvoiceStatus.SENT: {InvoiceStatus.DRAFT, InvoiceStatus.PAID, InvoiceStatus.VOID},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.VOID: set(),
}


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def with_totals(invoice: Invoice) -> InvoiceWithTotals:
    """Attach totals computed from the invoice's current items."""
    return InvoiceWithTotals.model_validate({
        **invoice.model_dump(),
        "totals": compute_totals(invoice.items, invoice.currency),
    })


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        config: InvoicingConfig | None = None,
        reserver: InvoiceNumberReserver | None = None
    ):
        self.postgres = postgres
        self.audit = audit
        self.config = config or InvoicingConfig()
        self.reserver = reserver or InvoiceNumberReserver(self.config)

    def create(self, data: InvoiceCreate) -> InvoiceWithTotals:
        """
        Create a draft invoice with a freshly reserved number.

        Currency is the first of: the request's currency, the client's
        currency, the organization's default currency.

        Args:
            data: Invoice creation data

        Returns:
            Created invoice with computed totals

        Raises:
            ValueError: If the client is not found in the organization
            NumberingConflictError: If reservation lost a race; retry the call
        """
        organization_id = get_current_organization_id()

        client = self.postgres.execute_single(
            "SELECT id, currency FROM clients WHERE id = %s AND organization_id = %s",
            (data.client_id, organization_id)
        )
        if client is None:
            raise ValueError(f"Client {data.client_id} not found")

        issue_date = data.issue_date or today_utc()
        invoice_id = uuid4()
        now = now_utc()

        with self.postgres.transaction() as cur:
            reserved = self.reserver.reserve(cur, organization_id, issue_date)

            currency = normalize_currency(
                data.currency or client.get("currency") or reserved.default_currency
            )

            cur.execute(
                """
                INSERT INTO invoices (
                    id, organization_id, client_id, number, status,
                    issue_date, due_date, currency,
                    discount_type, discount_value, shipping_amount, shipping_tax_rate,
                    notes, terms, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    invoice_id, organization_id, data.client_id, reserved.number,
                    InvoiceStatus.DRAFT.value,
                    issue_date, data.due_date, currency,
                    _db_value(data.discount_type), data.discount_value,
                    data.shipping_amount, data.shipping_tax_rate,
                    data.notes, data.terms, now, now
                )
            )
            row = dict(cur.fetchone())
            row["items"] = self._insert_items(cur, invoice_id, data.items)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.CREATE,
                changes={
                    "created": {
                        "number": reserved.number,
                        "client_id": data.client_id,
                        "currency": currency,
                        "item_count": len(data.items),
                    }
                },
                organization_id=organization_id,
                cur=cur
            )

        invoice = Invoice.model_validate(row)
        logger.info(f"Invoice {invoice.number} created for organization {organization_id}")

        return with_totals(invoice)

    def _insert_items(
        self,
        cur,
        invoice_id: UUID,
        items: Iterable[InvoiceLineItemInput]
    ) -> list[dict[str, Any]]:
        """Insert line items in order. Returns the stored rows."""
        rows = []
        for position, item in enumerate(items):
            cur.execute(
                """
                INSERT INTO invoice_items (
                    id, invoice_id, description, quantity, unit_price, tax_rate, position
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), invoice_id, item.description,
                    item.quantity, item.unit_price, item.tax_rate, position
                )
            )
            rows.append(dict(cur.fetchone()))
        return rows

    def _load_invoice(self, invoice_id: UUID) -> Invoice | None:
        organization_id = get_current_organization_id()

        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND organization_id = %s",
            (invoice_id, organization_id)
        )
        if row is None:
            return None

        row["items"] = self.postgres.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = %s ORDER BY position ASC",
            (invoice_id,)
        )
        return Invoice.model_validate(row)

    def _lock_invoice(self, cur, invoice_id: UUID) -> Invoice | None:
        """Load an invoice inside a transaction and hold its row lock until it ends."""
        organization_id = get_current_organization_id()

        cur.execute(
            "SELECT * FROM invoices WHERE id = %s AND organization_id = %s FOR UPDATE",
            (invoice_id, organization_id)
        )
        row = cur.fetchone()
        if row is None:
            return None

        row = dict(row)
        cur.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = %s ORDER BY position ASC",
            (invoice_id,)
        )
        row["items"] = [dict(item) for item in cur.fetchall()]
        return Invoice.model_validate(row)

    def get_by_id(self, invoice_id: UUID) -> InvoiceWithTotals | None:
        """
        Get invoice by ID with items and totals.

        Returns:
            Invoice if found in the active organization, None otherwise.
        """
        invoice = self._load_invoice(invoice_id)
        if invoice is None:
            return None

        return with_totals(invoice)

    def list_for_organization(self, limit: int = 50) -> list[InvoiceWithTotals]:
        """
        List the active organization's invoices, newest first, with totals.

        Args:
            limit: Maximum results (capped by config.list_limit_max)
        """
        organization_id = get_current_organization_id()
        limit = min(limit, self.config.list_limit_max)

        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE organization_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (organization_id, limit)
        )
        if not rows:
            return []

        item_rows = self.postgres.execute(
            """
            SELECT * FROM invoice_items
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY position ASC
            """,
            ([row["id"] for row in rows],)
        )

        items_by_invoice = defaultdict(list)
        for item in item_rows:
            items_by_invoice[str(item["invoice_id"])].append(item)

        return [
            with_totals(Invoice.model_validate({**row, "items": items_by_invoice[str(row["id"])]}))
            for row in rows
        ]

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> InvoiceWithTotals:
        """
        Update invoice fields. The number never changes.

        If items are given they replace all existing items. The invoice row
        is locked before the status and editability rules are checked, so a
        concurrent update that closes the invoice is seen before this one
        writes.

        Args:
            invoice_id: Invoice UUID
            data: Fields to update

        Returns:
            Updated invoice with recomputed totals

        Raises:
            ValueError: If invoice not found, or it is paid/void and edits were requested
            InvalidStatusTransitionError: If the status change is not allowed
        """
        updates = data.model_dump(exclude_unset=True)
        # Explicit nulls on non-nullable columns mean "leave as is"
        for field in _NON_NULLABLE_COLUMNS:
            if field in updates and updates[field] is None:
                del updates[field]

        items = data.items if "items" in updates else None
        updates.pop("items", None)

        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(f"Attempted to update unknown field '{field}' on invoice {invoice_id}")

        with self.postgres.transaction() as cur:
            current = self._lock_invoice(cur, invoice_id)
            if current is None:
                raise ValueError(f"Invoice {invoice_id} not found")

            new_status = updates.get("status")
            if new_status is not None and new_status != current.status:
                if new_status not in _ALLOWED_TRANSITIONS[current.status]:
                    raise InvalidStatusTransitionError(current.status.value, InvoiceStatus(new_status).value)
            elif new_status is not None:
                updates.pop("status")

            non_status_changes = bool(set(updates) - {"status"}) or items is not None
            if non_status_changes and not current.is_editable:
                raise ValueError(f"Invoice {invoice_id} is {current.status.value} and cannot be edited")

            valid_updates = {k: _db_value(v) for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
            if not valid_updates and items is None:
                return with_totals(current)

            set_parts = []
            params = []
            for field, value in valid_updates.items():
                set_parts.append(f"{field} = %s")
                params.append(value)

            set_parts.append("updated_at = %s")
            params.append(now_utc())
            params.extend([invoice_id, current.organization_id])

            cur.execute(
                f"""
                UPDATE invoices
                SET {', '.join(set_parts)}
                WHERE id = %s AND organization_id = %s
                RETURNING *
                """,
                tuple(params)
            )
            row = dict(cur.fetchone())

            if items is not None:
                cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))
                row["items"] = self._insert_items(cur, invoice_id, items)
            else:
                row["items"] = [item.model_dump() for item in current.items]

            updated = Invoice.model_validate(row)

            changes = compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            )
            if changes:
                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=changes,
                    organization_id=current.organization_id,
                    cur=cur
                )

        return with_totals(updated)

    def delete(self, invoice_id: UUID) -> bool:
        """
        Delete an invoice and its items.

        The number is not returned to the sequence.

        Returns:
            True if deleted, False if not found
        """
        with self.postgres.transaction() as cur:
            current = self._lock_invoice(cur, invoice_id)
            if current is None:
                return False

            cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,))
            cur.execute(
                "DELETE FROM invoices WHERE id = %s AND organization_id = %s",
                (invoice_id, current.organization_id)
            )

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.DELETE,
                changes={"deleted": current.model_dump(mode="json")},
                organization_id=current.organization_id,
                cur=cur
            )

        return True

    def get_breakdown(self, invoice_id: UUID) -> InvoiceBreakdown:
        """
        Discount/tax/shipping breakdown for a stored invoice.

        Raises:
            ValueError: If invoice not found
        """
        invoice = self._load_invoice(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice {invoice_id} not found")

        return compute_breakdown(
            invoice.items,
            invoice.currency,
            discount_type=invoice.discount_type,
            discount_value=invoice.discount_value,
            shipping_amount=invoice.shipping_amount,
            shipping_tax_rate=invoice.shipping_tax_rate,
        )
