"""
Audit trail for invoicing changes.

Every mutation to an invoice or to an organization's invoice settings is
logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Organization-attributed (which tenant the change belongs to)
- Detailed (captures old and new values)

Number reservations are not audited individually; the invoice CREATE entry
records the number that was issued.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.org_context import get_current_organization_id
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    Always pass model_dump(mode="json") output so Decimals, UUIDs and dates
    arrive as JSON-compatible strings.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": {"number": invoice.number}}
        )

        # Inside a transaction, pass the cursor so the entry commits
        # (or rolls back) together with the change it describes
        audit.log_change(..., cur=cur)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID | str,
        action: AuditAction,
        changes: dict[str, Any],
        organization_id: str | None = None,
        cur=None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: "invoice" or "invoice_settings"
            entity_id: ID of the entity (organization ID for settings)
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)
            organization_id: Owning organization (defaults to current context)
            cur: Open transaction cursor; when omitted the entry commits on its own

        Changes format by action:
        - CREATE: {"created": {entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if organization_id is None:
            organization_id = get_current_organization_id()

        query = """
            INSERT INTO audit_log (id, organization_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            uuid4(),
            organization_id,
            entity_type,
            str(entity_id),
            action.value,
            Json(changes),
            now_utc()
        )

        if cur is not None:
            cur.execute(query, params)
        else:
            self.postgres.execute(query, params)

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID | str
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, organization_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, str(entity_id))
        )
