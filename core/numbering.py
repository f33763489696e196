"""
Invoice number reservation.

Numbers are "<realized prefix><zero-padded sequence>", e.g. INV-2025-0001.
Each organization has one invoice_settings row holding the prefix template,
the last realized prefix and the next sequence value. Reservation locks that
row (SELECT ... FOR UPDATE) for the rest of the caller's transaction, so
reservations for the same organization are totally ordered while other
organizations are never blocked. Counter values are always re-read from the
row; nothing is cached in-process.

If the caller's transaction rolls back, the increment rolls back with it.
A number is only lost (a gap) when the reservation commits but the invoice
it was meant for is never written. Two committed invoices never share a number.
"""

import logging
from datetime import date, datetime

import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.config import InvoicingConfig
from core.currency import normalize_currency
from core.exceptions import NumberingConflictError, NumberingStateUnavailableError
from core.models import ReservedNumber
from utils.timezone import now_utc, to_issue_date

logger = logging.getLogger(__name__)

# Errors the database raises when concurrent writers collide on the row.
# All of them abort the transaction, so the caller has to start over.
_CONFLICT_ERRORS = (
    psycopg2.errors.SerializationFailure,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.LockNotAvailable,
)


def format_invoice_prefix(template: str, issue_date: date) -> str:
    """
    Realize a prefix template for an issue date.

    YYYY is replaced before YY, otherwise "YYYY" would turn into two
    short years. Every occurrence of each placeholder is replaced.
    """
    year = f"{issue_date.year:04d}"
    return (
        template
        .replace("YYYY", year)
        .replace("YY", year[-2:])
        .replace("MM", f"{issue_date.month:02d}")
        .replace("DD", f"{issue_date.day:02d}")
    )


def format_invoice_number(prefix: str, sequence: int, padding: int) -> str:
    """Append the sequence zero-padded to at least `padding` digits. Never truncates."""
    return f"{prefix}{str(sequence).zfill(padding)}"


class InvoiceNumberReserver:
    """
    Reserves invoice numbers inside a caller-owned transaction.

    Usage:
        reserver = InvoiceNumberReserver(config)

        with postgres.transaction() as cur:
            reserved = reserver.reserve(cur, organization_id, issue_date)
            cur.execute("INSERT INTO invoices ...", (reserved.number, ...))
    """

    def __init__(self, config: InvoicingConfig | None = None):
        self.config = config or InvoicingConfig()

    def reserve(self, cur, organization_id: str, issue_date: date | datetime) -> ReservedNumber:
        """
        Take the next number for an organization.

        Args:
            cur: Cursor of an open transaction (dict rows)
            organization_id: Tenant whose sequence to advance
            issue_date: Date the prefix placeholders are realized from

        Returns:
            ReservedNumber with the formatted number and the organization's
            default currency

        Raises:
            NumberingConflictError: Row lock timed out or the transaction
                lost a serialization/deadlock race. Not retried here.
        """
        issue_date = to_issue_date(issue_date)

        try:
            if self.config.lock_timeout_ms:
                cur.execute(
                    "SELECT set_config('lock_timeout', %s, true)",
                    (f"{self.config.lock_timeout_ms}ms",)
                )

            self._ensure_settings_row(cur, organization_id)

            cur.execute(
                """
                SELECT prefix_template, last_prefix, next_number, number_padding, default_currency
                FROM invoice_settings
                WHERE organization_id = %s
                FOR UPDATE
                """,
                (organization_id,)
            )
            state = cur.fetchone()
            if state is None:
                logger.error(
                    f"Numbering row for organization {organization_id} not visible; "
                    f"reservation must run in that organization's context"
                )
                raise NumberingStateUnavailableError(organization_id)

            prefix = format_invoice_prefix(state["prefix_template"], issue_date)

            if state["last_prefix"] != prefix:
                logger.info(
                    f"Invoice prefix for organization {organization_id} rolled over "
                    f"from {state['last_prefix']!r} to {prefix!r}, sequence restarts at 1"
                )
                sequence = 1
            else:
                sequence = state["next_number"]

            cur.execute(
                """
                UPDATE invoice_settings
                SET last_prefix = %s, next_number = %s, updated_at = %s
                WHERE organization_id = %s
                """,
                (prefix, sequence + 1, now_utc(), organization_id)
            )

        except _CONFLICT_ERRORS as e:
            logger.warning(
                f"Invoice number reservation conflict for organization {organization_id}: "
                f"{type(e).__name__}"
            )
            raise NumberingConflictError(organization_id, type(e).__name__) from e

        number = format_invoice_number(prefix, sequence, state["number_padding"])
        logger.info(f"Reserved invoice number {number} for organization {organization_id}")

        return ReservedNumber(
            number=number,
            default_currency=normalize_currency(state["default_currency"]),
        )

    def _ensure_settings_row(self, cur, organization_id: str) -> None:
        """Create the organization's settings row with defaults if it doesn't exist."""
        now = now_utc()
        cur.execute(
            """
            INSERT INTO invoice_settings (
                organization_id, prefix_template, last_prefix, next_number,
                number_padding, default_currency, created_at, updated_at
            ) VALUES (%s, %s, NULL, 1, %s, %s, %s, %s)
            ON CONFLICT (organization_id) DO NOTHING
            """,
            (
                organization_id,
                self.config.default_prefix_template,
                self.config.default_number_padding,
                self.config.default_currency,
                now, now
            )
        )


def reserve_invoice_number(
    postgres: PostgresClient,
    organization_id: str,
    issue_date: date | datetime,
    config: InvoicingConfig | None = None,
) -> ReservedNumber:
    """Reserve a number in a transaction of its own. Commits before returning."""
    with postgres.transaction() as cur:
        return InvoiceNumberReserver(config).reserve(cur, organization_id, issue_date)
