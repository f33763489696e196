"""Typed exceptions for invoicing failures."""


class InvoicingError(Exception):
    """Base class for invoicing errors."""


class NumberingConflictError(InvoicingError):
    """
    Concurrent writers collided on an organization's numbering row.

    Transient. The caller must retry the whole enclosing transaction
    (reservation plus invoice creation), never just the reservation step.
    """

    retryable = True

    def __init__(self, organization_id: str, reason: str = "concurrent update"):
        self.organization_id = organization_id
        self.reason = reason
        super().__init__(
            f"Invoice number reservation for organization {organization_id} "
            f"conflicted ({reason}). Retry the transaction."
        )


class InvalidStatusTransitionError(InvoicingError):
    """Requested invoice status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change invoice status from '{current}' to '{requested}'")


class NumberingStateUnavailableError(InvoicingError):
    """
    The organization's numbering row could not be read after it was ensured.

    Row level security hides rows of any organization other than the one
    set on the connection, so this means the reservation was requested for
    an organization that is not the active one.
    """

    retryable = False

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            f"Numbering settings for organization {organization_id} are not visible "
            f"in the active organization context"
        )
