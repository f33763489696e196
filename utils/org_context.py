"""Propagate the active organization through the call stack using contextvars."""

from contextvars import ContextVar
from contextlib import contextmanager

_current_organization_id: ContextVar[str | None] = ContextVar("current_organization_id", default=None)


def get_current_organization_id() -> str:
    """
    Get the active organization ID from context.

    Raises RuntimeError if no organization context is set.
    Tenant-scoped code running without an organization is a bug,
    so this fails fast instead of defaulting.
    """
    organization_id = _current_organization_id.get()
    if organization_id is None:
        raise RuntimeError(
            "No organization context set. This usually means you're calling "
            "tenant-scoped code outside of a request with an active organization."
        )
    return organization_id


def set_current_organization_id(organization_id: str) -> None:
    """
    Set the active organization ID in context.

    Called by the organization middleware once the request is resolved.
    """
    _current_organization_id.set(organization_id)


def clear_current_organization_id() -> None:
    """
    Clear organization context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_organization_id.set(None)


@contextmanager
def organization_context(organization_id: str):
    """
    Context manager for temporarily setting the active organization.

    Example:
        with organization_context("org_123"):
            invoice = invoice_service.create(data)
    """
    previous = _current_organization_id.get()
    set_current_organization_id(organization_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_organization_id()
        else:
            set_current_organization_id(previous)
