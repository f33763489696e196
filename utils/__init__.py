"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, today_utc, to_utc, to_issue_date
from utils.org_context import (
    get_current_organization_id,
    set_current_organization_id,
    clear_current_organization_id,
    organization_context,
)
