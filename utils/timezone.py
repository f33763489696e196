"""UTC-everywhere time handling. Issue dates are calendar dates derived in UTC."""

from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Default issue date for new invoices."""
    return now_utc().date()


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def to_issue_date(value: date | datetime) -> date:
    """
    Reduce a date or aware datetime to the calendar date used for numbering.

    Datetimes are converted to UTC first so the realized prefix does not
    depend on the caller's offset.
    """
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value

