"""Time helpers. Timestamps are stored as naive UTC."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return date.today()


def iter_nights(check_in: date, check_out: date):
    """Yield each night of a stay, i.e. every day in [check_in, check_out)."""
    current = check_in
    while current < check_out:
        yield current
        current += timedelta(days=1)
