"""Time utilities for consistent timestamp and night handling."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def iter_nights(check_in: date, check_out: date) -> Iterator[date]:
    """Yield each night of the half-open stay [check_in, check_out)."""
    current = check_in
    while current < check_out:
        yield current
        current += timedelta(days=1)
