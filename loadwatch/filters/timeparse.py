# loadwatch/filters/timeparse.py

"""Best-effort parsing of the free-form schedule strings on the page."""

from datetime import datetime, time

_DATETIME_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%y %H:%M",
    "%b %d, %Y %H:%M",
    "%b %d, %Y %I:%M %p",
    "%b %d %Y %H:%M",
    "%d %b %Y %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%b %d, %Y",
)

_TIME_FORMATS: tuple[str, ...] = (
    "%H:%M",
    "%H:%M:%S",
    "%I:%M %p",
    "%I:%M%p",
)


def parse_datetime(text: str | None) -> datetime | None:
    """Parse a calendar date(-time); ``None`` when not recognised."""
    if not text:
        return None
    cleaned = " ".join(text.split())
    try:
        return datetime.fromisoformat(cleaned).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    return None


def parse_time_of_day(text: str | None) -> time | None:
    """Parse a bare time of day such as '14:30' or '2:30 PM'."""
    if not text:
        return None
    cleaned = " ".join(text.split()).upper()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).time()
        except ValueError:
            continue
    return None


def departs_after(scheduled: str, latest: str) -> bool:
    """True when *scheduled* is later than the *latest* bound.

    Full date-times are compared as instants. A bare time-of-day
    bound is compared with the time of day of the schedule. When
    neither side parses the raw strings are compared.
    """
    bound_time = parse_time_of_day(latest)
    if bound_time is not None:
        when = parse_datetime(scheduled)
        clock = (
            when.time() if when is not None
            else parse_time_of_day(scheduled)
        )
        if clock is not None:
            return clock > bound_time
        return scheduled > latest

    bound = parse_datetime(latest)
    when = parse_datetime(scheduled)
    if bound is not None and when is not None:
        return when > bound
    return scheduled > latest
