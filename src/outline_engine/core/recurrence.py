"""Recurring dates: next occurrence of an RRULE after a given date."""

from datetime import datetime

from dateutil import parser as date_parser
from dateutil.rrule import rrulestr

DATE_FORMAT = "%Y-%m-%d"


def get_next_occurrence(rrule: str, date: str) -> str | None:
    """Return the first occurrence of ``rrule`` strictly after ``date``.

    ``date`` is an ISO date (``2024-01-15``) or datetime; the result keeps
    the same shape. Returns None when the rule has no further occurrences.

    Raises:
        ValueError: If the rule or the date cannot be parsed.
    """
    start = date_parser.isoparse(date)
    date_only = len(date.strip()) <= len("YYYY-MM-DD")
    try:
        rule = rrulestr(rrule.strip(), dtstart=start)
    except (TypeError, ValueError) as e:
        msg = f"Invalid recurrence rule {rrule!r}: {e}"
        raise ValueError(msg) from e

    nxt: datetime | None = rule.after(start)
    if nxt is None:
        return None
    return nxt.strftime(DATE_FORMAT) if date_only else nxt.isoformat()
