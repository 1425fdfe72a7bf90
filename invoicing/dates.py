from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Ambiguous numeric dates are read month first; day-first only matches when
# the leading number cannot be a month.
_FALLBACK_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
)


def parse_date(value: object) -> date | None:
    """Parse a due/issue date into a calendar date.

    Accepts ``date``/``datetime`` objects, bare ``YYYY-MM-DD`` strings and
    strings with a time component (the time part is dropped, not converted).
    Returns None when the value is empty or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if "T" in text:
        text = text.split("T", 1)[0]
    elif " " in text and _ISO_DATE_RE.match(text.split(" ", 1)[0]):
        text = text.split(" ", 1)[0]

    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(value: object, *, today: date) -> str:
    """Return ``value`` as ``YYYY-MM-DD``, falling back to ``today``."""
    parsed = parse_date(value)
    if parsed is None:
        if value not in (None, ""):
            logger.warning("Unparseable date %r, falling back to %s", value, today.isoformat())
        return today.isoformat()
    return parsed.isoformat()


def add_days(start: date, days: int) -> date:
    return start + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    return (end - start).days
