from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Final

from invoicing.dates import parse_date

CURRENT: Final[str] = "current"

# Upper bound (inclusive) of days overdue for each bucket, checked in order.
AGING_BUCKETS: Final[tuple[tuple[str, int | None], ...]] = (
    (CURRENT, 0),
    ("0-30", 30),
    ("31-60", 60),
    ("61-90", 90),
    ("90+", None),
)

BUCKET_ORDER: Final[dict[str, int]] = {name: idx for idx, (name, _) in enumerate(AGING_BUCKETS)}

SETTLED_STATUSES: Final[frozenset[str]] = frozenset({"paid", "cancelled"})


@dataclass(frozen=True)
class AgingResult:
    days_overdue: int
    bucket: str


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_overdue(due_date: date | datetime, now: date | datetime) -> int:
    return max(0, (_as_date(now) - _as_date(due_date)).days)


def bucket_for(days: int) -> str:
    for name, upper in AGING_BUCKETS:
        if upper is None or days <= upper:
            return name
    return AGING_BUCKETS[-1][0]


def classify_aging(
    due_date: date | datetime | str | None,
    now: date | datetime,
    status: str = "sent",
) -> AgingResult | None:
    """Bucket an unpaid invoice by how late it is.

    Returns None for settled invoices and for invoices without a usable due
    date; callers exclude those from aging aggregates.
    """
    if status in SETTLED_STATUSES:
        return None
    parsed = due_date if isinstance(due_date, (date, datetime)) else parse_date(due_date)
    if parsed is None:
        return None
    days = days_overdue(parsed, now)
    return AgingResult(days_overdue=days, bucket=bucket_for(days))
