from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from invoicing.aging import bucket_for, classify_aging

TODAY = date(2024, 6, 15)


@pytest.mark.parametrize(
    ("days_late", "bucket"),
    [
        (0, "current"),
        (1, "0-30"),
        (30, "0-30"),
        (31, "31-60"),
        (60, "31-60"),
        (61, "61-90"),
        (90, "61-90"),
        (91, "90+"),
    ],
)
def test_aging_bucket_boundaries(days_late: int, bucket: str) -> None:
    result = classify_aging(TODAY - timedelta(days=days_late), TODAY)
    assert result is not None
    assert result.days_overdue == days_late
    assert result.bucket == bucket


def test_future_due_date_is_current() -> None:
    result = classify_aging("2024-07-01", TODAY)
    assert result is not None
    assert result.days_overdue == 0
    assert result.bucket == "current"


def test_settled_invoices_are_not_aged() -> None:
    assert classify_aging("2024-01-01", TODAY, status="paid") is None
    assert classify_aging("2024-01-01", TODAY, status="cancelled") is None


def test_missing_or_unparseable_due_date_is_not_aged() -> None:
    assert classify_aging(None, TODAY) is None
    assert classify_aging("", TODAY) is None
    assert classify_aging("not a date", TODAY) is None


def test_time_of_day_does_not_affect_aging() -> None:
    now = datetime(2024, 6, 15, 23, 59, tzinfo=timezone.utc)
    result = classify_aging("2024-06-14T23:59:59Z", now)
    assert result is not None
    assert result.days_overdue == 1


def test_bucket_for_large_values() -> None:
    assert bucket_for(10_000) == "90+"
