from __future__ import annotations

import calendar
import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Final

from invoicing.aging import AGING_BUCKETS, BUCKET_ORDER, CURRENT, classify_aging
from invoicing.dates import parse_date
from invoicing.errors import ValidationError
from invoicing.state_machine import ALL_STATES, CANCELLED, DRAFT, OVERDUE, PAID, SENT
from invoicing.totals import compute_totals
from schemas.invoice_schema import Invoice

OUTSTANDING_STATUSES: Final[frozenset[str]] = frozenset({SENT, OVERDUE})

_MONTH_ABBR: Final[tuple[str, ...]] = tuple(calendar.month_abbr)[1:]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    range_type: str = "custom"

    def contains(self, day: date | None) -> bool:
        return day is not None and self.start <= day <= self.end


def _shift_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def default_date_range(today: date) -> DateRange:
    return DateRange(start=_shift_months(today, -3), end=today, range_type="last3Months")


def month_to_date_range(today: date) -> DateRange:
    return DateRange(start=today.replace(day=1), end=today, range_type="monthToDate")


def last_month_range(today: date) -> DateRange:
    first_of_month = today.replace(day=1)
    return DateRange(
        start=_shift_months(first_of_month, -1),
        end=first_of_month - timedelta(days=1),
        range_type="lastMonth",
    )


@dataclass(frozen=True)
class ReportRow:
    """Flattened invoice used by every report.

    ``total`` and ``due_date`` may be None for incomplete records; those rows
    are kept in counts but left out of sums, averages and aging.
    """

    invoice_id: str | None
    invoice_number: str
    client: str
    customer_id: str | None
    status: str
    created_at: date | None
    due_date: date | None
    paid_date: date | None
    total: float | None

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "ReportRow":
        return cls(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            client=invoice.client,
            customer_id=invoice.customer_id,
            status=invoice.status,
            created_at=parse_date(invoice.created_at),
            due_date=parse_date(invoice.due_date),
            paid_date=parse_date(invoice.paid_date),
            total=compute_totals(invoice).grand_total,
        )

    @property
    def customer_key(self) -> str:
        return self.customer_id or self.client


def rows_from_invoices(invoices: Iterable[Invoice]) -> list[ReportRow]:
    return [ReportRow.from_invoice(invoice) for invoice in invoices]


def rows_in_range(rows: Iterable[ReportRow], date_range: DateRange | None) -> list[ReportRow]:
    if date_range is None:
        return list(rows)
    return [row for row in rows if date_range.contains(row.created_at)]


def _sum(values: Iterable[float | None]) -> float:
    return math.fsum(value for value in values if value is not None)


@dataclass(frozen=True)
class StatusSummary:
    count: int = 0
    amount: float = 0.0


def status_summary(rows: Iterable[ReportRow]) -> dict[str, StatusSummary]:
    grouped: dict[str, list[ReportRow]] = {status: [] for status in ALL_STATES}
    for row in rows:
        grouped.setdefault(row.status, []).append(row)
    return {
        status: StatusSummary(count=len(members), amount=_sum(r.total for r in members))
        for status, members in grouped.items()
    }


@dataclass(frozen=True)
class AgingBucketSummary:
    bucket: str
    count: int = 0
    amount: float = 0.0


def aging_summary(rows: Iterable[ReportRow], now: date | datetime) -> list[AgingBucketSummary]:
    counts = {name: 0 for name, _ in AGING_BUCKETS}
    amounts: dict[str, list[float]] = {name: [] for name, _ in AGING_BUCKETS}
    for row in rows:
        if row.status not in OUTSTANDING_STATUSES or row.total is None:
            continue
        aging = classify_aging(row.due_date, now, row.status)
        if aging is None:
            continue
        counts[aging.bucket] += 1
        amounts[aging.bucket].append(row.total)
    return [
        AgingBucketSummary(bucket=name, count=counts[name], amount=math.fsum(amounts[name]))
        for name, _ in AGING_BUCKETS
    ]


@dataclass(frozen=True)
class OutstandingInvoice:
    invoice_id: str | None
    invoice_number: str
    client: str
    due_date: date
    invoice_total: float
    days_overdue: int
    aging_bucket: str


_OUTSTANDING_SORT_KEYS: Final[dict[str, Any]] = {
    "days_overdue": lambda item: item.days_overdue,
    "aging_bucket": lambda item: BUCKET_ORDER[item.aging_bucket],
    "due_date": lambda item: item.due_date,
    "invoice_total": lambda item: item.invoice_total,
    "invoice_number": lambda item: item.invoice_number,
    "customer_name": lambda item: item.client.lower(),
}


def outstanding_invoices(
    rows: Iterable[ReportRow],
    now: date | datetime,
    *,
    sort_by: str = "days_overdue",
    ascending: bool = False,
) -> list[OutstandingInvoice]:
    if sort_by not in _OUTSTANDING_SORT_KEYS:
        raise ValidationError({"sort_by": f"Unsupported sort field: {sort_by}"})
    items: list[OutstandingInvoice] = []
    for row in rows:
        if row.status not in OUTSTANDING_STATUSES or row.total is None or row.due_date is None:
            continue
        aging = classify_aging(row.due_date, now, row.status)
        if aging is None:
            continue
        items.append(
            OutstandingInvoice(
                invoice_id=row.invoice_id,
                invoice_number=row.invoice_number,
                client=row.client,
                due_date=row.due_date,
                invoice_total=row.total,
                days_overdue=aging.days_overdue,
                aging_bucket=aging.bucket,
            )
        )
    return sorted(items, key=_OUTSTANDING_SORT_KEYS[sort_by], reverse=not ascending)


@dataclass(frozen=True)
class SalesReportItem:
    invoice_id: str | None
    invoice_number: str
    client: str
    created_at: date | None
    due_date: date | None
    paid_date: date | None
    status: str
    invoice_total: float | None
    total_paid: float
    balance_due: float


_SALES_SORT_KEYS: Final[dict[str, Any]] = {
    "created_at": lambda item: item.created_at or date.min,
    "due_date": lambda item: item.due_date or date.min,
    "invoice_number": lambda item: item.invoice_number,
    "client": lambda item: item.client.lower(),
    "invoice_total": lambda item: item.invoice_total or 0.0,
    "balance_due": lambda item: item.balance_due,
    "status": lambda item: item.status,
}


def sales_report(
    rows: Iterable[ReportRow],
    *,
    statuses: Iterable[str] | None = None,
    sort_by: str = "created_at",
    ascending: bool = False,
) -> list[SalesReportItem]:
    if sort_by not in _SALES_SORT_KEYS:
        raise ValidationError({"sort_by": f"Unsupported sort field: {sort_by}"})
    wanted = set(statuses) if statuses else None
    items: list[SalesReportItem] = []
    for row in rows:
        if wanted is not None and row.status not in wanted:
            continue
        total = row.total or 0.0
        paid = total if row.status == PAID else 0.0
        items.append(
            SalesReportItem(
                invoice_id=row.invoice_id,
                invoice_number=row.invoice_number,
                client=row.client,
                created_at=row.created_at,
                due_date=row.due_date,
                paid_date=row.paid_date,
                status=row.status,
                invoice_total=row.total,
                total_paid=paid,
                balance_due=0.0 if row.status == CANCELLED else total - paid,
            )
        )
    return sorted(items, key=_SALES_SORT_KEYS[sort_by], reverse=not ascending)


@dataclass(frozen=True)
class CustomerPaymentHistory:
    customer_key: str
    customer_name: str
    total_invoices: int
    paid_invoices: int
    total_billed: float
    total_paid: float
    total_outstanding: float
    avg_days_overdue: float
    latest_invoice_date: date | None


@dataclass
class _CustomerAccumulator:
    name: str
    total_invoices: int = 0
    paid_invoices: int = 0
    billed: list[float] = field(default_factory=list)
    paid: list[float] = field(default_factory=list)
    outstanding: list[float] = field(default_factory=list)
    lateness: list[int] = field(default_factory=list)
    latest: date | None = None


_CUSTOMER_SORT_KEYS: Final[dict[str, Any]] = {
    "customer_name": lambda h: h.customer_name.lower(),
    "total_invoices": lambda h: h.total_invoices,
    "paid_invoices": lambda h: h.paid_invoices,
    "total_billed": lambda h: h.total_billed,
    "total_paid": lambda h: h.total_paid,
    "total_outstanding": lambda h: h.total_outstanding,
    "avg_days_overdue": lambda h: h.avg_days_overdue,
    "latest_invoice_date": lambda h: h.latest_invoice_date or date.min,
}


def customer_payment_history(
    rows: Iterable[ReportRow],
    *,
    sort_by: str = "total_billed",
    ascending: bool = False,
) -> list[CustomerPaymentHistory]:
    if sort_by not in _CUSTOMER_SORT_KEYS:
        raise ValidationError({"sort_by": f"Unsupported sort field: {sort_by}"})
    accumulators: dict[str, _CustomerAccumulator] = {}
    for row in rows:
        acc = accumulators.setdefault(row.customer_key, _CustomerAccumulator(name=row.client))
        acc.total_invoices += 1
        if row.created_at is not None and (acc.latest is None or row.created_at > acc.latest):
            acc.latest = row.created_at
        if row.status == PAID:
            acc.paid_invoices += 1
            # Lateness only counts invoices paid after their due date.
            if row.paid_date is not None and row.due_date is not None and row.paid_date > row.due_date:
                acc.lateness.append((row.paid_date - row.due_date).days)
        if row.total is None or row.status == CANCELLED:
            continue
        acc.billed.append(row.total)
        if row.status == PAID:
            acc.paid.append(row.total)
        else:
            acc.outstanding.append(row.total)

    history = [
        CustomerPaymentHistory(
            customer_key=key,
            customer_name=acc.name,
            total_invoices=acc.total_invoices,
            paid_invoices=acc.paid_invoices,
            total_billed=math.fsum(acc.billed),
            total_paid=math.fsum(acc.paid),
            total_outstanding=math.fsum(acc.outstanding),
            avg_days_overdue=(sum(acc.lateness) / len(acc.lateness)) if acc.lateness else 0.0,
            latest_invoice_date=acc.latest,
        )
        for key, acc in accumulators.items()
    ]
    return sorted(history, key=_CUSTOMER_SORT_KEYS[sort_by], reverse=not ascending)


@dataclass(frozen=True)
class MonthlyRevenue:
    month: str
    revenue: float
    count: int


def month_label(day: date) -> str:
    return f"{_MONTH_ABBR[day.month - 1]} {day.year}"


def revenue_by_month(rows: Iterable[ReportRow]) -> list[MonthlyRevenue]:
    """Paid revenue per calendar month of creation, oldest first."""
    buckets: dict[tuple[int, int], list[float]] = {}
    for row in rows:
        if row.status != PAID or row.total is None or row.created_at is None:
            continue
        buckets.setdefault((row.created_at.year, row.created_at.month), []).append(row.total)
    return [
        MonthlyRevenue(month=month_label(date(year, month, 1)), revenue=math.fsum(amounts), count=len(amounts))
        for (year, month), amounts in sorted(buckets.items())
    ]


@dataclass(frozen=True)
class RecentInvoice:
    invoice_id: str | None
    invoice_number: str
    client: str
    amount: float | None
    status: str
    due_date: date | None


@dataclass(frozen=True)
class DashboardMetrics:
    date_range: DateRange
    total_revenue: float
    outstanding_amount: float
    overdue_amount: float
    invoice_count: int
    paid_invoice_count: int
    overdue_invoice_count: int
    invoices_by_status: dict[str, StatusSummary]
    aging: list[AgingBucketSummary]
    top_customers: list[CustomerPaymentHistory]
    revenue_by_month: list[MonthlyRevenue]
    recent_invoices: list[RecentInvoice]

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_late(row: ReportRow, today: date) -> bool:
    aging = classify_aging(row.due_date, today, row.status)
    return aging is not None and aging.bucket != CURRENT


def dashboard_metrics(
    rows: Iterable[ReportRow],
    now: date | datetime,
    date_range: DateRange | None = None,
    *,
    top_customer_count: int = 5,
    recent_count: int = 5,
) -> DashboardMetrics:
    today = now.date() if isinstance(now, datetime) else now
    active_range = date_range or default_date_range(today)
    scoped = rows_in_range(rows, active_range)

    by_status = status_summary(scoped)
    outstanding_rows = [r for r in scoped if r.status not in (PAID, CANCELLED) and r.total is not None]
    # Same population as aging_summary, so overdue equals the non-current buckets.
    overdue_amount = _sum(
        r.total for r in outstanding_rows if r.status in OUTSTANDING_STATUSES and _is_late(r, today)
    )
    recent = sorted(scoped, key=lambda r: r.created_at or date.min, reverse=True)[:recent_count]

    return DashboardMetrics(
        date_range=active_range,
        total_revenue=by_status[PAID].amount,
        outstanding_amount=_sum(r.total for r in outstanding_rows),
        overdue_amount=overdue_amount,
        invoice_count=len(scoped),
        paid_invoice_count=by_status[PAID].count,
        overdue_invoice_count=by_status[OVERDUE].count,
        invoices_by_status=by_status,
        aging=aging_summary(scoped, today),
        top_customers=customer_payment_history(scoped)[:top_customer_count],
        revenue_by_month=revenue_by_month(scoped),
        recent_invoices=[
            RecentInvoice(
                invoice_id=r.invoice_id,
                invoice_number=r.invoice_number,
                client=r.client,
                amount=r.total,
                status=r.status or DRAFT,
                due_date=r.due_date,
            )
            for r in recent
        ],
    )
