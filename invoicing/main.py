from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import date
from typing import Any, Sequence

from invoicing.auth import build_auth_provider
from invoicing.clock import Clock, FixedClock, SystemClock
from invoicing.config import Settings, load_dotenv
from invoicing.errors import InvoicingError
from invoicing.export import REPORT_TYPES, export_report
from invoicing.gateway import ExternalCall
from invoicing.logger import configure_logging
from invoicing.notifications import notice_for_error
from invoicing.reporting import (
    DateRange,
    customer_payment_history,
    dashboard_metrics,
    default_date_range,
    outstanding_invoices,
    sales_report,
)
from invoicing.retry_utils import RetryPolicy
from invoicing.service import InvoiceService
from invoicing.storage import InvoiceStore, SqliteStore
from invoicing.totals import compute_totals, format_totals

logger = logging.getLogger(__name__)


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Invoicing")
    parser.add_argument("--db-path", default=None, help="Override INVOICING_DB_PATH")
    parser.add_argument("--as-of", type=_parse_day, default=None, help="Evaluate as if today were this date")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("refresh-overdue", help="Mark sent invoices past their due date as overdue")

    report = subparsers.add_parser("report", help="Build a report")
    report.add_argument("report_type", choices=REPORT_TYPES)
    report.add_argument("--start", type=_parse_day, default=None)
    report.add_argument("--end", type=_parse_day, default=None)
    report.add_argument("--status", action="append", default=None, help="Sales report status filter")
    report.add_argument("--sort-by", default=None)
    report.add_argument("--ascending", action="store_true")
    report.add_argument("--export", dest="export_format", default=None, help="csv or json")
    report.add_argument("--output-dir", default=".")

    totals = subparsers.add_parser("totals", help="Show computed totals for an invoice")
    totals.add_argument("invoice_id")
    return parser


def _report_range(args: argparse.Namespace, today: date) -> DateRange | None:
    if args.start is None and args.end is None:
        # Outstanding invoices are listed regardless of creation date.
        return None if args.report_type == "outstanding" else default_date_range(today)
    fallback = default_date_range(today)
    return DateRange(start=args.start or fallback.start, end=args.end or fallback.end)


def _build_report(args: argparse.Namespace, service: InvoiceService, today: date) -> Any:
    date_range = _report_range(args, today)
    rows = service.report_rows(date_range)
    if args.report_type == "dashboard":
        return dashboard_metrics(rows, today, date_range)
    if args.report_type == "outstanding":
        return outstanding_invoices(rows, today, sort_by=args.sort_by or "days_overdue", ascending=args.ascending)
    if args.report_type == "customers":
        return customer_payment_history(rows, sort_by=args.sort_by or "total_billed", ascending=args.ascending)
    return sales_report(
        rows,
        statuses=args.status,
        sort_by=args.sort_by or "created_at",
        ascending=args.ascending,
    )


def _print_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def run_command(
    args: argparse.Namespace,
    service: InvoiceService,
    clock: Clock,
) -> int:
    today = clock.today()
    if args.command == "refresh-overdue":
        changes = service.refresh_overdue()
        logger.info("Marked %d invoice(s) overdue", len(changes))
        _print_json({"updated": len(changes)})
        return 0

    if args.command == "report":
        report = _build_report(args, service, today)
        if args.export_format:
            path = export_report(args.report_type, report, args.export_format, today=today, output_dir=args.output_dir)
            _print_json({"exported": str(path)})
            return 0
        if isinstance(report, list):
            _print_json([asdict(item) for item in report])
        else:
            _print_json(asdict(report))
        return 0

    if args.command == "totals":
        invoice = service.load_invoice(args.invoice_id)
        totals = compute_totals(invoice)
        _print_json(
            {
                "invoice_number": invoice.invoice_number,
                "totals": totals.as_dict(),
                "formatted": format_totals(invoice, totals),
            }
        )
        return 0
    return 1


def main(argv: Sequence[str] | None = None, store: InvoiceStore | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    clock: Clock = FixedClock(args.as_of) if args.as_of else SystemClock()
    active_store = store or SqliteStore(args.db_path or settings.db_path, clock=clock)
    service = InvoiceService(
        active_store,
        build_auth_provider(settings),
        clock=clock,
        settings=settings,
        external_call=ExternalCall(policy=RetryPolicy.from_settings(settings)),
    )
    try:
        return run_command(args, service, clock)
    except InvoicingError as exc:
        notice = notice_for_error(exc)
        logger.error("Command %s failed: %s", args.command, exc)
        sys.stderr.write(f"{notice.level}: {notice.message}\n")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
