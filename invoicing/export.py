from __future__ import annotations

import csv
import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from invoicing.errors import ValidationError
from invoicing.logger import log_invoice_event

logger = logging.getLogger(__name__)

REPORT_TYPES = ("dashboard", "outstanding", "customers", "sales")
EXPORT_FORMATS = ("csv", "json")


def export_file_name(report_type: str, fmt: str, today: date) -> str:
    return f"{report_type}_report_{today.isoformat()}.{fmt}"


def _as_record(item: Any) -> dict[str, Any]:
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    if isinstance(item, dict):
        return dict(item)
    raise TypeError(f"Cannot export record of type {type(item).__name__}")


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def export_report(
    report_type: str,
    records: Iterable[Any] | Any,
    fmt: str,
    *,
    today: date,
    output_dir: str | Path = ".",
) -> Path:
    """Write report records to ``<type>_report_<YYYY-MM-DD>.<fmt>``.

    ``records`` is a sequence of dataclasses or dicts; a single dataclass
    (the dashboard) is exported as one JSON object or a one-row CSV.
    """
    errors: dict[str, str] = {}
    if report_type not in REPORT_TYPES:
        errors["report_type"] = f"Unsupported report type: {report_type}"
    if fmt not in EXPORT_FORMATS:
        errors["format"] = f"Unsupported export format: {fmt}. Use one of: {', '.join(EXPORT_FORMATS)}"
    if errors:
        raise ValidationError(errors)

    single = is_dataclass(records) and not isinstance(records, type)
    rows = [_as_record(records)] if single else [_as_record(item) for item in records]

    target_dir = Path(output_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / export_file_name(report_type, fmt, today)

    if fmt == "json":
        payload: Any = rows[0] if single else rows
        path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    else:
        fieldnames: list[str] = []
        for row in rows:
            for key in row:
                if key not in fieldnames:
                    fieldnames.append(key)
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            writer.writeheader()
            for row in rows:
                writer.writerow({key: _csv_value(row.get(key)) for key in fieldnames})

    log_invoice_event(
        logger,
        logging.INFO,
        f"Exported {report_type} report",
        operation="export_report",
        entity=str(path),
        outcome="written",
    )
    return path
