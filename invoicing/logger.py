from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_EXTRA_FIELDS = (
    "invoice_id",
    "invoice_number",
    "entity",
    "status",
    "operation",
    "latency_ms",
    "outcome",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def log_invoice_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    operation: str,
    invoice_id: str | None = None,
    invoice_number: str | None = None,
    entity: str | None = None,
    status: str | None = None,
    latency_ms: int | None = None,
    outcome: str | None = None,
) -> None:
    extra: dict[str, Any] = {"operation": operation}
    if invoice_id is not None:
        extra["invoice_id"] = invoice_id
    if invoice_number is not None:
        extra["invoice_number"] = invoice_number
    if entity is not None:
        extra["entity"] = entity
    if status is not None:
        extra["status"] = status
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    if outcome is not None:
        extra["outcome"] = outcome
    logger.log(level, message, extra=extra)
