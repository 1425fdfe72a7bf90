from __future__ import annotations

import json
import logging

import pytest

from invoicing.logger import JsonFormatter, configure_logging, log_invoice_event


def test_json_formatter_includes_invoice_fields() -> None:
    logger = logging.getLogger("test-observability")
    record = logger.makeRecord(
        name=logger.name,
        level=logging.INFO,
        fn="test",
        lno=1,
        msg="saved",
        args=(),
        exc_info=None,
        extra={
            "invoice_id": "inv-1",
            "invoice_number": "INV-2024-001",
            "operation": "save_invoice",
            "latency_ms": 12,
            "outcome": "created",
        },
    )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "saved"
    assert payload["level"] == "INFO"
    assert payload["invoice_id"] == "inv-1"
    assert payload["invoice_number"] == "INV-2024-001"
    assert payload["latency_ms"] == 12
    assert "status" not in payload


def test_log_invoice_event_sets_only_given_extras(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test-invoice-events")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_invoice_event(logger, logging.INFO, "status changed", operation="update_status", invoice_id="inv-1", status="paid")

    record = caplog.records[-1]
    assert record.operation == "update_status"  # type: ignore[attr-defined]
    assert record.status == "paid"  # type: ignore[attr-defined]
    assert not hasattr(record, "latency_ms")


def test_configure_logging_installs_json_formatter() -> None:
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_formatters = [handler.formatter for handler in previous_handlers]
    previous_level = root.level
    try:
        configure_logging("warning")
        assert root.level == logging.WARNING
        assert root.handlers
        assert all(isinstance(handler.formatter, JsonFormatter) for handler in root.handlers)
    finally:
        for handler, formatter in zip(previous_handlers, previous_formatters):
            handler.setFormatter(formatter)
        for handler in root.handlers:
            if handler not in previous_handlers:
                root.removeHandler(handler)
        root.setLevel(previous_level)
