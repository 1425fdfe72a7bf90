from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from invoicing.errors import InvoicingError
from invoicing.state_machine import StatusChange

NoticeLevel = Literal["success", "info", "warning", "error"]


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str


def notice_for_status_change(invoice_number: str, change: StatusChange) -> Notice:
    if not change.changed:
        return Notice("info", f"Invoice {invoice_number} is already {change.current}.")
    return Notice("success", f"Invoice {invoice_number} marked as {change.current}.")


def notice_for_save(invoice_number: str, *, created: bool) -> Notice:
    verb = "created" if created else "updated"
    return Notice("success", f"Invoice {invoice_number} {verb} successfully.")


def notice_for_delete(entity: str) -> Notice:
    return Notice("success", f"{entity.capitalize()} deleted successfully.")


def notice_for_error(exc: Exception) -> Notice:
    if isinstance(exc, InvoicingError):
        level: NoticeLevel = "warning" if exc.retryable else "error"
        return Notice(level, exc.user_message)
    return Notice("error", InvoicingError.user_message)
