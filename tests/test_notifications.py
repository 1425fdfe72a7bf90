from __future__ import annotations

from invoicing.errors import ExternalServiceError, NotFoundError, ValidationError
from invoicing.notifications import (
    Notice,
    notice_for_delete,
    notice_for_error,
    notice_for_save,
    notice_for_status_change,
)
from invoicing.state_machine import StatusChange


def test_status_change_notices() -> None:
    assert notice_for_status_change("INV-1", StatusChange("sent", "paid")) == Notice(
        "success", "Invoice INV-1 marked as paid."
    )
    assert notice_for_status_change("INV-1", StatusChange("paid", "paid")) == Notice(
        "info", "Invoice INV-1 is already paid."
    )


def test_save_and_delete_notices() -> None:
    assert notice_for_save("INV-1", created=True).message == "Invoice INV-1 created successfully."
    assert notice_for_save("INV-1", created=False).message == "Invoice INV-1 updated successfully."
    assert notice_for_delete("customer") == Notice("success", "Customer deleted successfully.")


def test_error_notices_use_user_message() -> None:
    assert notice_for_error(ExternalServiceError("boom")).level == "warning"
    assert notice_for_error(NotFoundError("invoice", "x")) == Notice(
        "error", "The requested invoice could not be found."
    )
    assert notice_for_error(ValidationError({"items": "Add at least one line item."})).message == (
        "Add at least one line item."
    )
    assert notice_for_error(KeyError("raw")) == Notice("error", "Something went wrong.")
