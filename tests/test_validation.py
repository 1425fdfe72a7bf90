from __future__ import annotations

import pytest

from invoicing.errors import ValidationError
from invoicing.validation import (
    customer_field_errors,
    invoice_field_errors,
    is_valid_email,
    is_valid_phone,
    is_valid_postal_code,
    is_valid_url,
    validate_customer,
    validate_invoice_for_save,
    validate_product,
)
from schemas.invoice_schema import Customer, Invoice, LineItem, Product, ShippingInfo


def _valid_invoice(**overrides: object) -> Invoice:
    payload: dict[str, object] = {
        "company": "Acme Ltd",
        "company_address": "1 Main St",
        "client": "Globex",
        "client_address": "2 Side St",
        "invoice_number": "INV-2024-001",
        "due_date": "2024-07-01",
        "items": [LineItem(description="Consulting", quantity=1, price=100)],
    }
    payload.update(overrides)
    return Invoice(**payload)


def test_valid_invoice_passes() -> None:
    assert invoice_field_errors(_valid_invoice()) == {}
    validate_invoice_for_save(_valid_invoice())


def test_invoice_without_items_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_invoice_for_save(_valid_invoice(items=[]))
    assert exc_info.value.field_errors == {"items": "At least one line item is required"}
    assert exc_info.value.user_message == "At least one line item is required"


def test_missing_header_fields_are_all_reported() -> None:
    errors = invoice_field_errors(_valid_invoice(company=" ", client="", invoice_number="", due_date=None))
    assert set(errors) == {"company", "client", "invoice_number", "due_date"}


def test_line_item_without_description_is_reported_by_position() -> None:
    errors = invoice_field_errors(
        _valid_invoice(items=[LineItem(description="ok"), LineItem(description="  ")])
    )
    assert errors == {"items[1]": "Item #2: Description is required"}


def test_shipping_postal_code_checked_only_when_shipping_shown() -> None:
    bad = ShippingInfo(zip_code="???")
    assert invoice_field_errors(_valid_invoice(shipping=bad)) == {}
    assert "shipping.zip_code" in invoice_field_errors(_valid_invoice(shipping=bad, show_shipping=True))


def test_format_checks() -> None:
    assert is_valid_email("a@b.co")
    assert not is_valid_email("not-an-email")
    assert is_valid_phone("(555) 123-4567")
    assert not is_valid_phone("12345")
    assert is_valid_postal_code("12345-6789")
    assert is_valid_postal_code("K1A 0B1")
    assert is_valid_postal_code("SW1A 1AA")
    assert not is_valid_postal_code("1234")
    assert is_valid_url("https://example.com")
    assert not is_valid_url("example")


def test_customer_validation_lists_bad_fields() -> None:
    customer = Customer(name="Globex", email="nope", website="nope")
    assert set(customer_field_errors(customer)) == {"email", "website"}
    with pytest.raises(ValidationError, match="email"):
        validate_customer(customer)
    validate_customer(Customer(name="Globex", email="billing@globex.com"))


def test_product_requires_a_name() -> None:
    with pytest.raises(ValidationError):
        validate_product(Product(name=" "))
