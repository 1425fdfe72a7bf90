from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from invoicing.errors import ValidationError
from schemas.invoice_schema import Customer, Invoice, Product

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_STRIP_RE = re.compile(r"[\s\-().]")
_POSTAL_CODE_RES = (
    re.compile(r"^\d{5}(-\d{4})?$"),
    re.compile(r"^[A-Za-z]\d[A-Za-z][ -]?\d[A-Za-z]\d$"),
    re.compile(r"^[A-Za-z]{1,2}\d[A-Za-z\d]? \d[A-Za-z]{2}$"),
)

_REQUIRED_INVOICE_FIELDS = (
    ("company", "Company name is required"),
    ("company_address", "Company address is required"),
    ("client", "Client name is required"),
    ("client_address", "Client address is required"),
    ("invoice_number", "Invoice number is required"),
)


def is_valid_email(email: str | None) -> bool:
    return not email or bool(_EMAIL_RE.match(email))


def is_valid_phone(phone: str | None) -> bool:
    if not phone:
        return True
    cleaned = _PHONE_STRIP_RE.sub("", phone)
    return cleaned.isdigit() and 7 <= len(cleaned) <= 15


def is_valid_postal_code(postal_code: str | None) -> bool:
    if not postal_code:
        return True
    return any(pattern.match(postal_code) for pattern in _POSTAL_CODE_RES)


def is_valid_url(url: str | None) -> bool:
    if not url:
        return True
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


def invoice_field_errors(invoice: Invoice) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field_name, message in _REQUIRED_INVOICE_FIELDS:
        value: Any = getattr(invoice, field_name)
        if not str(value or "").strip():
            errors[field_name] = message

    if not invoice.due_date:
        errors["due_date"] = "Due date is required"

    if invoice.show_shipping and not is_valid_postal_code(invoice.shipping.zip_code):
        errors["shipping.zip_code"] = "Shipping postal code is not valid"

    if not invoice.items:
        errors["items"] = "At least one line item is required"
        return errors

    for index, item in enumerate(invoice.items):
        if not item.description.strip():
            errors[f"items[{index}]"] = f"Item #{index + 1}: Description is required"
    return errors


def validate_invoice_for_save(invoice: Invoice) -> None:
    errors = invoice_field_errors(invoice)
    if errors:
        raise ValidationError(errors)


def customer_field_errors(customer: Customer) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not customer.name.strip():
        errors["name"] = "Customer name is required"
    if not is_valid_email(customer.email):
        errors["email"] = "Email address is not valid"
    if not is_valid_phone(customer.phone):
        errors["phone"] = "Phone number is not valid"
    if not is_valid_url(customer.website):
        errors["website"] = "Website must be a valid URL"
    return errors


def validate_customer(customer: Customer) -> None:
    errors = customer_field_errors(customer)
    if errors:
        raise ValidationError(errors)


def validate_product(product: Product) -> None:
    if not product.name.strip():
        raise ValidationError({"name": "Product name is required"})
