"""Typed edit actions for an in-memory invoice.

Every edit is one of a closed set of frozen action classes; ``apply_action``
returns a new ``Invoice`` and leaves the input untouched. Status changes are
not edits and go through ``invoicing.state_machine`` instead.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Union

from pydantic import ValidationError as SchemaValidationError

from invoicing.currency import get_currency_by_code
from invoicing.dates import add_days, normalize_date
from invoicing.errors import NotFoundError, ValidationError
from invoicing.state_machine import ensure_editable
from invoicing.templates import get_template_by_id
from schemas.invoice_schema import (
    Currency,
    Customer,
    Invoice,
    LineItem,
    Product,
    ShippingInfo,
    TaxInfo,
)

ToggleName = Literal[
    "show_shipping",
    "show_discount",
    "show_tax_column",
    "show_signature",
    "show_payment_details",
]
ItemField = Literal["description", "quantity", "price", "tax_rate", "unit", "product_id"]
DetailField = Literal[
    "company",
    "company_address",
    "client",
    "client_address",
    "invoice_number",
    "due_date",
    "issue_date",
    "notes",
    "terms",
    "payment_terms",
    "bank_details",
    "vat_number",
    "po_number",
    "discount",
]


@dataclass(frozen=True)
class SetTemplate:
    template_id: str


@dataclass(frozen=True)
class SetCurrency:
    currency: Currency


@dataclass(frozen=True)
class ToggleField:
    field: ToggleName
    value: bool


@dataclass(frozen=True)
class UpdateShipping:
    changes: dict[str, object]


@dataclass(frozen=True)
class AddTax:
    tax: TaxInfo


@dataclass(frozen=True)
class RemoveTax:
    tax_id: str


@dataclass(frozen=True)
class AddItem:
    item: LineItem = field(default_factory=LineItem)


@dataclass(frozen=True)
class UpdateItem:
    item_id: str
    field: ItemField
    value: object


@dataclass(frozen=True)
class RemoveItem:
    item_id: str


@dataclass(frozen=True)
class SetCustomer:
    customer: Customer


@dataclass(frozen=True)
class AddProductToItems:
    product: Product
    quantity: float = 1.0


@dataclass(frozen=True)
class UpdateDetails:
    field: DetailField
    value: object


InvoiceAction = Union[
    SetTemplate,
    SetCurrency,
    ToggleField,
    UpdateShipping,
    AddTax,
    RemoveTax,
    AddItem,
    UpdateItem,
    RemoveItem,
    SetCustomer,
    AddProductToItems,
    UpdateDetails,
]


def generate_invoice_number(today: date, rng: random.Random | None = None) -> str:
    source = rng or random.Random()
    return f"INV-{today.year}-{source.randrange(1000):03d}"


def new_invoice(
    today: date,
    *,
    due_in_days: int = 30,
    currency_code: str = "USD",
    template_id: str | None = None,
    rng: random.Random | None = None,
) -> Invoice:
    return Invoice(
        invoice_number=generate_invoice_number(today, rng),
        issue_date=today.isoformat(),
        due_date=add_days(today, due_in_days).isoformat(),
        currency=get_currency_by_code(currency_code),
        template_id=get_template_by_id(template_id).id,
        items=[LineItem()],
    )


def _find_item_index(invoice: Invoice, item_id: str) -> int:
    for index, item in enumerate(invoice.items):
        if item.id == item_id:
            return index
    raise NotFoundError("line item", item_id)


def _validated(invoice: Invoice, **changes: object) -> Invoice:
    payload = invoice.model_dump()
    payload.update(changes)
    return Invoice.model_validate(payload)


def apply_action(invoice: Invoice, action: InvoiceAction, *, today: date) -> Invoice:
    ensure_editable(invoice.status)
    try:
        return _apply(invoice, action, today=today)
    except SchemaValidationError as exc:
        raise ValidationError(_schema_errors(exc)) from exc


def _schema_errors(exc: SchemaValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "value"
        errors[location] = f"{location}: {error['msg']}"
    return errors


def _apply(invoice: Invoice, action: InvoiceAction, *, today: date) -> Invoice:
    if isinstance(action, SetTemplate):
        return invoice.model_copy(update={"template_id": get_template_by_id(action.template_id).id})

    if isinstance(action, SetCurrency):
        return invoice.model_copy(update={"currency": action.currency.model_copy()})

    if isinstance(action, ToggleField):
        return invoice.model_copy(update={action.field: bool(action.value)})

    if isinstance(action, UpdateShipping):
        shipping = ShippingInfo.model_validate({**invoice.shipping.model_dump(), **action.changes})
        return invoice.model_copy(update={"shipping": shipping})

    if isinstance(action, AddTax):
        return invoice.model_copy(update={"taxes": [*invoice.taxes, action.tax]})

    if isinstance(action, RemoveTax):
        return invoice.model_copy(
            update={"taxes": [tax for tax in invoice.taxes if tax.id != action.tax_id]}
        )

    if isinstance(action, AddItem):
        return invoice.model_copy(update={"items": [*invoice.items, action.item]})

    if isinstance(action, UpdateItem):
        index = _find_item_index(invoice, action.item_id)
        updated = LineItem.model_validate(
            {**invoice.items[index].model_dump(), action.field: action.value}
        )
        items = list(invoice.items)
        items[index] = updated
        return invoice.model_copy(update={"items": items})

    if isinstance(action, RemoveItem):
        _find_item_index(invoice, action.item_id)
        return invoice.model_copy(
            update={"items": [item for item in invoice.items if item.id != action.item_id]}
        )

    if isinstance(action, SetCustomer):
        customer = action.customer
        changes: dict[str, object] = {
            "customer_id": customer.id,
            "client": customer.name,
            "client_address": customer.address,
        }
        if customer.preferred_currency:
            changes["currency"] = get_currency_by_code(customer.preferred_currency)
        return invoice.model_copy(update=changes)

    if isinstance(action, AddProductToItems):
        product = action.product
        item = LineItem(
            description=product.name,
            quantity=action.quantity,
            price=product.default_price,
            tax_rate=product.default_tax_rate,
            unit=product.unit,
            product_id=product.id,
        )
        # Blank placeholder rows are dropped when a product is added.
        items = [i for i in invoice.items if i.description.strip() or i.price]
        return invoice.model_copy(update={"items": [*items, item]})

    if isinstance(action, UpdateDetails):
        value = action.value
        if action.field in ("due_date", "issue_date"):
            value = normalize_date(value, today=today)
        return _validated(invoice, **{action.field: value})

    raise TypeError(f"Unsupported invoice action: {type(action).__name__}")
