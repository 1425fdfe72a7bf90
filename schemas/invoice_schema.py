from __future__ import annotations

from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

InvoiceStatusValue = Literal["draft", "sent", "paid", "overdue", "cancelled"]


def _new_id() -> str:
    return uuid4().hex


class Currency(BaseModel):
    code: str = Field(default="USD", min_length=3, max_length=3)
    symbol: str = "$"
    name: str | None = "US Dollar"
    decimal: str = "."
    thousand: str = ","
    precision: int = Field(default=2, ge=0)
    format: str = "%s%v"


class ShippingInfo(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    method: str | None = None
    cost: float = Field(default=0.0, ge=0)


class TaxInfo(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1)
    rate: float = Field(ge=0)
    is_default: bool = False


class LineItem(BaseModel):
    id: str = Field(default_factory=_new_id)
    description: str = ""
    quantity: float = Field(default=1.0, gt=0)
    price: float = Field(default=0.0, ge=0)
    tax_rate: float = Field(default=0.0, ge=0)
    unit: str | None = None
    product_id: str | None = None


class Invoice(BaseModel):
    id: str | None = None
    company: str = ""
    company_address: str = ""
    client: str = ""
    client_address: str = ""
    invoice_number: str = ""
    due_date: str | None = None
    issue_date: str | None = None
    paid_date: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    status: InvoiceStatusValue = "draft"
    currency: Currency = Field(default_factory=Currency)
    template_id: str = "professional"
    primary_color: str | None = None
    secondary_color: str | None = None
    discount: float = Field(default=0.0, ge=0)
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    taxes: list[TaxInfo] = Field(default_factory=list)
    show_shipping: bool = False
    show_discount: bool = False
    show_tax_column: bool = False
    show_signature: bool = False
    show_payment_details: bool = False
    customer_id: str | None = None
    notes: str = ""
    terms: str = ""
    payment_terms: str | None = None
    bank_details: str | None = None
    vat_number: str | None = None
    po_number: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Customer(BaseModel):
    id: str | None = None
    name: str = Field(min_length=1)
    address: str = ""
    email: str | None = None
    phone: str | None = None
    vat_number: str | None = None
    contact_person: str | None = None
    website: str | None = None
    preferred_currency: str = "USD"
    created_at: str | None = None
    updated_at: str | None = None


class Product(BaseModel):
    id: str | None = None
    name: str = Field(min_length=1)
    description: str = ""
    default_price: float = Field(default=0.0, ge=0)
    default_tax_rate: float = Field(default=0.0, ge=0)
    unit: str | None = None
    sku: str | None = None
    category: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
