from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from invoicing.currency import format_currency
from schemas.invoice_schema import Invoice, LineItem


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    tax_total: float
    discount_amount: float
    shipping_cost: float
    grand_total: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def line_net(item: LineItem) -> float:
    return item.quantity * item.price


def line_tax(item: LineItem) -> float:
    return item.quantity * item.price * item.tax_rate / 100


def extended_amount(item: LineItem) -> float:
    return item.quantity * item.price * (1 + item.tax_rate / 100)


def compute_totals(invoice: Invoice) -> InvoiceTotals:
    # fsum is exactly rounded, so totals do not depend on item order.
    subtotal = math.fsum(line_net(item) for item in invoice.items)
    tax_total = math.fsum(line_tax(item) for item in invoice.items)
    discount_amount = subtotal * (invoice.discount / 100) if invoice.show_discount else 0.0
    shipping_cost = invoice.shipping.cost if invoice.show_shipping else 0.0
    grand_total = math.fsum((subtotal, tax_total, -discount_amount, shipping_cost))
    return InvoiceTotals(
        subtotal=subtotal,
        tax_total=tax_total,
        discount_amount=discount_amount,
        shipping_cost=shipping_cost,
        grand_total=grand_total,
    )


def format_totals(invoice: Invoice, totals: InvoiceTotals | None = None) -> dict[str, str]:
    active = totals or compute_totals(invoice)
    return {key: format_currency(value, invoice.currency) for key, value in active.as_dict().items()}
