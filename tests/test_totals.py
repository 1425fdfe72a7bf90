from __future__ import annotations

import random

import pytest

from invoicing.currency import get_currency_by_code
from invoicing.totals import compute_totals, extended_amount, format_totals
from schemas.invoice_schema import Invoice, LineItem, ShippingInfo


def _invoice(**overrides: object) -> Invoice:
    base: dict[str, object] = {
        "items": [
            LineItem(description="Design", quantity=2, price=50, tax_rate=10),
            LineItem(description="Hosting", quantity=1, price=20, tax_rate=0),
        ]
    }
    base.update(overrides)
    return Invoice(**base)


def test_two_item_invoice_totals() -> None:
    totals = compute_totals(_invoice())
    assert totals.subtotal == pytest.approx(120)
    assert totals.tax_total == pytest.approx(10)
    assert totals.discount_amount == 0
    assert totals.shipping_cost == 0
    assert totals.grand_total == pytest.approx(130)


def test_discount_and_shipping_only_apply_when_shown() -> None:
    hidden = _invoice(discount=10, shipping=ShippingInfo(cost=15))
    shown = _invoice(discount=10, shipping=ShippingInfo(cost=15), show_discount=True, show_shipping=True)

    assert compute_totals(hidden).grand_total == pytest.approx(130)
    totals = compute_totals(shown)
    assert totals.discount_amount == pytest.approx(12)
    assert totals.shipping_cost == pytest.approx(15)
    assert totals.grand_total == pytest.approx(120 + 10 - 12 + 15)


def test_grand_total_identity_holds_for_any_item_order() -> None:
    rng = random.Random(42)
    items = [
        LineItem(
            description=f"item {i}",
            quantity=rng.choice([0.1, 1, 3, 7.5]),
            price=rng.uniform(0, 1000),
            tax_rate=rng.choice([0, 5, 7.25, 20]),
        )
        for i in range(25)
    ]
    base = Invoice(items=items, discount=7.5, show_discount=True, show_shipping=True, shipping=ShippingInfo(cost=9.99))
    reference = compute_totals(base)

    for _ in range(10):
        shuffled = list(items)
        rng.shuffle(shuffled)
        totals = compute_totals(base.model_copy(update={"items": shuffled}))
        assert totals == reference
        expected = totals.subtotal + totals.tax_total - totals.discount_amount + totals.shipping_cost
        assert abs(totals.grand_total - expected) <= 1e-9


def test_extended_amount_includes_line_tax() -> None:
    item = LineItem(description="x", quantity=3, price=10, tax_rate=20)
    assert extended_amount(item) == pytest.approx(36)


def test_empty_invoice_totals_are_zero() -> None:
    totals = compute_totals(Invoice())
    assert totals.as_dict() == {
        "subtotal": 0.0,
        "tax_total": 0.0,
        "discount_amount": 0.0,
        "shipping_cost": 0.0,
        "grand_total": 0.0,
    }


def test_format_totals_uses_invoice_currency() -> None:
    formatted = format_totals(_invoice(currency=get_currency_by_code("USD")))
    assert formatted["subtotal"] == "$120.00"
    assert formatted["grand_total"] == "$130.00"
