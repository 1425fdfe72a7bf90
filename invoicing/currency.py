from __future__ import annotations

from typing import Final

from schemas.invoice_schema import Currency

CURRENCIES: Final[tuple[Currency, ...]] = (
    Currency(code="USD", symbol="$", name="US Dollar", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="EUR", symbol="€", name="Euro", decimal=",", thousand=".", precision=2, format="%v %s"),
    Currency(code="GBP", symbol="£", name="British Pound", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen", decimal=".", thousand=",", precision=0, format="%s%v"),
    Currency(code="CAD", symbol="C$", name="Canadian Dollar", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="AUD", symbol="A$", name="Australian Dollar", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="INR", symbol="₹", name="Indian Rupee", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="CNY", symbol="¥", name="Chinese Yuan", decimal=".", thousand=",", precision=2, format="%s%v"),
    Currency(code="BRL", symbol="R$", name="Brazilian Real", decimal=",", thousand=".", precision=2, format="%s%v"),
)

# Static placeholder rates against USD.
CONVERSION_RATES: Final[dict[str, float]] = {
    "USD": 1.0,
    "EUR": 0.85,
    "GBP": 0.75,
    "JPY": 110.0,
    "CAD": 1.25,
    "AUD": 1.35,
    "INR": 74.0,
    "CNY": 6.5,
    "BRL": 5.3,
}

DEFAULT_CURRENCY: Final[Currency] = CURRENCIES[0]


def get_currency_by_code(code: str | None) -> Currency:
    wanted = (code or "").strip().upper()
    for currency in CURRENCIES:
        if currency.code == wanted:
            return currency.model_copy()
    return DEFAULT_CURRENCY.model_copy()


def _group_thousands(digits: str, separator: str) -> str:
    groups: list[str] = []
    while len(digits) > 3:
        groups.append(digits[-3:])
        digits = digits[:-3]
    groups.append(digits)
    return separator.join(reversed(groups))


def format_currency(amount: float, currency: Currency) -> str:
    fixed = f"{amount:.{currency.precision}f}"
    sign = ""
    if fixed.startswith("-"):
        sign, fixed = "-", fixed[1:]
        if not fixed.strip("0."):
            sign = ""

    integer_part, _, fraction_part = fixed.partition(".")
    value = sign + _group_thousands(integer_part, currency.thousand)
    if currency.precision > 0:
        value = f"{value}{currency.decimal}{fraction_part}"
    return currency.format.replace("%s", currency.symbol).replace("%v", value)


def convert_currency(amount: float, from_code: str, to_code: str) -> float:
    try:
        from_rate = CONVERSION_RATES[from_code.upper()]
        to_rate = CONVERSION_RATES[to_code.upper()]
    except KeyError as exc:
        raise ValueError(f"Unsupported currency for conversion: {exc.args[0]}") from exc
    amount_in_usd = amount / from_rate
    return amount_in_usd * to_rate
