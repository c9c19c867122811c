from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")
STORAGE_QUANTUM = Decimal("0.0001")
WHOLE = Decimal("1")

CURRENCY_SYMBOLS = {"USD": "$", "CAD": "$", "AUD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


def to_decimal(value: Number | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_storage(value: Number) -> Decimal:
    return to_decimal(value).quantize(STORAGE_QUANTUM, rounding=ROUND_HALF_UP)


def round_whole(value: Number) -> int:
    return int(to_decimal(value).quantize(WHOLE, rounding=ROUND_HALF_UP))


def percent_of(part: Number, whole: Number) -> Decimal:
    """Return part/whole as a percentage with two decimals, 0 when whole <= 0."""
    whole_dec = to_decimal(whole)
    if whole_dec <= 0:
        return ZERO.quantize(CENT)
    return round_money(to_decimal(part) / whole_dec * HUNDRED)


def whole_percent_of(part: Number, whole: Number) -> int:
    whole_dec = to_decimal(whole)
    if whole_dec <= 0:
        return 0
    return round_whole(to_decimal(part) / whole_dec * HUNDRED)


def format_amount(value: Number, currency_code: str = "USD") -> str:
    amount = abs(to_decimal(value))
    symbol = CURRENCY_SYMBOLS.get(currency_code.upper())
    prefix = symbol if symbol else f"{currency_code.upper()} "
    if amount == amount.to_integral_value():
        return f"{prefix}{int(amount)}"
    return f"{prefix}{round_money(amount):.2f}"


def describe_balance(value: Number, currency_code: str = "USD", *, positive: str = "left") -> str:
    """Human label for a balance: "$80 left" or "$1000 over"."""
    amount = to_decimal(value)
    if amount < 0:
        return f"{format_amount(amount, currency_code)} over"
    return f"{format_amount(amount, currency_code)} {positive}"
