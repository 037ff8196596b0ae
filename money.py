from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(value: Optional[Number]) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Optional[Number], include_cents: bool = True) -> str:
    amount = quantize_money(value)
    if include_cents:
        return f"{amount:,.2f}"
    return f"{amount:,.0f}"
