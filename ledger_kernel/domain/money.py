"""
Money -- fixed-scale decimal arithmetic for ledger amounts.

All amounts are ``Decimal`` quantized to 4 places (the scale of the
``Numeric(24, 4)`` amount columns) and all rates to 6 places (the scale of
``Numeric(15, 6)``), both with ROUND_HALF_UP.  Binary floats are rejected at
the boundary so they can never introduce a spurious imbalance.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

AMOUNT_SCALE = Decimal("0.0001")
RATE_SCALE = Decimal("0.000001")

MIN_RATE = Decimal("0.000001")
MAX_RATE = Decimal("999999.999999")

ZERO = Decimal("0")
ONE = Decimal("1")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Convert an int/str/Decimal to Decimal.

    Raises:
        TypeError: value is a float (or bool), or another unsupported type.
        ValueError: value is not a finite number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary values must not be float: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid decimal value: {value!r}") from e
    else:
        raise TypeError(f"Unsupported monetary type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Decimal value must be finite: {value!r}")
    return result


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_SCALE, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal) -> Decimal:
    return value.quantize(RATE_SCALE, rounding=ROUND_HALF_UP)


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    """Base-currency equivalent of ``amount`` at ``rate``, at amount scale."""
    return quantize_amount(amount * rate)


def normalize_currency(code: str) -> str | None:
    """Upper-cased 3-letter currency code, or None when malformed."""
    if not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    if not _CURRENCY_RE.match(normalized):
        return None
    return normalized
