from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


# Plain signed decimal once separators and whitespace are gone; no exponents, no NaN/Infinity.
_PLAIN_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")
_WHITESPACE_RE = re.compile(r"\s+")


def parse_spanish_amount(value: str) -> int:
    """
    Parse bank amounts into signed integer cents.

    Handles values like:
    - "12,345.67" -> 1234567
    - "-9,992.73" -> -999273
    - "45" -> 4500
    - "123.1" -> 12310

    Commas are thousands separators and the dot is the decimal point (the layout BBVA Peru uses).
    """
    if value is None:
        raise ValueError("parse_spanish_amount: value is None")

    s = _WHITESPACE_RE.sub("", value.replace(",", ""))
    if not s:
        raise ValueError(f"parse_spanish_amount: empty amount {value!r}")
    if not _PLAIN_DECIMAL_RE.match(s):
        raise ValueError(f"parse_spanish_amount: not a decimal amount {value!r}")

    try:
        dec = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"parse_spanish_amount: not a decimal amount {value!r}") from e

    cents = (dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def cents_to_money_str(cents: int, *, symbol: str = "") -> str:
    dec = (Decimal(cents) / 100).quantize(Decimal("0.01"))
    if symbol:
        return f"{symbol} {dec:,.2f}"
    return f"{dec:,.2f}"
