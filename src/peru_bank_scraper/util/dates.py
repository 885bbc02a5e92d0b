from __future__ import annotations

import re
from datetime import date, datetime


BANK_DATE_FORMAT = "%d-%m-%Y"

_BANK_DATE_RE = re.compile(r"^\d{2}-\d{2}-\d{4}$")


def parse_bank_date(value: str) -> date:
    """
    Parse bank dates in the fixed day-month-year layout, e.g. "30-01-2026".

    Any other layout fails: "01-30-2026" (month first), "30012026" (no separators), "".
    """
    if value is None:
        raise ValueError("parse_bank_date: value is None")
    s = value.strip()
    if not s:
        raise ValueError("parse_bank_date: empty string")
    if not _BANK_DATE_RE.match(s):
        raise ValueError(f"parse_bank_date: expected DD-MM-YYYY, got {value!r}")
    try:
        return datetime.strptime(s, BANK_DATE_FORMAT).date()
    except ValueError as e:
        raise ValueError(f"parse_bank_date: invalid date {value!r}") from e


def format_bank_date(value: date) -> str:
    return value.strftime(BANK_DATE_FORMAT)
