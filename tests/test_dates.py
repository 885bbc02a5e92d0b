from __future__ import annotations

from datetime import date

import pytest

from peru_bank_scraper.util.dates import format_bank_date, parse_bank_date


def test_parse_bank_date_day_first() -> None:
    assert parse_bank_date("30-01-2026") == date(2026, 1, 30)
    assert parse_bank_date(" 31-01-2026 ") == date(2026, 1, 31)


@pytest.mark.parametrize("raw", ["01-30-2026", "30012026", "", "2026-01-30", "30/01/2026", "3-1-2026", "31-02-2026"])
def test_parse_bank_date_rejects_other_layouts(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_bank_date(raw)


def test_format_bank_date() -> None:
    assert format_bank_date(date(2026, 1, 5)) == "05-01-2026"
