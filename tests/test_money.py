from __future__ import annotations

import pytest

from peru_bank_scraper.util.money import cents_to_money_str, parse_spanish_amount


@pytest.mark.parametrize(
    "raw,cents",
    [
        ("12,345.67", 1234567),
        ("45", 4500),
        ("-45", -4500),
        ("123", 12300),
        ("123.1", 12310),
        ("-9,992.73", -999273),
        (" 18,000.00 ", 1800000),
        ("1 234.50", 123450),
        ("+0.90", 90),
        ("0.005", 1),
        ("-0.005", -1),
    ],
)
def test_parse_spanish_amount(raw: str, cents: int) -> None:
    assert parse_spanish_amount(raw) == cents


@pytest.mark.parametrize("raw", ["", ".,  .", "   ", "abc", "1e3", "NaN", "Infinity", "12.34.56", "S/ 10.00", "-"])
def test_parse_spanish_amount_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_spanish_amount(raw)


def test_parse_spanish_amount_none_raises() -> None:
    with pytest.raises(ValueError):
        parse_spanish_amount(None)  # type: ignore[arg-type]


def test_cents_to_money_str() -> None:
    assert cents_to_money_str(1234567) == "12,345.67"
    assert cents_to_money_str(90, symbol="S/") == "S/ 0.90"
