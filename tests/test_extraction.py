from __future__ import annotations

from pathlib import Path

import pytest

from peru_bank_scraper.banks import BankCode
from peru_bank_scraper.errors import ErrorCause, ScraperError
from peru_bank_scraper.extraction import BANK_PARSERS, parse_balances, parse_transactions, parsers_for


FIXTURES = Path(__file__).resolve().parent / "fixtures" / "bbva"


def _fixture(name: str) -> str:
    return (FIXTURES / f"{name}.html").read_text(encoding="utf-8")


def test_bbva_dispatch() -> None:
    assert [b.account_id for b in parse_balances(BankCode.BBVA, _fixture("accounts_list"))] == ["•4607", "•4615"]
    assert len(parse_transactions(BankCode.BBVA, _fixture("transactions"))) == 10


@pytest.mark.parametrize("bank", [BankCode.INTERBANK, BankCode.BCP])
def test_unsupported_bank_is_a_typed_error(bank: BankCode) -> None:
    with pytest.raises(ScraperError) as exc:
        parse_balances(bank, "<html></html>")
    assert exc.value.cause == ErrorCause.UNKNOWN
    assert exc.value.bank_code == bank.value
    assert exc.value.operation == "parse_balances"

    with pytest.raises(ScraperError):
        parsers_for(bank, "parse_transactions")


def test_registry_is_read_only() -> None:
    with pytest.raises(TypeError):
        BANK_PARSERS[BankCode.BCP] = BANK_PARSERS[BankCode.BBVA]  # type: ignore[index]
