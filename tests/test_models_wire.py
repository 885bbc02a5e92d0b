from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from peru_bank_scraper.banks import BankCode, parse_bank_code
from peru_bank_scraper.errors import ErrorCause, OperationCancelled, ParsingFailed, ScraperError
from peru_bank_scraper.models import Balance, Credentials, Currency, Direction, Session, Transaction


NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


def _tx(**overrides) -> Transaction:
    data = dict(
        id="0000001398",
        operation_date=date(2026, 1, 30),
        value_date=date(2026, 1, 31),
        description="*C/ HAB4ta   0130007",
        amount=999273,
        direction=Direction.DEBIT,
        bank_specific_code="015",
        extra={"code": "015", "office": "0437"},
    )
    data.update(overrides)
    return Transaction(**data)


def test_balance_wire_shape_and_round_trip() -> None:
    b = Balance(account_id="•4607", currency=Currency.PEN, available_amount=857797, booked_amount=857797, fetched_at=NOW)

    wire = b.to_wire()
    assert wire == {
        "account_id": "•4607",
        "currency": "PEN",
        "available_amount": 857797,
        "booked_amount": 857797,
        "fetched_at": "2026-01-31T12:00:00Z",
    }
    assert Balance.from_wire(wire) == b


def test_transaction_wire_shape_and_round_trip() -> None:
    t = _tx()

    wire = t.to_wire()
    assert wire["operation_date"] == "2026-01-30"
    assert wire["direction"] == "DEBIT"
    assert wire["amount"] == 999273
    assert wire["reference"] is None
    assert wire["balance_after"] is None
    assert Transaction.from_wire(wire) == t


def test_amounts_are_non_negative() -> None:
    with pytest.raises(ValidationError):
        Balance(account_id="x", currency=Currency.USD, available_amount=-1)
    with pytest.raises(ValidationError):
        _tx(amount=-5)


def test_booked_balance_defaults_to_zero() -> None:
    b = Balance(account_id="x", currency=Currency.USD, available_amount=100)
    assert b.booked_amount == 0
    assert b.fetched_at.tzinfo is not None


def test_signed_amount_follows_direction() -> None:
    assert _tx(direction=Direction.DEBIT, amount=90).signed_amount == -90
    assert _tx(direction=Direction.CREDIT, amount=90).signed_amount == 90


def test_unknown_currency_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Balance.from_wire({"account_id": "x", "currency": "EUR", "available_amount": 1})


def test_credentials_repr_hides_secrets() -> None:
    creds = Credentials(company_code="DEMO01", user_code="OPERADOR", password="hunter2")
    text = repr(creds)
    assert "hunter2" not in text
    assert "OPERADOR" not in text
    assert "DEMO01" not in text
    assert creds.is_complete()
    assert not Credentials(company_code="DEMO01", user_code="", password="x").is_complete()


def test_session_expiry() -> None:
    s = Session.start(BankCode.BBVA, ttl_seconds=600, now=NOW)
    assert s.id.startswith("bbva-")
    assert s.expires_at == NOW + timedelta(seconds=600)
    assert not s.is_expired(NOW + timedelta(seconds=599))
    assert s.is_expired(NOW + timedelta(seconds=600))


def test_session_close_closes_context_once() -> None:
    class FakeContext:
        def __init__(self) -> None:
            self.closed = 0

        def close(self) -> None:
            self.closed += 1

    ctx = FakeContext()
    s = Session.start(BankCode.BBVA, ttl_seconds=60, page=object(), context=ctx)
    s.close()
    s.close()

    assert ctx.closed == 1
    assert s.closed
    assert s.page is None
    assert s.context is None


def test_parse_bank_code() -> None:
    assert parse_bank_code("bbva") == BankCode.BBVA
    assert parse_bank_code(" Interbank ") == BankCode.INTERBANK
    with pytest.raises(ValueError, match="Unknown bank code"):
        parse_bank_code("scotiabank")


def test_scraper_error_message_and_retryable() -> None:
    e = ScraperError(bank_code="BBVA", operation="Login", cause=ErrorCause.TIMEOUT, details="page.goto: Timeout 30000ms")
    assert str(e) == "[BBVA] Login failed: timeout - page.goto: Timeout 30000ms"
    assert e.retryable

    p = ParsingFailed("failed to parse row: 3: bad", bank_code="BBVA", operation="parse_transactions", row_index=3)
    assert isinstance(p, ScraperError)
    assert p.cause == ErrorCause.PARSING_FAILED
    assert p.row_index == 3
    assert not p.retryable


def test_operation_cancelled_is_not_a_scraper_error() -> None:
    e = OperationCancelled(operation="GetBalances", reason="shutdown")
    assert not isinstance(e, ScraperError)
    assert str(e) == "GetBalances cancelled: shutdown"
