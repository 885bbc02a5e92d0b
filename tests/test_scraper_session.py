from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from peru_bank_scraper.banks import BankCode
from peru_bank_scraper.bbva.scraper import BbvaScraper
from peru_bank_scraper.browser.flatten import SNAPSHOT_SCRIPT, snapshot_from_markup
from peru_bank_scraper.config import BankConfig
from peru_bank_scraper.errors import ErrorCause, OperationCancelled, ParsingFailed, ScraperError
from peru_bank_scraper.models import Credentials, Currency, Session
from peru_bank_scraper.util.cancel import CancelToken


FIXTURES = Path(__file__).resolve().parent / "fixtures" / "bbva"
ACCOUNTS_URL = "https://www.bbvanetcash.pe/SESKYOP/kyop_mult_web_posicion_01/cuentas"


def _fixture(name: str) -> str:
    return (FIXTURES / f"{name}.html").read_text(encoding="utf-8")


class FakePage:
    """Just enough of a Playwright page for navigate -> settle -> flatten."""

    def __init__(self, html: str, *, goto_error: Optional[Exception] = None) -> None:
        self.html = html
        self.goto_error = goto_error
        self.visited: list[str] = []
        self.frames: list = []

    def goto(self, url: str, wait_until: str = "load") -> None:
        if self.goto_error is not None:
            raise self.goto_error
        self.visited.append(url)

    def wait_for_load_state(self, state: str = "load", timeout: Optional[float] = None) -> None:
        return None

    def wait_for_timeout(self, ms: float) -> None:
        return None

    def evaluate(self, script: str, arg=None):
        if script == SNAPSHOT_SCRIPT:
            return json.dumps({"root": snapshot_from_markup(self.html)})
        return "complete|10|0|0"

    def content(self) -> str:
        return self.html

    def screenshot(self, path: str, full_page: bool = False) -> None:
        Path(path).write_bytes(b"png")


class FakeContext:
    def __init__(self) -> None:
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


def _scraper(tmp_path: Path, **config) -> BbvaScraper:
    return BbvaScraper(config=BankConfig(**config), debug_dir=str(tmp_path / "debug"))


def _session(page: FakePage, *, ttl_seconds: int = 600) -> tuple[Session, FakeContext]:
    ctx = FakeContext()
    return Session.start(BankCode.BBVA, ttl_seconds=ttl_seconds, page=page, context=ctx), ctx


def test_extract_balances_navigates_flattens_and_parses(tmp_path: Path) -> None:
    page = FakePage(_fixture("accounts_list_shadow"))
    session, _ = _session(page)

    balances = _scraper(tmp_path, accounts_url=ACCOUNTS_URL).extract_balances(session)

    assert page.visited == [ACCOUNTS_URL]
    assert [(b.account_id, b.currency) for b in balances] == [("•4607", Currency.PEN), ("•4615", Currency.USD)]
    assert not session.closed


def test_extract_transactions_reads_current_page_when_no_url(tmp_path: Path) -> None:
    page = FakePage(_fixture("transactions"))
    session, _ = _session(page)

    txs = _scraper(tmp_path).extract_transactions(session)

    assert page.visited == []
    assert len(txs) == 10


def test_closed_session_is_rejected(tmp_path: Path) -> None:
    session, _ = _session(FakePage(_fixture("accounts_list")))
    session.close()

    with pytest.raises(ScraperError) as exc:
        _scraper(tmp_path).extract_balances(session)
    assert exc.value.cause == ErrorCause.SESSION_EXPIRED
    assert exc.value.operation == "GetBalances"


def test_expired_session_is_rejected_and_closed(tmp_path: Path) -> None:
    ctx = FakeContext()
    session = Session(
        id="bbva-1",
        bank_code=BankCode.BBVA,
        expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        page=FakePage(_fixture("accounts_list")),
        context=ctx,
    )

    with pytest.raises(ScraperError) as exc:
        _scraper(tmp_path).extract_transactions(session)
    assert exc.value.cause == ErrorCause.SESSION_EXPIRED
    assert session.closed
    assert ctx.close_calls == 1


def test_login_form_on_extraction_means_session_expired(tmp_path: Path) -> None:
    session, ctx = _session(FakePage(_fixture("login_error")))

    with pytest.raises(ScraperError) as exc:
        _scraper(tmp_path).extract_balances(session)
    assert exc.value.cause == ErrorCause.SESSION_EXPIRED
    assert ctx.close_calls == 1


def test_parse_failure_saves_debug_artifacts(tmp_path: Path) -> None:
    session, _ = _session(FakePage(_fixture("transactions_invalid")))

    with pytest.raises(ParsingFailed) as exc:
        _scraper(tmp_path).extract_transactions(session)

    assert exc.value.row_index == 1
    assert (tmp_path / "debug" / "bbva_transactions_parse_failed.png").exists()
    assert "0000001400" in (tmp_path / "debug" / "bbva_transactions_parse_failed.html").read_text(encoding="utf-8")


def test_cancelled_extraction_closes_session(tmp_path: Path) -> None:
    session, ctx = _session(FakePage(_fixture("accounts_list")))
    token = CancelToken()
    token.cancel("shutdown")

    with pytest.raises(OperationCancelled):
        _scraper(tmp_path).extract_balances(session, cancel=token)
    assert session.closed
    assert ctx.close_calls == 1


@pytest.mark.parametrize(
    ("error", "cause"),
    [
        (PlaywrightTimeoutError("Timeout 30000ms exceeded."), ErrorCause.TIMEOUT),
        (TimeoutError("DOM did not stabilize within 30000ms"), ErrorCause.TIMEOUT),
        (PlaywrightError("net::ERR_CONNECTION_REFUSED at https://www.bbvanetcash.pe/"), ErrorCause.BANK_UNAVAILABLE),
    ],
)
def test_driver_errors_map_to_causes(tmp_path: Path, error: Exception, cause: ErrorCause) -> None:
    session, _ = _session(FakePage("", goto_error=error))

    with pytest.raises(ScraperError) as exc:
        _scraper(tmp_path, accounts_url=ACCOUNTS_URL).extract_balances(session)
    assert exc.value.cause == cause
    assert exc.value.__cause__ is error


def test_login_requires_started_scraper_and_complete_credentials(tmp_path: Path) -> None:
    scraper = _scraper(tmp_path)
    with pytest.raises(ValueError):
        scraper.login(Credentials(company_code="DEMO01", user_code="", password="x"))
    with pytest.raises(RuntimeError):
        scraper.login(Credentials(company_code="DEMO01", user_code="OPERADOR", password="x"))
