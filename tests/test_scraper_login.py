from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Optional

import pytest

from peru_bank_scraper.bbva.scraper import BbvaScraper
from peru_bank_scraper.browser.flatten import SNAPSHOT_SCRIPT, snapshot_from_markup
from peru_bank_scraper.config import BBVA_SUBMISSION_PATH, BankConfig
from peru_bank_scraper.errors import OperationCancelled
from peru_bank_scraper.models import Credentials
from peru_bank_scraper.portal.interceptor import InterceptedRequest, InterceptedResponse
from peru_bank_scraper.portal.login import BotDetected, InvalidCredentials, Success
from peru_bank_scraper.util.cancel import CancelToken


FIXTURES = Path(__file__).resolve().parent / "fixtures" / "bbva"
SUBMIT_URL = f"https://www.bbvanetcash.pe{BBVA_SUBMISSION_PATH}"
CREDS = Credentials(company_code="DEMO01", user_code="OPERADOR", password="hunter22")


def _fixture(name: str) -> str:
    return (FIXTURES / f"{name}.html").read_text(encoding="utf-8")


class FakeRequest:
    def __init__(self, url: str, method: str = "POST") -> None:
        self.url = url
        self.method = method
        self.post_data = "empresa=DEMO01"
        self.headers = {"accept": "text/html"}


class FakeRoute:
    def __init__(self, request: FakeRequest) -> None:
        self.request = request
        self.fulfilled: Optional[dict] = None

    def fulfill(self, **kwargs) -> None:
        self.fulfilled = kwargs

    def fetch(self):
        raise AssertionError("every request is served by the test transport")


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self.page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def click(self) -> None:
        if self.selector == self.page.login_button:
            self.page.submit()

    def fill(self, value: str) -> None:
        self.page.typed[self.selector] = value

    def press_sequentially(self, value: str, delay: float = 0) -> None:
        self.page.typed[self.selector] = value
        if self.page.on_type is not None:
            self.page.on_type()


class FakePage:
    """Login page that swaps to `after_submit` markup once the login button is clicked."""

    def __init__(self, context: "FakeContext", after_submit: str) -> None:
        self.context = context
        self.after_submit = after_submit
        self.html = "<html><body><form><input id='empresa'><input id='clave_acceso_ux'></form></body></html>"
        self.login_button = BbvaScraper().selectors.login_button
        self.typed: dict[str, str] = {}
        self.frames: list = []
        self.on_type: Optional[Callable[[], None]] = None

    def set_default_timeout(self, ms: float) -> None:
        return None

    def goto(self, url: str, wait_until: str = "load") -> None:
        # Pre-submit traffic on the submission path must not count as the login response.
        self.context.request(SUBMIT_URL)

    def wait_for_selector(self, selector: str, state: str = "visible") -> None:
        return None

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def submit(self) -> None:
        self.context.request(SUBMIT_URL)
        self.html = self.after_submit

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
    def __init__(self, after_submit: str) -> None:
        self.after_submit = after_submit
        self.handler = None
        self.page: Optional[FakePage] = None
        self.close_calls = 0

    def route(self, pattern: str, handler) -> None:
        self.handler = handler

    def new_page(self) -> FakePage:
        self.page = FakePage(self, self.after_submit)
        return self.page

    def request(self, url: str) -> FakeRoute:
        route = FakeRoute(FakeRequest(url))
        self.handler(route)
        return route

    def close(self) -> None:
        self.close_calls += 1


class FakeBrowser:
    def __init__(self, after_submit: str) -> None:
        self.after_submit = after_submit
        self.contexts: list[FakeContext] = []

    def new_context(self, **kwargs) -> FakeContext:
        ctx = FakeContext(self.after_submit)
        self.contexts.append(ctx)
        return ctx


def _statuses(*statuses: int):
    queue = list(statuses)

    def transport(request: InterceptedRequest) -> InterceptedResponse:
        return InterceptedResponse(status=queue.pop(0), headers={"content-type": "text/html"}, body=b"")

    return transport


def _scraper(tmp_path: Path, after_submit: str, transport) -> tuple[BbvaScraper, FakeBrowser]:
    browser = FakeBrowser(after_submit)
    scraper = BbvaScraper(config=BankConfig(), transport=transport, debug_dir=str(tmp_path / "debug"))
    scraper._browser = browser
    return scraper, browser


def test_successful_login_returns_session_owning_page_and_context(tmp_path: Path) -> None:
    # 500 on the pre-submit request, 200 on the real submission.
    scraper, browser = _scraper(tmp_path, _fixture("dashboard"), _statuses(500, 200))

    outcome = scraper.login(CREDS)

    assert isinstance(outcome, Success)
    ctx = browser.contexts[0]
    assert outcome.session.context is ctx
    assert outcome.session.page is ctx.page
    assert ctx.close_calls == 0
    assert ctx.page.typed["#clave_acceso_ux"] == "hunter22"
    assert not (tmp_path / "debug").exists()


def test_403_submission_is_bot_detection_and_closes_context(tmp_path: Path) -> None:
    scraper, browser = _scraper(tmp_path, _fixture("dashboard"), _statuses(200, 403))

    outcome = scraper.login(CREDS)

    assert isinstance(outcome, BotDetected)
    assert outcome.http_status == 403
    assert browser.contexts[0].close_calls == 1
    assert (tmp_path / "debug" / "bbva_login_failed.png").exists()
    assert (tmp_path / "debug" / "bbva_login_failed.html").exists()


def test_pre_submit_status_does_not_leak_into_classification(tmp_path: Path) -> None:
    # A 403 before the click must be forgotten; the submission itself answered 200.
    scraper, _ = _scraper(tmp_path, _fixture("dashboard"), _statuses(403, 200))
    assert isinstance(scraper.login(CREDS), Success)


def test_rejected_credentials_close_context(tmp_path: Path) -> None:
    scraper, browser = _scraper(tmp_path, _fixture("login_error"), _statuses(200, 200))

    outcome = scraper.login(CREDS)

    assert isinstance(outcome, InvalidCredentials)
    assert browser.contexts[0].close_calls == 1


def test_cancel_during_login_closes_context(tmp_path: Path) -> None:
    scraper, browser = _scraper(tmp_path, _fixture("dashboard"), _statuses(200, 200))
    token = CancelToken()

    original_new_context = browser.new_context

    def new_context(**kwargs) -> FakeContext:
        ctx = original_new_context(**kwargs)
        original_new_page = ctx.new_page

        def new_page() -> FakePage:
            page = original_new_page()
            page.on_type = lambda: token.cancel("shutdown")
            return page

        ctx.new_page = new_page
        return ctx

    browser.new_context = new_context

    with pytest.raises(OperationCancelled):
        scraper.login(CREDS, cancel=token)
    assert browser.contexts[0].close_calls == 1
