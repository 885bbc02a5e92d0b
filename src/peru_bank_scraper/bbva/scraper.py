from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..banks import BankCode
from ..browser.flatten import DEFAULT_MAX_DEPTH, flatten_page
from ..browser.stability import wait_stable
from ..config import BankConfig
from ..errors import ErrorCause, OperationCancelled, ParsingFailed, ScraperError
from ..models import Balance, Credentials, Session, Transaction
from ..portal.interceptor import SubmissionStatusRecorder, Transport, install_interceptor, live_transport
from ..portal.login import LoginOutcome, Success, classify_login
from ..util.cancel import CancelToken, check_cancelled
from .parser import (
    detect_login_error,
    has_login_success_marker,
    parse_account_balances,
    parse_transactions,
)
from .selectors import BbvaSelectors


logger = logging.getLogger(__name__)

_TYPE_DELAY_MS = 20


class BbvaScraper:
    """
    BBVA Net Cash Peru automation.

    One scraper owns one Playwright driver and browser. Each successful `login()` returns a `Session`
    that exclusively owns a fresh browser context; pass it to the extract methods and `logout()` it.
    Every step is sequential: navigate, wait for the DOM to settle, flatten, parse.
    """

    bank_code = BankCode.BBVA

    def __init__(
        self,
        *,
        config: Optional[BankConfig] = None,
        transport: Optional[Transport] = None,
        selectors: Optional[BbvaSelectors] = None,
        flatten_max_depth: int = DEFAULT_MAX_DEPTH,
        debug_dir: str = "data/debug",
    ) -> None:
        self.config = config or BankConfig()
        self.transport = transport or live_transport
        self.selectors = selectors or BbvaSelectors()
        self.flatten_max_depth = int(flatten_max_depth)
        self.debug_dir = debug_dir

        self._playwright = None
        self._browser = None

    # --- lifecycle ---

    def start(self) -> "BbvaScraper":
        if self._browser is not None:
            return self

        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(headless=self.config.headless)
        except PlaywrightError as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg:
                self._stop_playwright()
                raise
            logger.warning(
                "Playwright Chromium executable missing; falling back to system Chrome channel. (%s)",
                msg,
            )
            try:
                self._browser = self._playwright.chromium.launch(headless=self.config.headless, channel="chrome")
            except PlaywrightError:
                self._stop_playwright()
                raise
        return self

    def close(self) -> None:
        if self._browser is not None:
            try:
                self._browser.close()
            except PlaywrightError:
                logger.debug("Failed to close browser.", exc_info=True)
            self._browser = None
        self._stop_playwright()

    def _stop_playwright(self) -> None:
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError:
                logger.debug("Failed to stop Playwright.", exc_info=True)
            self._playwright = None

    def __enter__(self) -> "BbvaScraper":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- operations ---

    def login(self, creds: Credentials, *, cancel: Optional[CancelToken] = None) -> LoginOutcome:
        """
        Submit the login form and classify the result.

        Returns a `LoginOutcome`; only driver-level failures (timeouts, dead browser) raise `ScraperError`.
        Non-success outcomes close the browser context they used.
        """
        if not creds.is_complete():
            raise ValueError("BBVA login requires company code, user code and password")
        if self._browser is None:
            raise RuntimeError("BbvaScraper.start() must be called before login()")

        check_cancelled(cancel, "Login")
        sel = self.selectors
        timeout_ms = self.config.timeout_ms

        context = self._browser.new_context(locale="es-PE")
        recorder = SubmissionStatusRecorder(self.config.submission_path)
        keep_context = False
        try:
            with self._driver_errors("Login"):
                install_interceptor(context, self.transport, observers=[recorder])
                page = context.new_page()
                page.set_default_timeout(timeout_ms)

                logger.info("Opening BBVA login page.")
                page.goto(self.config.login_url, wait_until="domcontentloaded")
                page.wait_for_selector(sel.company_input, state="visible")
                check_cancelled(cancel, "Login")

                self._type(page, sel.company_input, creds.company_code)
                self._type(page, sel.user_input, creds.user_code)
                self._type(page, sel.password_input, creds.password)
                check_cancelled(cancel, "Login")

                recorder.reset()
                page.locator(sel.login_button).first.click()

                wait_stable(page, timeout_ms=timeout_ms, cancel=cancel)
                flat = flatten_page(page, max_depth=self.flatten_max_depth, cancel=cancel)

            outcome = classify_login(
                recorder.status,
                flat.html,
                detect_error=lambda html, status: detect_login_error(html, status, selectors=sel),
                is_logged_in=lambda html: has_login_success_marker(html, selectors=sel),
                session_factory=lambda: Session.start(
                    self.bank_code,
                    ttl_seconds=self.config.session_ttl_seconds,
                    page=page,
                    context=context,
                ),
            )
            if isinstance(outcome, Success):
                keep_context = True
                logger.info("BBVA login succeeded (session=%s).", outcome.session.id)
            else:
                logger.warning("BBVA login did not succeed: %s", outcome)
                self._save_debug(page, name_prefix="bbva_login_failed")
            return outcome
        finally:
            if not keep_context:
                self._close_context(context)

    def extract_balances(self, session: Session, *, cancel: Optional[CancelToken] = None) -> list[Balance]:
        markup = self._load_page(session, self.config.accounts_url, operation="GetBalances", cancel=cancel)
        try:
            return parse_account_balances(markup, selectors=self.selectors)
        except ParsingFailed:
            self._save_debug(session.page, name_prefix="bbva_balances_parse_failed")
            raise

    def extract_transactions(self, session: Session, *, cancel: Optional[CancelToken] = None) -> list[Transaction]:
        markup = self._load_page(session, self.config.transactions_url, operation="GetTransactions", cancel=cancel)
        try:
            return parse_transactions(markup, selectors=self.selectors)
        except ParsingFailed:
            self._save_debug(session.page, name_prefix="bbva_transactions_parse_failed")
            raise

    def logout(self, session: Session) -> None:
        try:
            session.close()
        except PlaywrightError:
            logger.debug("Failed to close session context %s.", session.id, exc_info=True)

    # --- internals ---

    def _load_page(
        self,
        session: Session,
        url: str,
        *,
        operation: str,
        cancel: Optional[CancelToken],
    ) -> str:
        page = self._require_live_session(session, operation)
        try:
            with self._driver_errors(operation):
                check_cancelled(cancel, operation)
                if url:
                    logger.info("Navigating to %s", url)
                    page.goto(url, wait_until="domcontentloaded")
                wait_stable(page, timeout_ms=self.config.timeout_ms, cancel=cancel)
                flat = flatten_page(page, max_depth=self.flatten_max_depth, cancel=cancel)
        except OperationCancelled:
            self.logout(session)
            raise

        if not flat.flattened:
            logger.warning("%s: page markup was not flattened; parsing plain markup.", operation)

        if self._looks_logged_out(flat.html):
            self.logout(session)
            raise ScraperError(
                bank_code=self.bank_code.value,
                operation=operation,
                cause=ErrorCause.SESSION_EXPIRED,
                details="login form shown again; the bank ended the session",
            )
        return flat.html

    def _require_live_session(self, session: Session, operation: str) -> Page:
        if session.closed or session.page is None:
            raise ScraperError(
                bank_code=self.bank_code.value,
                operation=operation,
                cause=ErrorCause.SESSION_EXPIRED,
                details=f"session {session.id} is closed",
            )
        if session.is_expired():
            self.logout(session)
            raise ScraperError(
                bank_code=self.bank_code.value,
                operation=operation,
                cause=ErrorCause.SESSION_EXPIRED,
                details=f"session {session.id} expired at {session.expires_at.isoformat()}",
            )
        return session.page

    def _looks_logged_out(self, markup: str) -> bool:
        # Login inputs only render on the login page.
        return all(
            re.search(rf'id=["\']{re.escape(s.lstrip("#"))}["\']', markup or "")
            for s in (self.selectors.company_input, self.selectors.password_input)
        )

    def _type(self, page: Page, selector: str, value: str) -> None:
        field = page.locator(selector).first
        field.click()
        field.fill("")
        # Keystrokes rather than fill(): the password field validates on key events.
        field.press_sequentially(value, delay=_TYPE_DELAY_MS)

    @contextmanager
    def _driver_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (PlaywrightTimeoutError, TimeoutError) as e:
            raise ScraperError(
                bank_code=self.bank_code.value,
                operation=operation,
                cause=ErrorCause.TIMEOUT,
                details=str(e).splitlines()[0] if str(e) else "timed out",
            ) from e
        except PlaywrightError as e:
            raise ScraperError(
                bank_code=self.bank_code.value,
                operation=operation,
                cause=ErrorCause.BANK_UNAVAILABLE,
                details=str(e).splitlines()[0] if str(e) else type(e).__name__,
            ) from e

    def _close_context(self, context) -> None:
        try:
            context.close()
        except PlaywrightError:
            logger.debug("Failed to close browser context.", exc_info=True)

    def _save_debug(self, page: Optional[Page], *, name_prefix: str) -> None:
        if page is None or not self.debug_dir:
            return
        try:
            out_dir = Path(self.debug_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            page.screenshot(path=str(out_dir / f"{name_prefix}.png"), full_page=True)
            (out_dir / f"{name_prefix}.html").write_text(page.content(), encoding="utf-8")
        except (PlaywrightError, OSError):
            logger.debug("Failed to save debug artifacts.", exc_info=True)
