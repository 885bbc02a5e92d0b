from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..banks import BankCode
from ..errors import ErrorCause, ScraperError
from ..models import Session


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginErrorInfo:
    code: str
    message: str
    http_status: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.http_status}] (Code: {self.code}) {self.message}"


@dataclass(frozen=True)
class Success:
    session: Session


@dataclass(frozen=True)
class InvalidCredentials:
    code: str
    message: str
    http_status: Optional[int] = None


@dataclass(frozen=True)
class BotDetected:
    http_status: int
    message: str = ""


@dataclass(frozen=True)
class BankUnavailable:
    http_status: int
    message: str = ""


@dataclass(frozen=True)
class Unknown:
    detail: str
    http_status: Optional[int] = None


LoginOutcome = Union[Success, InvalidCredentials, BotDetected, BankUnavailable, Unknown]


def is_blocking_status(status: Optional[int]) -> bool:
    return status == 403


def is_unavailable_status(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or 500 <= status <= 599)


def classify_login(
    status: Optional[int],
    markup: str,
    *,
    detect_error: Callable[[str, Optional[int]], Optional[LoginErrorInfo]],
    is_logged_in: Callable[[str], bool],
    session_factory: Callable[[], Session],
) -> LoginOutcome:
    """
    Decide the outcome of one login attempt from the submission status and the settled page markup.

    `status` is None when the submission request was never observed. The same inputs come from live
    or replayed traffic, so this is the function replay tests pin down.

    Order matters:
    1. 403 from the edge layer is bot detection, whatever the page says.
    2. 429 and 5xx mean the bank is unavailable or throttling.
    3. The post-login marker means success (checked before error blocks: the dashboard reuses `h1.title`).
    4. A recognized error block means the bank rejected the credentials.
    5. Anything else is Unknown, never conflated with invalid credentials.
    """
    if is_blocking_status(status):
        info = detect_error(markup, status)
        return BotDetected(http_status=int(status), message=info.message if info else "")

    if is_unavailable_status(status):
        info = detect_error(markup, status)
        return BankUnavailable(http_status=int(status), message=info.message if info else "")

    if is_logged_in(markup):
        return Success(session=session_factory())

    info = detect_error(markup, status)
    if info is not None:
        return InvalidCredentials(code=info.code, message=info.message, http_status=status)

    return Unknown(
        detail=f"login did not reach the post-login page (submission status={status})",
        http_status=status,
    )


def require_session(outcome: LoginOutcome, bank_code: BankCode) -> Session:
    """
    Unwrap a successful outcome or raise the matching `ScraperError`.
    """
    if isinstance(outcome, Success):
        return outcome.session

    if isinstance(outcome, InvalidCredentials):
        cause = ErrorCause.INVALID_CREDENTIALS
        details = f"{outcome.code} {outcome.message}".strip()
    elif isinstance(outcome, BotDetected):
        cause = ErrorCause.BOT_DETECTED
        details = outcome.message or f"HTTP {outcome.http_status}"
    elif isinstance(outcome, BankUnavailable):
        cause = ErrorCause.BANK_UNAVAILABLE
        details = outcome.message or f"HTTP {outcome.http_status}"
    else:
        cause = ErrorCause.UNKNOWN
        details = outcome.detail

    raise ScraperError(bank_code=bank_code.value, operation="Login", cause=cause, details=details)
