from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCause(str, Enum):
    PARSING_FAILED = "parsing_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    SESSION_EXPIRED = "session_expired"
    BOT_DETECTED = "bot_detected"
    BANK_UNAVAILABLE = "bank_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


RETRYABLE_CAUSES = frozenset({ErrorCause.BANK_UNAVAILABLE, ErrorCause.TIMEOUT})


class ScraperError(RuntimeError):
    """
    Every scraper-originated failure.

    Callers branch on `cause`; `details` is free text for humans.
    `bank_code` is a plain string so errors stay usable before a bank is resolved.
    """

    def __init__(
        self,
        *,
        bank_code: str,
        operation: str,
        cause: ErrorCause,
        details: str = "",
    ) -> None:
        self.bank_code = str(getattr(bank_code, "value", bank_code) or "")
        self.operation = operation
        self.cause = ErrorCause(cause)
        self.details = details
        super().__init__(self._format())

    def _format(self) -> str:
        msg = f"[{self.bank_code}] {self.operation} failed: {self.cause.value}"
        if self.details:
            msg += f" - {self.details}"
        return msg

    @property
    def retryable(self) -> bool:
        return self.cause in RETRYABLE_CAUSES


class ParsingFailed(ScraperError):
    """
    Markup did not match a known structure, or a value failed locale conversion.

    `row_index` is set when a specific table row was at fault.
    """

    def __init__(
        self,
        details: str,
        *,
        bank_code: str = "",
        operation: str = "parse",
        row_index: Optional[int] = None,
    ) -> None:
        self.row_index = row_index
        super().__init__(
            bank_code=bank_code,
            operation=operation,
            cause=ErrorCause.PARSING_FAILED,
            details=details,
        )


class OperationCancelled(RuntimeError):
    """
    Raised when a session-scoped operation observes its cancel token. Partial results are discarded.
    """

    def __init__(self, *, operation: str, reason: str = "cancelled") -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} cancelled: {reason}")
