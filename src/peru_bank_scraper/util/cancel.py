from __future__ import annotations

import threading
from typing import Optional

from ..errors import OperationCancelled


class CancelToken:
    """
    Cooperative cancellation signal shared between a caller and one session-scoped operation.

    The operation polls `raise_if_cancelled()` between blocking steps; the caller flips it from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self, operation: str = "") -> None:
        if not self._event.is_set():
            return
        raise OperationCancelled(operation=operation or "operation", reason=self._reason)


def check_cancelled(cancel: Optional[CancelToken], operation: str = "") -> None:
    if cancel is not None:
        cancel.raise_if_cancelled(operation)
