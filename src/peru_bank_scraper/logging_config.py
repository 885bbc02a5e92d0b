import logging
import os
from pathlib import Path
from typing import Iterable, Optional


REDACTED = "[REDACTED]"

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_TRACEBACK_FORMATTER = logging.Formatter()


class SecretMaskingFilter(logging.Filter):
    """
    Replace known secret values (bank password, user and company codes) in formatted log messages.

    Playwright error messages can echo typed input back, so masking happens on the final message text.
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        # Longest first so a secret that contains another is masked whole.
        self.secrets = sorted({s for s in secrets if s and len(s) >= 3}, key=len, reverse=True)

    def _mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        msg = record.getMessage()
        masked = self._mask(msg)
        if masked != msg:
            record.msg = masked
            record.args = None
        if record.exc_info and not record.exc_text:
            # Formatters reuse a cached exc_text, so caching the masked traceback covers every handler.
            record.exc_text = _TRACEBACK_FORMATTER.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self._mask(record.exc_text)
        if record.stack_info:
            record.stack_info = self._mask(record.stack_info)
        return True


def configure_logging(
    level: str = "INFO",
    file_path: Optional[str] = None,
    secrets: Iterable[str] = (),
) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    masking = SecretMaskingFilter(secrets)
    for handler in handlers:
        handler.addFilter(masking)

    logging.basicConfig(
        level=numeric_level,
        format=_FORMAT,
        handlers=handlers,
        force=True,  # the CLI configures logging again once config (and credentials) are loaded
    )

    # Route-level debug output from the driver would drown the scraper's own logs.
    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
