from __future__ import annotations

import logging
import time
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..util.cancel import CancelToken, check_cancelled


logger = logging.getLogger(__name__)

# Cheap structural fingerprint of the top document plus every reachable frame.
_DOM_SIGNATURE_SCRIPT = """
() => {
  let count = 0;
  let shadows = 0;
  const walk = (root) => {
    const all = root.querySelectorAll('*');
    count += all.length;
    for (const el of all) {
      if (el.shadowRoot) {
        shadows += 1;
        walk(el.shadowRoot);
      }
    }
  };
  walk(document);
  return `${document.readyState}|${count}|${shadows}|${window.frames.length}`;
}
"""

_NAVIGATION_ERRORS = (
    "Execution context was destroyed",
    "Cannot find context with specified id",
    "page is navigating",
)


def _is_navigation_error(e: PlaywrightError) -> bool:
    msg = str(e)
    return any(marker in msg for marker in _NAVIGATION_ERRORS)


def wait_stable(
    page: Page,
    *,
    timeout_ms: int,
    poll_ms: int = 500,
    quiet_samples: int = 2,
    cancel: Optional[CancelToken] = None,
) -> None:
    """
    Block until the page and all of its frames have loaded and the DOM stops changing.

    Avoid `networkidle`: the portal keeps analytics requests running forever.
    Raises `TimeoutError` if the DOM has not settled within `timeout_ms`.
    """
    deadline = time.time() + (timeout_ms / 1000.0)

    page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
    for frame in page.frames:
        check_cancelled(cancel, "wait_stable")
        remaining = max(1, int((deadline - time.time()) * 1000))
        try:
            frame.wait_for_load_state("load", timeout=remaining)
        except PlaywrightError as e:
            # Detached or cross-origin frames cannot report load state; the flattener marks them instead.
            if isinstance(e, PlaywrightTimeoutError):
                raise TimeoutError(f"frame {frame.url!r} did not finish loading within {timeout_ms}ms") from e
            logger.debug("Skipping frame load wait for %s (%s)", frame.url, e)

    last: Optional[str] = None
    stable = 0
    while time.time() < deadline:
        check_cancelled(cancel, "wait_stable")
        try:
            sig = page.evaluate(_DOM_SIGNATURE_SCRIPT)
        except PlaywrightError as e:
            if not _is_navigation_error(e):
                raise
            # The click (or an SPA route change) replaced the document; start sampling the new one.
            logger.debug("Page navigated while sampling the DOM (%s)", str(e).splitlines()[0] if str(e) else e)
            last = None
            stable = 0
            remaining = max(1, int((deadline - time.time()) * 1000))
            page.wait_for_load_state("domcontentloaded", timeout=remaining)
            continue
        if sig == last:
            stable += 1
            if stable >= quiet_samples:
                return
        else:
            stable = 0
            last = sig
        page.wait_for_timeout(poll_ms)

    raise TimeoutError(f"DOM did not stabilize within {timeout_ms}ms")
