from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

from playwright.sync_api import Error as PlaywrightError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterceptedRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""


@dataclass(frozen=True)
class InterceptedResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


# A transport answers a request with a response, or None to let it go to the live network.
Transport = Callable[[InterceptedRequest], Optional[InterceptedResponse]]

# Observers see every request together with the status that was finally served.
StatusObserver = Callable[[InterceptedRequest, int], None]


def live_transport(request: InterceptedRequest) -> Optional[InterceptedResponse]:
    return None


class SubmissionStatusRecorder:
    """
    Capture the HTTP status of the login submission only.

    Analytics and tracking calls fire after the submit; filtering on the submission path keeps
    them from overwriting the status the login classifier needs.
    """

    def __init__(self, path_fragment: str) -> None:
        self.path_fragment = path_fragment
        self.status: Optional[int] = None
        self.url: str = ""

    def reset(self) -> None:
        self.status = None
        self.url = ""

    def __call__(self, request: InterceptedRequest, status: int) -> None:
        path = urlparse(request.url).path or ""
        if self.path_fragment and self.path_fragment in path:
            logger.debug("Login submission %s %s -> %s", request.method, path, status)
            self.status = int(status)
            self.url = request.url


def _to_intercepted(req) -> InterceptedRequest:
    try:
        body = req.post_data or ""
    except (PlaywrightError, UnicodeDecodeError):
        # Binary uploads; the replay matcher only keys on URLs.
        body = ""
    return InterceptedRequest(
        method=req.method,
        url=req.url,
        headers=dict(req.headers or {}),
        body=body,
    )


def install_interceptor(
    target,
    transport: Transport,
    observers: Iterable[StatusObserver] = (),
) -> Callable:
    """
    Route every request of a Playwright page or browser context through `transport`.

    Replayed and live responses take the same path, so status observers (and therefore the
    login classifier) behave identically in both modes. Returns the installed handler.
    """
    observer_list = list(observers)

    def _notify(request: InterceptedRequest, status: int) -> None:
        for observer in observer_list:
            observer(request, status)

    def _handle(route) -> None:
        request = _to_intercepted(route.request)

        served = transport(request)
        if served is not None:
            route.fulfill(status=served.status, headers=served.headers, body=served.body)
            _notify(request, served.status)
            return

        try:
            response = route.fetch()
        except PlaywrightError as e:
            logger.warning("Live request failed for %s %s (%s)", request.method, request.url, e)
            route.abort()
            return
        route.fulfill(response=response)
        _notify(request, response.status)

    target.route("**/*", _handle)
    return _handle
