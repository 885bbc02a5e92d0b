from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional
from urllib.parse import urljoin, urlsplit

from ..portal.interceptor import InterceptedRequest, InterceptedResponse
from .har import HarEntry, HarLog


logger = logging.getLogger(__name__)

DEFAULT_MAX_REDIRECTS = 10

UNMATCHED_STATUS = 404
UNMATCHED_BODY = {"error": "no recording found for URL"}

# Recorded values that no longer describe the body we serve.
_SKIPPED_HEADERS = frozenset({"content-encoding", "content-length", "location"})


class MatchKind(str, Enum):
    EXACT = "exact"
    COARSE = "coarse"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class ReplayMatch:
    kind: MatchKind
    url: str
    entry: Optional[HarEntry] = None
    # URLs of the redirect hops followed, in order.
    redirects: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.entry is not None


def coarse_key(url: str) -> str:
    """
    scheme://host/path with query and fragment dropped.
    """
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def _is_redirect(entry: HarEntry) -> bool:
    return 300 <= entry.response.status < 400 and bool(entry.response.header("location"))


class Replayer:
    """
    Serve recorded responses for intercepted requests.

    Indexes are built once and are read-only afterwards, so one replayer can back parallel tests.
    Matching: exact URL, then scheme+host+path (first recording wins for both). Recorded redirects are
    followed through the same indexes so callers see the final page, not the 3xx.
    """

    def __init__(
        self,
        har: HarLog,
        *,
        passthrough: bool = False,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> None:
        self.passthrough = bool(passthrough)
        self.max_redirects = int(max_redirects)

        exact: dict[str, HarEntry] = {}
        coarse: dict[str, HarEntry] = {}
        for entry in har.entries:
            url = entry.request.url
            exact.setdefault(url, entry)
            coarse.setdefault(coarse_key(url), entry)

        self.exact_index: Mapping[str, HarEntry] = MappingProxyType(exact)
        self.coarse_index: Mapping[str, HarEntry] = MappingProxyType(coarse)

    def stats(self) -> dict[str, int]:
        return {
            "exact_matches": len(self.exact_index),
            "path_matches": len(self.coarse_index),
        }

    def _lookup(self, url: str) -> tuple[MatchKind, Optional[HarEntry]]:
        entry = self.exact_index.get(url)
        if entry is not None:
            return MatchKind.EXACT, entry
        entry = self.coarse_index.get(coarse_key(url))
        if entry is not None:
            return MatchKind.COARSE, entry
        return MatchKind.UNMATCHED, None

    def resolve(self, url: str) -> ReplayMatch:
        kind, entry = self._lookup(url)
        if entry is None:
            return ReplayMatch(kind=MatchKind.UNMATCHED, url=url)

        hops: list[str] = []
        current_url = url
        while _is_redirect(entry) and len(hops) < self.max_redirects:
            target = urljoin(current_url, entry.response.header("location") or "")
            _, nxt = self._lookup(target)
            if nxt is None:
                # Unrecorded target: serve the redirect itself and let the browser follow it.
                logger.debug("Redirect target not recorded: %s", target)
                break
            hops.append(target)
            current_url = target
            entry = nxt

        return ReplayMatch(kind=kind, url=url, entry=entry, redirects=tuple(hops))

    def __call__(self, request: InterceptedRequest) -> Optional[InterceptedResponse]:
        match = self.resolve(request.url)
        if match.entry is None:
            if self.passthrough:
                logger.debug("Replay miss (passthrough): %s %s", request.method, request.url)
                return None
            logger.debug("Replay miss: %s %s", request.method, request.url)
            return unmatched_response()

        logger.debug(
            "Replay %s hit: %s %s (redirects=%s)",
            match.kind.value,
            request.method,
            request.url,
            len(match.redirects),
        )
        return entry_to_response(match.entry, keep_location=_is_redirect(match.entry))


def unmatched_response() -> InterceptedResponse:
    return InterceptedResponse(
        status=UNMATCHED_STATUS,
        headers={"Content-Type": "application/json"},
        body=json.dumps(UNMATCHED_BODY).encode("utf-8"),
    )


def entry_to_response(entry: HarEntry, *, keep_location: bool = False) -> InterceptedResponse:
    resp = entry.response
    headers: dict[str, str] = {}
    for h in resp.headers:
        lname = h.name.lower()
        if lname in _SKIPPED_HEADERS and not (keep_location and lname == "location"):
            continue
        headers[h.name] = h.value

    if resp.content.mime_type and not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = resp.content.mime_type

    return InterceptedResponse(status=resp.status, headers=headers, body=_decode_body(entry))


def _decode_body(entry: HarEntry) -> bytes:
    content = entry.response.content
    if content.encoding == "base64":
        try:
            return base64.b64decode(content.text or "", validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Recorded body for %s is not valid base64; serving it as text.", entry.request.url)
    return (content.text or "").encode("utf-8")
