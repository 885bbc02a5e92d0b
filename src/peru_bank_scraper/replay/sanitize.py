from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .har import HarContent, HarEntry, HarHeader, HarLog, HarRequest, HarResponse


REDACTED = "[REDACTED]"

SENSITIVE_KEY_PATTERNS = tuple(
    re.compile(p, re.I)
    for p in (
        r"password",
        r"passwd",
        r"clave",
        r"contrase",
        r"secret",
        r"token",
        r"session",
        r"sess_",
        r"auth",
        r"jwt",
        r"bearer",
        r"api_?key",
        r"credential",
        r"access_key",
        r"private_key",
    )
)

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-auth-token",
        "x-api-key",
        "x-access-token",
        "x-session-id",
        "x-csrf-token",
        "x-xsrf-token",
        "proxy-authorization",
    }
)


@dataclass(frozen=True)
class MarkupPattern:
    pattern: re.Pattern[str]
    replacement: str
    description: str


MARKUP_PATTERNS = (
    MarkupPattern(
        re.compile(r"\b\d{4}-\d{4}-\d{2}-\d{8}\b"),
        "XXXX-XXXX-XX-XXXXXXXX",
        "Account number (BBVA format)",
    ),
    MarkupPattern(
        re.compile(r"(?i)(Hola)\s+[A-ZÁÉÍÓÚÑ][a-záéíóúñ]+\s+[A-ZÁÉÍÓÚÑ][a-záéíóúñ]+"),
        r"\1 NOMBRE APELLIDO",
        "Greeting with full name",
    ),
    MarkupPattern(
        re.compile(r"""(?i)(token|csrf|session)["\s:=]+["']?[a-zA-Z0-9_-]{20,}["']?"""),
        r'\1="REDACTED"',
        "Token",
    ),
    MarkupPattern(
        re.compile(r"""(?i)document\.cookie\s*=\s*["'][^"']+["']"""),
        'document.cookie="REDACTED"',
        "Cookie",
    ),
)


def is_sensitive_key(key: str) -> bool:
    return any(p.search(key or "") for p in SENSITIVE_KEY_PATTERNS)


@dataclass
class RedactionReport:
    count: int = 0
    # description -> number of replacements
    by_kind: dict[str, int] = field(default_factory=dict)

    def add(self, kind: str, n: int = 1) -> None:
        if n <= 0:
            return
        self.count += n
        self.by_kind[kind] = self.by_kind.get(kind, 0) + n


# --- HAR ---


def sanitize_har(har: HarLog) -> tuple[HarLog, RedactionReport]:
    """
    Return a redacted copy of `har` plus a count of what was replaced. The input is not modified.
    """
    report = RedactionReport()
    entries = [_sanitize_entry(e, report) for e in har.entries]
    return HarLog(entries=entries), report


def _sanitize_entry(entry: HarEntry, report: RedactionReport) -> HarEntry:
    req = entry.request
    resp = entry.response
    return HarEntry(
        request=HarRequest(
            method=req.method,
            url=sanitize_url(req.url, report),
            headers=sanitize_headers(req.headers, report),
            body=sanitize_body(req.body, report),
        ),
        response=HarResponse(
            status=resp.status,
            headers=sanitize_headers(resp.headers, report),
            content=HarContent(
                mime_type=resp.content.mime_type,
                # base64 bodies are binary; leave them alone.
                text=resp.content.text
                if resp.content.encoding == "base64"
                else sanitize_body(resp.content.text, report),
                encoding=resp.content.encoding,
                size=resp.content.size,
            ),
        ),
    )


def sanitize_url(url: str, report: RedactionReport) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    changed = False
    out: list[tuple[str, str]] = []
    for k, v in pairs:
        if is_sensitive_key(k) and v != REDACTED:
            out.append((k, REDACTED))
            report.add("query parameter")
            changed = True
        else:
            out.append((k, v))
    if not changed:
        return url
    return urlunsplit(parts._replace(query=urlencode(out)))


def sanitize_headers(headers: list[HarHeader], report: RedactionReport) -> list[HarHeader]:
    out: list[HarHeader] = []
    for h in headers:
        if (h.name.lower() in SENSITIVE_HEADERS or is_sensitive_key(h.name)) and h.value != REDACTED:
            out.append(HarHeader(name=h.name, value=REDACTED))
            report.add("header")
        else:
            out.append(h)
    return out


def sanitize_body(body: str, report: RedactionReport) -> str:
    if not body:
        return body

    stripped = body.strip()
    if stripped.startswith(("{", "[")):
        try:
            data = json.loads(stripped)
        except ValueError:
            return body
        redacted = _redact_json(data, report)
        return json.dumps(redacted, ensure_ascii=False)

    if "=" in body and "<" not in body:
        pairs = parse_qsl(body, keep_blank_values=True)
        if not pairs:
            return body
        out: list[tuple[str, str]] = []
        changed = False
        for k, v in pairs:
            if is_sensitive_key(k) and v != REDACTED:
                out.append((k, REDACTED))
                report.add("form field")
                changed = True
            else:
                out.append((k, v))
        return urlencode(out) if changed else body

    return body


def _redact_json(value: Any, report: RedactionReport) -> Any:
    if isinstance(value, dict):
        out: dict = {}
        for k, v in value.items():
            if is_sensitive_key(str(k)) and not isinstance(v, (dict, list)) and v != REDACTED:
                out[k] = REDACTED
                report.add("json field")
            else:
                out[k] = _redact_json(v, report)
        return out
    if isinstance(value, list):
        return [_redact_json(v, report) for v in value]
    return value


# --- Markup fixtures ---


def sanitize_markup(markup: str) -> tuple[str, RedactionReport]:
    report = RedactionReport()
    out = markup
    for p in MARKUP_PATTERNS:
        out, n = p.pattern.subn(p.replacement, out)
        report.add(p.description, n)
    return out, report
