from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger(__name__)


class HarHeader(BaseModel):
    name: str
    value: str = ""


class HarRequest(BaseModel):
    method: str = "GET"
    url: str
    headers: list[HarHeader] = Field(default_factory=list)
    body: str = ""


class HarContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mime_type: str = Field(default="", alias="mimeType")
    text: str = ""
    # "base64" for binary bodies.
    encoding: str = ""
    size: int = 0


class HarResponse(BaseModel):
    status: int
    headers: list[HarHeader] = Field(default_factory=list)
    content: HarContent = HarContent()

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for h in self.headers:
            if h.name.lower() == wanted:
                return h.value
        return None


class HarEntry(BaseModel):
    request: HarRequest
    response: HarResponse


class HarLog(BaseModel):
    """
    Recorded request/response pairs in the simplified native format: `{"entries": [...]}`.
    """

    entries: list[HarEntry] = Field(default_factory=list)


class HarFormatError(ValueError):
    pass


def _from_chrome(log: dict) -> HarLog:
    # Chrome DevTools HAR 1.2 wraps entries in "log" and carries POST bodies in postData.text.
    entries: list[dict] = []
    for raw in log.get("entries") or []:
        req = dict(raw.get("request") or {})
        resp = dict(raw.get("response") or {})
        post = req.pop("postData", None) or {}
        entries.append(
            {
                "request": {
                    "method": req.get("method", "GET"),
                    "url": req.get("url", ""),
                    "headers": req.get("headers") or [],
                    "body": post.get("text", "") or "",
                },
                "response": {
                    "status": resp.get("status", 0),
                    "headers": resp.get("headers") or [],
                    "content": resp.get("content") or {},
                },
            }
        )
    return HarLog.model_validate({"entries": entries})


def parse_har(data: Union[str, bytes, dict]) -> HarLog:
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise HarFormatError(f"HAR is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise HarFormatError("HAR root must be a JSON object")

    try:
        log = data.get("log")
        if isinstance(log, dict) and log.get("entries"):
            return _from_chrome(log)
        return HarLog.model_validate(data)
    except ValidationError as e:
        raise HarFormatError(f"HAR does not match the expected shape: {e}") from e


def load_har(path: Union[str, Path]) -> HarLog:
    """
    Load a HAR file, auto-detecting Chrome's `{"log": {"entries": [...]}}` wrapper vs the native format.
    """
    p = Path(path)
    har = parse_har(p.read_text(encoding="utf-8"))
    logger.debug("Loaded %s HAR entries from %s", len(har.entries), p)
    return har


def save_har(path: Union[str, Path], har: HarLog) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    data = har.model_dump(mode="json", by_alias=True)
    p.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
