from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag
from playwright.sync_api import Error as PlaywrightError

from ..util.cancel import CancelToken, check_cancelled


logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 100

SHADOW_ROOT_ATTR = "data-shadow-root"
SHADOW_HOST_ATTR = "data-shadow-host"
SHADOW_STYLE_ATTR = "data-from-shadow"
IFRAME_ATTR = "data-captured-iframe"
IFRAME_SRC_ATTR = "data-iframe-src"
IFRAME_ID_ATTR = "data-iframe-id"
IFRAME_NAME_ATTR = "data-iframe-name"
IFRAME_ERROR_ATTR = "data-iframe-error"
IFRAME_STYLE_ATTR = "data-from-iframe"

NO_CONTENT_DOCUMENT = "no contentDocument available"

_FRAME_TAGS = ("iframe", "frame")


# Reads the live DOM (never mutates it) and returns a JSON snapshot:
#   text/comment:  {"t": "text"|"comment", "v": str}
#   element:       {"t": "el", "tag", "attrs": [[k, v]...], "children": [...], "shadow": [...]|null}
#   iframe:        {"t": "iframe", "tag", "attrs", "src", "frame": {"styles": [...], "body": [...]}|null, "error": str|null}
#   beyond depth:  {"t": "raw", "html": outerHTML}
SNAPSHOT_SCRIPT = """
(maxDepth) => {
  const attrsOf = (el) => Array.from(el.attributes || []).map((a) => [a.name, a.value]);

  function snapNodes(nodes, depth) {
    const out = [];
    for (const n of Array.from(nodes || [])) {
      const s = snap(n, depth);
      if (s) out.push(s);
    }
    return out;
  }

  function snapFrame(el, tag, depth) {
    const out = { t: 'iframe', tag, attrs: attrsOf(el), src: el.src || '', frame: null, error: null };
    try {
      const doc = el.contentDocument || (el.contentWindow && el.contentWindow.document);
      if (!doc || !doc.documentElement) {
        out.error = 'no contentDocument available';
        return out;
      }
      const styles = doc.head
        ? Array.from(doc.head.querySelectorAll('style')).map((s) => s.textContent || '')
        : [];
      const body = doc.body ? snapNodes(doc.body.childNodes, depth + 1) : [];
      out.frame = { styles, body };
    } catch (e) {
      out.error = String((e && e.message) || e);
    }
    return out;
  }

  function snap(node, depth) {
    if (node.nodeType === Node.TEXT_NODE) return { t: 'text', v: node.nodeValue || '' };
    if (node.nodeType === Node.COMMENT_NODE) return { t: 'comment', v: node.nodeValue || '' };
    if (node.nodeType !== Node.ELEMENT_NODE) return null;

    const tag = node.tagName.toLowerCase();
    if (depth > maxDepth || tag === 'template') return { t: 'raw', html: node.outerHTML };
    if (tag === 'iframe' || tag === 'frame') return snapFrame(node, tag, depth);

    return {
      t: 'el',
      tag,
      attrs: attrsOf(node),
      children: snapNodes(node.childNodes, depth + 1),
      shadow: node.shadowRoot ? snapNodes(node.shadowRoot.childNodes, depth + 1) : null,
    };
  }

  return JSON.stringify({ root: snap(document.documentElement, 0) });
}
"""


@dataclass(frozen=True)
class FlattenResult:
    html: str
    shadow_count: int
    iframe_count: int
    # False when the engine fell back to plain page markup.
    flattened: bool = True


class _Flattener:
    def __init__(self, *, max_depth: int, cancel: Optional[CancelToken]) -> None:
        self.max_depth = int(max_depth)
        self.cancel = cancel
        self.shadow_count = 0
        self.iframe_count = 0
        self.soup = BeautifulSoup("", "html.parser")

    def render_all(self, nodes: list[dict], depth: int) -> list[Any]:
        out: list[Any] = []
        for node in nodes or []:
            out.extend(self.render(node, depth))
        return out

    def render(self, node: dict, depth: int) -> list[Any]:
        kind = node.get("t")
        if kind == "text":
            return [NavigableString(node.get("v", ""))]
        if kind == "comment":
            return [Comment(node.get("v", ""))]
        if kind == "doctype":
            return [Doctype(node.get("v", ""))]
        if kind == "raw":
            return _parse_fragment(node.get("html", ""))
        if kind == "fragment":
            return self.render_all(node.get("children") or [], depth)

        check_cancelled(self.cancel, "flatten")

        if depth > self.max_depth:
            return [self._plain(node)]
        if kind == "iframe":
            return [self._iframe(node, depth)]
        return [self._element(node, depth)]

    def _element(self, node: dict, depth: int) -> Tag:
        tag = self._new_tag(node)
        # Light DOM first: slotted children can host shadow roots of their own.
        for child in self.render_all(node.get("children") or [], depth + 1):
            tag.append(child)

        shadow = node.get("shadow")
        if shadow is not None:
            tag.append(self._shadow_marker(node.get("tag", ""), shadow, depth))
        return tag

    def _shadow_marker(self, host_tag: str, shadow: list[dict], depth: int) -> Tag:
        marker = self.soup.new_tag("div", attrs={SHADOW_ROOT_ATTR: "true", SHADOW_HOST_ATTR: host_tag.lower()})

        content: list[dict] = []
        for child in shadow:
            if child.get("t") == "el" and child.get("tag") == "style":
                marker.append(self._style(_text_of(child), SHADOW_STYLE_ATTR))
            else:
                content.append(child)

        for rendered in self.render_all(content, depth + 1):
            marker.append(rendered)

        self.shadow_count += 1
        return marker

    def _iframe(self, node: dict, depth: int) -> Tag:
        attrs = dict(node.get("attrs") or [])
        src = node.get("src") or attrs.get("src", "")
        frame = node.get("frame")

        if frame is None:
            reason = node.get("error") or NO_CONTENT_DOCUMENT
            marker = self.soup.new_tag(
                "div",
                attrs={IFRAME_ATTR: "true", IFRAME_ERROR_ATTR: reason, IFRAME_SRC_ATTR: src},
            )
            marker.string = f"[iframe not accessible: {reason}]"
            return marker

        # Sub-document first, then the marker that replaces the iframe.
        body = self.render_all(frame.get("body") or [], depth + 1)

        marker = self.soup.new_tag(
            "div",
            attrs={
                IFRAME_ATTR: "true",
                IFRAME_SRC_ATTR: src,
                IFRAME_ID_ATTR: attrs.get("id", ""),
                IFRAME_NAME_ATTR: attrs.get("name", ""),
            },
        )
        for css in frame.get("styles") or []:
            marker.append(self._style(css, IFRAME_STYLE_ATTR))
        for rendered in body:
            marker.append(rendered)

        self.iframe_count += 1
        return marker

    def _plain(self, node: dict) -> Tag:
        tag = self._new_tag(node)
        if node.get("t") == "el":
            for child in node.get("children") or []:
                if child.get("t") in ("el", "iframe"):
                    tag.append(self._plain(child))
                else:
                    for rendered in self.render(child, 0):
                        tag.append(rendered)
        return tag

    def _new_tag(self, node: dict) -> Tag:
        return self.soup.new_tag(node.get("tag") or "div", attrs=dict(node.get("attrs") or []))

    def _style(self, css: str, marker_attr: str) -> Tag:
        style = self.soup.new_tag("style", attrs={marker_attr: "true"})
        style.string = css or ""
        return style


def _text_of(node: dict) -> str:
    parts: list[str] = []
    for child in node.get("children") or []:
        if child.get("t") == "text":
            parts.append(child.get("v", ""))
        elif child.get("t") == "el":
            parts.append(_text_of(child))
    return "".join(parts)


def _parse_fragment(html: str) -> list[Any]:
    frag = BeautifulSoup(html or "", "html.parser")
    return list(frag.contents)


def flatten_snapshot(
    root: dict,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    cancel: Optional[CancelToken] = None,
) -> FlattenResult:
    """
    Flatten a detached DOM snapshot (see `SNAPSHOT_SCRIPT`) into one self-contained markup string.

    Bottom-up: every iframe sub-document and shadow root is flattened before the marker that
    carries it is built, so nested iframes-in-shadow-roots (and the reverse) survive a single pass.
    Shadow markers are appended to their host after its light-DOM children; iframe markers replace the iframe.
    Elements deeper than `max_depth` are emitted as-is.

    Raises `OperationCancelled` if `cancel` fires; no partial markup is returned.
    """
    flattener = _Flattener(max_depth=max_depth, cancel=cancel)
    out = BeautifulSoup("", "html.parser")
    for node in flattener.render(root, 0):
        out.append(node)
    return FlattenResult(
        html=out.decode(),
        shadow_count=flattener.shadow_count,
        iframe_count=flattener.iframe_count,
        flattened=True,
    )


def flatten_page(
    page,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    cancel: Optional[CancelToken] = None,
) -> FlattenResult:
    """
    Snapshot the live page and flatten it.

    If the snapshot script cannot run (or returns garbage), fall back to `page.content()` with zero counts.
    Callers should treat zero counts on a page known to use Web Components as a partial failure.
    """
    check_cancelled(cancel, "flatten")
    try:
        raw = page.evaluate(SNAPSHOT_SCRIPT, int(max_depth))
        root = json.loads(raw)["root"]
        if not isinstance(root, dict):
            raise ValueError("snapshot root is not an element")
    except (PlaywrightError, ValueError, KeyError, TypeError) as e:
        logger.warning("DOM flatten failed; falling back to plain page markup. (%s)", e)
        check_cancelled(cancel, "flatten")
        return FlattenResult(html=page.content(), shadow_count=0, iframe_count=0, flattened=False)

    check_cancelled(cancel, "flatten")
    result = flatten_snapshot(root, max_depth=max_depth, cancel=cancel)
    logger.debug(
        "Flattened page: shadow_roots=%s iframes=%s chars=%s",
        result.shadow_count,
        result.iframe_count,
        len(result.html),
    )
    return result


# --- Static markup (offline) ---


def _is_shadow_template(tag: Tag) -> bool:
    return tag.name == "template" and (tag.has_attr("shadowrootmode") or tag.has_attr("shadowroot"))


def _snapshot_node(node: Any, depth: int, max_depth: int) -> Optional[dict]:
    if isinstance(node, Doctype):
        return {"t": "doctype", "v": str(node)}
    if isinstance(node, Comment):
        return {"t": "comment", "v": str(node)}
    if isinstance(node, NavigableString):
        return {"t": "text", "v": str(node)}
    if not isinstance(node, Tag):
        return None

    if depth > max_depth or node.name == "template":
        return {"t": "raw", "html": str(node)}

    attrs = [[k, " ".join(v) if isinstance(v, list) else v] for k, v in node.attrs.items()]

    if node.name in _FRAME_TAGS:
        return _snapshot_frame(node, attrs, depth, max_depth)

    shadow: Optional[list[dict]] = None
    children: list[dict] = []
    for child in node.children:
        if isinstance(child, Tag) and shadow is None and _is_shadow_template(child):
            shadow = _snapshot_nodes(child.contents, depth + 1, max_depth)
            continue
        snap = _snapshot_node(child, depth + 1, max_depth)
        if snap is not None:
            children.append(snap)

    return {"t": "el", "tag": node.name, "attrs": attrs, "children": children, "shadow": shadow}


def _snapshot_frame(node: Tag, attrs: list, depth: int, max_depth: int) -> dict:
    out: dict = {
        "t": "iframe",
        "tag": node.name,
        "attrs": attrs,
        "src": node.get("src", "") or "",
        "frame": None,
        "error": None,
    }
    srcdoc = node.get("srcdoc")
    if srcdoc is None:
        out["error"] = NO_CONTENT_DOCUMENT
        return out

    sub = BeautifulSoup(srcdoc, "html.parser")
    head = sub.find("head")
    styles = [s.get_text() for s in head.find_all("style")] if head else []
    body = sub.find("body")
    if body is not None:
        body_nodes = list(body.contents)
    else:
        body_nodes = [
            c
            for c in sub.contents
            if not isinstance(c, Doctype) and not (isinstance(c, Tag) and c.name == "head")
        ]
    out["frame"] = {"styles": styles, "body": _snapshot_nodes(body_nodes, depth + 1, max_depth)}
    return out


def _snapshot_nodes(nodes: Any, depth: int, max_depth: int) -> list[dict]:
    out: list[dict] = []
    for n in list(nodes):
        snap = _snapshot_node(n, depth, max_depth)
        if snap is not None:
            out.append(snap)
    return out


def snapshot_from_markup(html: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> dict:
    """
    Build the same snapshot shape `SNAPSHOT_SCRIPT` returns, from static markup.

    Declarative shadow roots (`<template shadowrootmode="open">`) become shadow roots and
    `<iframe srcdoc>` becomes an accessible sub-document; any other iframe is inaccessible.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    return {"t": "fragment", "children": _snapshot_nodes(soup.contents, 0, max_depth)}


def flatten_markup(
    html: str,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    cancel: Optional[CancelToken] = None,
) -> FlattenResult:
    return flatten_snapshot(snapshot_from_markup(html, max_depth=max_depth), max_depth=max_depth, cancel=cancel)
