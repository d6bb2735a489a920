# gateway/sanitizer.py
"""
Allow-list HTML sanitization and text extraction.

Two independent passes:
  1. strip active content outright (script-like elements with their content,
     on* attributes, attribute values carrying a script URI)
  2. keep only allow-listed tags and attributes (others are unwrapped/dropped)

Relative URLs are left alone; resolving them is the rewriter's job.
"""
from __future__ import annotations

import html
import re

from bs4 import BeautifulSoup, CData, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction

from gateway.logging_utils import log_warning


PARSER = "html.parser"

# Removed together with everything inside them
REMOVE_WITH_CONTENT = frozenset([
    "script", "noscript", "iframe", "object", "embed", "applet",
    "frame", "frameset", "template", "style", "base", "meta",
])

ALLOWED_TAGS = frozenset([
    # structure
    "html", "head", "body", "title", "link",
    "div", "span", "p", "br", "hr", "h1", "h2", "h3", "h4", "h5", "h6",
    "nav", "header", "footer", "section", "article", "aside", "main",
    # text formatting
    "strong", "b", "em", "i", "u", "small", "big", "sub", "sup",
    "blockquote", "pre", "code",
    # lists
    "ul", "ol", "li", "dl", "dt", "dd",
    # tables
    "table", "caption", "thead", "tbody", "tfoot", "tr", "td", "th",
    # forms
    "form", "input", "button", "select", "option", "textarea", "label",
    # media
    "img", "figure", "figcaption",
    "a",
])

ALLOWED_ATTRS = frozenset([
    "class", "id", "style", "href", "src", "alt", "title",
    "width", "height", "colspan", "rowspan",
    "type", "name", "value", "placeholder", "disabled", "readonly",
    "rel",
])

URI_ATTRS = frozenset(["href", "src"])
SAFE_URI_SCHEMES = frozenset(["http", "https", "mailto", "tel"])

_SCRIPT_URI_RE = re.compile(r"(?:java|vb)script:", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^([a-z][a-z0-9+.-]*):")
# whitespace and control characters browsers ignore inside a URL
_URI_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")
_WS_RE = re.compile(r"\s+")

SNAPSHOT_LIMIT = 200

_NON_TEXT_STRINGS = (Comment, CData, ProcessingInstruction, Declaration)


def _squash(value: str) -> str:
    return _URI_NOISE_RE.sub("", html.unescape(value)).lower()


def has_script_uri(value: str) -> bool:
    return bool(_SCRIPT_URI_RE.search(_squash(value)))


def is_safe_uri(value: str, *, tag: str, attr: str) -> bool:
    """Relative URIs and http(s)/mailto/tel pass; data: only as an image source."""
    squashed = _squash(value)
    match = _SCHEME_RE.match(squashed)
    if match is None:
        return True
    scheme = match.group(1)
    if scheme in SAFE_URI_SCHEMES:
        return True
    return scheme == "data" and tag == "img" and attr == "src" and squashed.startswith("data:image/")


def _attr_text(value) -> str:
    # bs4 returns multi-valued attributes (class, rel) as lists
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return "" if value is None else str(value)


def strip_doctype_padding(soup: BeautifulSoup) -> None:
    """
    bs4 writes a doctype with a trailing newline, which a later parse reads
    back as text. Strip the whitespace that follows a doctype so reparsing is
    stable.
    """
    for node in list(soup.contents):
        if not isinstance(node, Doctype):
            continue
        following = node.next_sibling
        # removed comments and unwrapped tags can leave several adjacent strings
        while type(following) is NavigableString:
            text = following.lstrip()
            if text:
                following.replace_with(NavigableString(text))
                break
            nxt = following.next_sibling
            following.extract()
            following = nxt


def _strip_active_content(soup: BeautifulSoup) -> None:
    """Pass 1: explicit removal, independent of the allow-list."""
    for tag in soup.find_all(REMOVE_WITH_CONTENT):
        # a nested match goes away with its decomposed ancestor
        if not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        for name in list(tag.attrs):
            if name.lower().startswith("on") or has_script_uri(_attr_text(tag.attrs[name])):
                del tag.attrs[name]


def _apply_allow_list(soup: BeautifulSoup) -> None:
    """Pass 2: keep only allow-listed tags, attributes and URI schemes."""
    for node in soup.find_all(string=lambda s: isinstance(s, _NON_TEXT_STRINGS)):
        node.extract()

    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        name = tag.name.lower()
        if name not in ALLOWED_TAGS:
            tag.unwrap()
            continue

        if name == "link":
            rel = [r.lower() for r in tag.get_attribute_list("rel") if r]
            if "stylesheet" not in " ".join(rel).split():
                tag.decompose()
                continue

        for attr in list(tag.attrs):
            lowered = attr.lower()
            if lowered not in ALLOWED_ATTRS:
                del tag.attrs[attr]
            elif lowered in URI_ATTRS and not is_safe_uri(_attr_text(tag.attrs[attr]), tag=name, attr=lowered):
                del tag.attrs[attr]

    strip_doctype_padding(soup)


def sanitize(raw_html: str, base_url: str | None = None) -> str:
    """
    Return safe, serializable markup for any input.

    Deterministic for a given allow-list, and idempotent:
    sanitize(sanitize(x)) == sanitize(x). base_url is only used for logging.
    """
    if not raw_html:
        return ""
    try:
        soup = BeautifulSoup(raw_html, PARSER)
        _strip_active_content(soup)
        _apply_allow_list(soup)
        return str(soup)
    except Exception as exc:
        # html.parser gives up on some pathological input; fall back to text
        log_warning("sanitize_failed", url=base_url, error_type=type(exc).__name__, message=str(exc)[:200])
        return html.escape(raw_html)


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def extract_title(raw_html: str, fallback: str) -> str:
    """Document <title>, whitespace-collapsed; fallback (usually the hostname) when absent."""
    try:
        soup = BeautifulSoup(raw_html or "", PARSER)
    except Exception:
        return fallback
    title = soup.find("title")
    text = collapse_whitespace(title.get_text()) if title else ""
    return text or fallback


def extract_snapshot(raw_html: str, limit: int = SNAPSHOT_LIMIT) -> str:
    """
    Visible body text, at most `limit` characters long.

    Script/style text never shows up here. Truncated snapshots end in "..."
    (the ellipsis counts toward the limit).
    """
    try:
        soup = BeautifulSoup(raw_html or "", PARSER)
    except Exception:
        return ""
    for tag in soup.find_all(["script", "style", "noscript", "template", "head"]):
        tag.decompose()
    root = soup.body or soup
    text = collapse_whitespace(root.get_text(" "))
    if len(text) > limit:
        return text[: limit - 3].rstrip() + "..."
    return text
