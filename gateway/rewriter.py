"""
Make a sanitized page navigable from inside the viewer.

- anchors: absolute URLs, navigation mode from nav_strategies
- images and stylesheets: routed through the resource proxy endpoint
- <base> and CSP/viewport <meta> injected into <head>

Rewriting is best effort: any failure returns the input unchanged.
"""
from __future__ import annotations

from urllib.parse import quote, urljoin, urlsplit

from bs4 import BeautifulSoup, Doctype

from gateway.logging_utils import log_event, log_warning
from gateway.nav_strategies import NavStrategy, strategy_for
from gateway.sanitizer import PARSER, strip_doctype_padding


DEFAULT_RESOURCE_PATH = "/api/proxy/resource"

# Same unreserved set as JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"

_SKIP_ANCHOR_PREFIXES = ("javascript:", "mailto:")


def proxied_resource_url(absolute_url: str, resource_path: str = DEFAULT_RESOURCE_PATH) -> str:
    return f"{resource_path}?url={quote(absolute_url, safe=_URI_COMPONENT_SAFE)}"


def resolve_reference(ref: str, base_url: str) -> str | None:
    """Absolute form of ref against base_url, or None when it cannot be resolved."""
    try:
        absolute = urljoin(base_url, ref.strip())
        urlsplit(absolute).port  # raises on a garbage port
    except ValueError:
        return None
    return absolute


def _rewrite_anchors(soup: BeautifulSoup, base_url: str, strategy: NavStrategy) -> None:
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if href.strip().lower().startswith(_SKIP_ANCHOR_PREFIXES):
            continue
        absolute = resolve_reference(href, base_url)
        if absolute is None:
            del anchor["href"]
            continue
        strategy.apply_anchor(anchor, absolute)


def _rewrite_images(soup: BeautifulSoup, base_url: str, resource_path: str) -> None:
    for img in soup.find_all("img", src=True):
        src = img["src"]
        if src.strip().lower().startswith("data:"):
            continue
        absolute = resolve_reference(src, base_url)
        if absolute is None:
            del img["src"]
            continue
        img["src"] = proxied_resource_url(absolute, resource_path)


def _is_stylesheet(link) -> bool:
    rel = " ".join(link.get_attribute_list("rel") or []).lower().split()
    return "stylesheet" in rel


def _rewrite_stylesheets(soup: BeautifulSoup, base_url: str, resource_path: str) -> None:
    for link in soup.find_all("link", href=True):
        if not _is_stylesheet(link):
            continue
        href = link["href"]
        if href.strip().lower().startswith("data:"):
            continue
        absolute = resolve_reference(href, base_url)
        if absolute is None:
            link.decompose()
            continue
        link["href"] = proxied_resource_url(absolute, resource_path)


def _ensure_head(soup: BeautifulSoup):
    if soup.head is not None:
        return soup.head
    head = soup.new_tag("head")
    if soup.html is not None:
        soup.html.insert(0, head)
    else:
        index = 1 if soup.contents and isinstance(soup.contents[0], Doctype) else 0
        soup.insert(index, head)
    return head


def base_href(original_url: str) -> str:
    parts = urlsplit(original_url)
    host = parts.netloc.rpartition("@")[2]
    return f"{parts.scheme}://{host}{parts.path or '/'}"


def rewrite(
    safe_html: str,
    original_url: str,
    *,
    resource_path: str = DEFAULT_RESOURCE_PATH,
    strategies: list[NavStrategy] | None = None,
) -> str:
    try:
        parts = urlsplit(original_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"not an absolute http(s) URL: {original_url!r}")

        soup = BeautifulSoup(safe_html, PARSER)
        strip_doctype_padding(soup)
        strategy = strategy_for(parts.hostname, strategies)

        _rewrite_anchors(soup, original_url, strategy)
        _rewrite_images(soup, original_url, resource_path)
        _rewrite_stylesheets(soup, original_url, resource_path)

        head = _ensure_head(soup)
        position = 0
        if soup.find("base") is None:
            head.insert(0, soup.new_tag("base", attrs={"href": base_href(original_url)}))
            position = 1

        # CSP goes ahead of everything it governs
        csp = soup.new_tag("meta", attrs={"http-equiv": "Content-Security-Policy", "content": strategy.csp})
        head.insert(position, csp)

        if strategy.shim_script:
            script = soup.new_tag("script")
            script.string = strategy.shim_script
            head.append(script)

        head.append(soup.new_tag("meta", attrs={"name": "viewport", "content": "width=device-width, initial-scale=1"}))

        log_event("rewrite_done", url=original_url, strategy=strategy.name)
        return str(soup)
    except Exception as exc:
        log_warning("rewrite_failed", url=original_url, error_type=type(exc).__name__, message=str(exc)[:200])
        return safe_html
