# gateway/nav_strategies.py
"""
Per-domain link navigation strategies for the rewriter.

Most pages get DEFAULT_STRATEGY: links open in a new window and scripts stay
disabled. Pages from a known search engine get an interactive strategy
instead: a small inline shim posts {type: "gateway:navigate", url} to the
embedding frame when a result link is clicked, so the viewer can push that
URL back through /api/proxy/fetch. To support another site, add a row to
STRATEGIES.
"""
from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass


NEW_WINDOW = "new_window"
POST_MESSAGE = "post_message"

NAVIGATE_ATTR = "data-gateway-navigate"
NAVIGATE_MESSAGE_TYPE = "gateway:navigate"

# Keep this free of &, < and > so serialization leaves it byte-identical
# (the CSP hash below is computed over these exact bytes).
POST_MESSAGE_SHIM = (
    "(function(){"
    "document.addEventListener('click',function(e){"
    "var t=e.target;"
    "var a=t.closest?t.closest('a[" + NAVIGATE_ATTR + "]'):null;"
    "if(!a){return;}"
    "e.preventDefault();"
    "window.parent.postMessage({type:'" + NAVIGATE_MESSAGE_TYPE + "',"
    "url:a.getAttribute('" + NAVIGATE_ATTR + "')},'*');"
    "},true);"
    "})();"
)


def script_hash(script: str) -> str:
    digest = hashlib.sha256(script.encode("utf-8")).digest()
    return "'sha256-" + base64.b64encode(digest).decode("ascii") + "'"


# Scripts fully disabled
GENERAL_CSP = "script-src 'none'; object-src 'none';"
# Only the navigation shim may run, and it may not open connections
INTERACTIVE_CSP = f"script-src {script_hash(POST_MESSAGE_SHIM)}; object-src 'none'; connect-src 'none';"


@dataclass(frozen=True)
class NavStrategy:
    name: str
    host_pattern: re.Pattern | None
    mode: str
    csp: str
    shim_script: str | None = None

    @property
    def scripts_enabled(self) -> bool:
        return self.shim_script is not None

    def matches(self, host: str | None) -> bool:
        if self.host_pattern is None or not host:
            return False
        return bool(self.host_pattern.search(host.lower().rstrip(".")))

    def apply_anchor(self, anchor, absolute_url: str) -> None:
        """Point a bs4 <a> tag at absolute_url using this strategy's navigation mode."""
        anchor["href"] = absolute_url
        if self.mode == POST_MESSAGE:
            anchor[NAVIGATE_ATTR] = absolute_url
            anchor["target"] = "_self"
        else:
            anchor["target"] = "_blank"
        anchor["rel"] = "noopener noreferrer"


DEFAULT_STRATEGY = NavStrategy(
    name="default",
    host_pattern=None,
    mode=NEW_WINDOW,
    csp=GENERAL_CSP,
)

STRATEGIES = [
    NavStrategy(
        name="google-search",
        host_pattern=re.compile(r"(?:^|\.)google\.(?:[a-z]{2,3})(?:\.[a-z]{2})?$"),
        mode=POST_MESSAGE,
        csp=INTERACTIVE_CSP,
        shim_script=POST_MESSAGE_SHIM,
    ),
    NavStrategy(
        name="duckduckgo-search",
        host_pattern=re.compile(r"(?:^|\.)duckduckgo\.com$"),
        mode=POST_MESSAGE,
        csp=INTERACTIVE_CSP,
        shim_script=POST_MESSAGE_SHIM,
    ),
]


def strategy_for(host: str | None, strategies: list[NavStrategy] | None = None) -> NavStrategy:
    """First strategy whose pattern matches the page host, else DEFAULT_STRATEGY."""
    for strategy in STRATEGIES if strategies is None else strategies:
        if strategy.matches(host):
            return strategy
    return DEFAULT_STRATEGY
