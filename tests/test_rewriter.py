import pytest
from bs4 import BeautifulSoup

from gateway.nav_strategies import GENERAL_CSP, INTERACTIVE_CSP, NAVIGATE_ATTR, POST_MESSAGE_SHIM
from gateway.rewriter import base_href, proxied_resource_url, resolve_reference, rewrite
from gateway.sanitizer import sanitize, strip_doctype_padding


PAGE_URL = "https://example.com/docs/page.html"


def _rewrite(markup: str, url: str = PAGE_URL, **kwargs) -> BeautifulSoup:
    return BeautifulSoup(rewrite(markup, url, **kwargs), "html.parser")


# ---------- anchors ----------

def test_relative_anchor_made_absolute_and_opens_new_window():
    soup = _rewrite('<html><head></head><body><a href="../about">About</a></body></html>')
    a = soup.find("a")
    assert a["href"] == "https://example.com/about"
    assert a["target"] == "_blank"
    assert " ".join(a["rel"]) == "noopener noreferrer"
    assert a.get(NAVIGATE_ATTR) is None


def test_mailto_anchor_untouched():
    soup = _rewrite('<a href="mailto:hi@example.com">mail</a>')
    a = soup.find("a")
    assert a["href"] == "mailto:hi@example.com"
    assert a.get("target") is None


def test_fragment_anchor_resolves_against_page():
    soup = _rewrite('<a href="#top">top</a>')
    assert soup.find("a")["href"] == "https://example.com/docs/page.html#top"


def test_search_engine_links_post_back_to_viewer():
    soup = _rewrite('<a href="/url?q=https://example.org/">result</a>', "https://www.google.com/search?q=x")
    a = soup.find("a")
    assert a["href"] == "https://www.google.com/url?q=https://example.org/"
    assert a[NAVIGATE_ATTR] == a["href"]
    assert a["target"] == "_self"

    csp = soup.find("meta", attrs={"http-equiv": "Content-Security-Policy"})
    assert csp["content"] == INTERACTIVE_CSP
    scripts = soup.find_all("script")
    assert len(scripts) == 1
    assert scripts[0].string == POST_MESSAGE_SHIM


def test_shim_serialized_byte_for_byte():
    out = rewrite("<p>x</p>", "https://duckduckgo.com/?q=x")
    assert POST_MESSAGE_SHIM in out


# ---------- resources ----------

def test_images_routed_through_resource_endpoint():
    soup = _rewrite('<img src="img/logo.png">')
    assert soup.find("img")["src"] == "/api/proxy/resource?url=https%3A%2F%2Fexample.com%2Fdocs%2Fimg%2Flogo.png"


def test_data_images_left_inline():
    soup = _rewrite('<img src="data:image/gif;base64,R0lGOD">')
    assert soup.find("img")["src"] == "data:image/gif;base64,R0lGOD"


def test_stylesheets_routed_through_custom_resource_path():
    soup = _rewrite('<head><link rel="stylesheet" href="/css/site.css"></head>', resource_path="/r")
    assert soup.find("link")["href"] == "/r?url=https%3A%2F%2Fexample.com%2Fcss%2Fsite.css"


def test_unresolvable_references_dropped():
    soup = _rewrite('<a href="http://[bad">a</a><img src="http://example.com:notaport/x.png">')
    assert soup.find("a").get("href") is None
    assert soup.find("img").get("src") is None


def test_proxied_resource_url_encodes_like_encode_uri_component():
    assert proxied_resource_url("https://a.example/x y?q=1&r=(2)") == (
        "/api/proxy/resource?url=https%3A%2F%2Fa.example%2Fx%20y%3Fq%3D1%26r%3D(2)"
    )


def test_resolve_reference():
    assert resolve_reference("b.png", "https://example.com/a/") == "https://example.com/a/b.png"
    assert resolve_reference("//cdn.example.com/x", "https://example.com/") == "https://cdn.example.com/x"
    assert resolve_reference("http://[oops", "https://example.com/") is None


# ---------- head injection ----------

def test_base_then_csp_first_in_head():
    soup = _rewrite("<html><head><title>T</title></head><body><p>x</p></body></html>")
    head_tags = [t for t in soup.head.children if t.name]
    assert head_tags[0].name == "base"
    assert head_tags[0]["href"] == PAGE_URL
    assert head_tags[1].name == "meta"
    assert head_tags[1]["content"] == GENERAL_CSP
    assert head_tags[-1]["name"] == "viewport"
    assert soup.find("script") is None


def test_head_created_when_missing():
    soup = _rewrite("<p>fragment only</p>")
    assert soup.head is not None
    assert soup.head.find("base")["href"] == PAGE_URL


def test_base_href_drops_query_and_credentials():
    assert base_href("https://user:pw@example.com/a/b?q=1#f") == "https://example.com/a/b"
    assert base_href("https://example.com") == "https://example.com/"


@pytest.mark.parametrize("markup", [
    "<html><head><title>T</title></head><body><h1>Hi</h1><p>plain <b>text</b></p></body></html>",
    sanitize("<!DOCTYPE html><html><head><title>T</title></head><body><table><tr><td>c</td></tr></table></body></html>"),
])
def test_document_without_references_changes_only_by_injected_head_tags(markup):
    soup = _rewrite(markup)
    # reading the output back would otherwise add a second newline after the doctype
    strip_doctype_padding(soup)
    for tag in soup.find_all(["base", "meta"]):
        tag.decompose()
    assert str(soup) == markup


# ---------- failure ----------

def test_non_http_page_url_returns_input_unchanged():
    markup = '<a href="/x">x</a>'
    assert rewrite(markup, "ftp://example.com/") == markup
    assert rewrite(markup, "not a url") == markup


def test_sanitized_then_rewritten_page_stays_script_free():
    raw = '<html><head><script>evil()</script></head><body><a href="/n" onclick="evil()">n</a></body></html>'
    out = rewrite(sanitize(raw), "https://example.com/")
    assert "evil" not in out
    assert "<script" not in out
