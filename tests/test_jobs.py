from __future__ import annotations

import asyncio
import json

import httpx
import pytest

import jobs.fetch_page as fetch_page_job
from jobs.check_proxies import CheckResult, main as check_main, check_all, check_proxy

from tests.conftest import PAGE, html_response


# ---------- jobs/fetch_page.py ----------

@pytest.fixture
def patched_pipeline(monkeypatch, make_pipeline):
    def _patch(handler):
        pipeline = make_pipeline(handler)
        monkeypatch.setattr(fetch_page_job, "build_pipeline", lambda: pipeline)
        return pipeline
    return _patch


def test_fetch_page_writes_html(tmp_path, capsys, patched_pipeline):
    patched_pipeline(lambda request: html_response(PAGE))
    out = tmp_path / "page.html"

    rc = fetch_page_job.main(["--url", "https://example.com/", "--region", "India", "--out", str(out)])

    assert rc == 0
    html_text = out.read_text(encoding="utf-8")
    assert "Example Domain" in html_text
    assert "Content-Security-Policy" in html_text
    assert f"WROTE path={out}" in capsys.readouterr().out


def test_fetch_page_prints_to_stdout(capsys, patched_pipeline):
    patched_pipeline(lambda request: html_response(PAGE))

    rc = fetch_page_job.main(["--url", "https://example.com/"])

    assert rc == 0
    assert "Example Domain" in capsys.readouterr().out


def test_fetch_page_failure_prints_json_error(capsys, patched_pipeline):
    patched_pipeline(lambda request: html_response(PAGE))

    rc = fetch_page_job.main(["--url", "http://10.0.0.1/"])

    assert rc == 1
    err = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert err["code"] == "PRIVATE_NETWORK"


# ---------- jobs/check_proxies.py ----------

def test_check_reports_status_code():
    transport = httpx.MockTransport(lambda request: httpx.Response(204))
    result = asyncio.run(check_proxy("http://proxy.example.net:8080", transport=transport))

    assert result.status == 204
    assert result.error is None
    assert result.response_ms < 5000


def test_check_timeout_and_error_labels():
    def timeout(request):
        raise httpx.ConnectTimeout("too slow", request=request)

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    slow = asyncio.run(check_proxy("http://a.example.net:80", transport=httpx.MockTransport(timeout)))
    down = asyncio.run(check_proxy("http://b.example.net:80", transport=httpx.MockTransport(refused)))

    assert slow.status == "TIMEOUT"
    assert slow.response_ms == 5000
    assert down.status == "ERROR"
    assert "refused" in down.error


def test_check_invalid_proxy_url():
    result = asyncio.run(check_proxy("not a proxy"))
    assert result.status == "INVALID_URL"


def test_check_all_sorts_fastest_first(monkeypatch):
    timings = {"http://slow.example.net": 900, "http://fast.example.net": 40, "http://dead.example.net": 5000}

    async def fake_check(proxy_url, **kwargs):
        return CheckResult(proxy_url, timings[proxy_url], 200 if timings[proxy_url] < 5000 else "TIMEOUT")

    monkeypatch.setattr("jobs.check_proxies.check_proxy", fake_check)

    results = asyncio.run(check_all(list(timings)))

    assert [r.proxy_url for r in results] == [
        "http://fast.example.net",
        "http://slow.example.net",
        "http://dead.example.net",
    ]


def test_check_main_prints_ranking(monkeypatch, capsys):
    async def fake_check(proxy_url, **kwargs):
        return CheckResult(proxy_url, 120, 200)

    monkeypatch.setattr("jobs.check_proxies.check_proxy", fake_check)

    assert check_main(["http://one.example.net:3128"]) == 0
    out = capsys.readouterr().out
    assert "Fastest proxies:" in out
    assert "http://one.example.net:3128 - 120ms - 200" in out
