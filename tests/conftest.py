# tests/conftest.py
from __future__ import annotations

import random

import httpx
import pytest

from gateway.cache_utils import ResponseCache
from gateway.config import GatewaySettings
from gateway.fetcher import ContentFetcher
from gateway.pipeline import GatewayPipeline
from gateway.regions import RegionLatencyAdvertiser


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def html_response(body: str, *, status: int = 200, content_type: str = "text/html; charset=utf-8") -> httpx.Response:
    return httpx.Response(status, headers={"content-type": content_type}, content=body.encode("utf-8"))


PAGE = (
    "<!DOCTYPE html><html><head><title>Example Domain</title></head>"
    "<body><h1>Example Domain</h1><p>This domain is for use in examples.</p>"
    '<a href="/more">More</a><img src="img/logo.png" alt="logo"></body></html>'
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in (
        "GATEWAY_FETCH_TIMEOUT_MS",
        "GATEWAY_RESOURCE_TIMEOUT_MS",
        "GATEWAY_CACHE_MAX_ENTRIES",
        "GATEWAY_CACHE_TTL_SECONDS",
        "GATEWAY_DEFAULT_REGION",
        "GATEWAY_USER_AGENT",
        "GATEWAY_RESOURCE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_fetcher():
    def _make(handler, **kwargs) -> ContentFetcher:
        return ContentFetcher(transport=httpx.MockTransport(handler), **kwargs)
    return _make


@pytest.fixture
def make_pipeline(clock, make_fetcher):
    """
    Pipeline wired to a MockTransport handler, a fake clock for the cache and
    a seeded advertiser. Extra kwargs become GatewaySettings fields.
    """
    def _make(handler, **overrides) -> GatewayPipeline:
        settings = GatewaySettings(**overrides)
        fetcher = make_fetcher(
            handler,
            user_agent=settings.user_agent,
            timeout_ms=settings.fetch_timeout_ms,
            resource_timeout_ms=settings.resource_timeout_ms,
        )
        cache = ResponseCache(
            max_entries=settings.cache_max_entries,
            ttl_seconds=settings.cache_ttl_seconds,
            clock=clock,
        )
        advertiser = RegionLatencyAdvertiser(rng=random.Random(7), clock=clock)
        return GatewayPipeline(settings=settings, fetcher=fetcher, cache=cache, advertiser=advertiser)
    return _make


@pytest.fixture
def make_client(make_pipeline):
    """TestClient around a fresh app whose outbound traffic goes to handler."""
    from fastapi.testclient import TestClient
    from gateway.main import create_app

    def _make(handler, *, raise_server_exceptions: bool = True, **overrides):
        app = create_app(pipeline=make_pipeline(handler, **overrides))
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)
    return _make
