from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from gateway.config import DEFAULT_USER_AGENT
from gateway.egress import DirectEgress, NetworkEgress
from gateway.error_codes import (
    FETCH_ERROR, FORBIDDEN_URL, MALFORMED_URL, NOT_FOUND, PRIVATE_NETWORK, TIMEOUT, UNSUPPORTED_CONTENT_TYPE,
)
from gateway.logging_utils import log_event, log_warning
from gateway.url_guard import VERDICT_CODES, GuardVerdict, validate


HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# Never retried by the fallback attempt
FINAL_CODES = frozenset([UNSUPPORTED_CONTENT_TYPE, FORBIDDEN_URL, PRIVATE_NETWORK, MALFORMED_URL])

# Substrings resolvers put in the message when the host name does not resolve
_RESOLUTION_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
    "name does not resolve",
)

_NETWORK_ERRORS = (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, OSError)


class FetchError(Exception):
    """A classified fetch failure (code is one of gateway.error_codes)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class RawDocument:
    body: str
    final_url: str
    content_type: str


@dataclass
class FetchResult:
    ok: bool
    document: RawDocument | None = None
    error_code: str | None = None
    error_message: str | None = None
    used_fallback: bool = False


def is_html_content_type(content_type: str | None) -> bool:
    ct = (content_type or "").lower()
    return any(t in ct for t in HTML_CONTENT_TYPES)


def primary_headers(user_agent: str, egress: NetworkEgress) -> dict[str, str]:
    headers = {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
    headers.update(egress.advisory_headers())
    return headers


def minimal_headers(user_agent: str) -> dict[str, str]:
    return {"User-Agent": user_agent, "Accept": "text/html"}


def _is_resolution_failure(exc: BaseException) -> bool:
    seen = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        if any(marker in str(current).lower() for marker in _RESOLUTION_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_error(exc: BaseException) -> str:
    """Map a transport exception to TIMEOUT, NOT_FOUND or FETCH_ERROR."""
    if isinstance(exc, FetchError):
        return exc.code
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TIMEOUT
    if isinstance(exc, (httpx.ConnectError, OSError)) and _is_resolution_failure(exc):
        return NOT_FOUND
    return FETCH_ERROR


def merge_codes(primary: str, fallback: str | None) -> str:
    """
    Final code after both attempts failed.
    The primary classification wins; the fallback only sharpens a generic
    FETCH_ERROR into TIMEOUT or NOT_FOUND.
    """
    if primary == FETCH_ERROR and fallback in (TIMEOUT, NOT_FOUND):
        return fallback
    return primary


async def screen_request(request: httpx.Request) -> None:
    """
    httpx request hook: every hop, redirects included, must pass the guard.
    Only the literal URL is checked; see url_guard for the DNS-rebinding gap.
    """
    _, verdict = validate(str(request.url))
    if verdict != GuardVerdict.OK:
        raise FetchError(VERDICT_CODES[verdict], f"Redirect target rejected: {verdict.value}")


def _describe(exc: BaseException, timeout_s: float) -> str:
    if isinstance(exc, FetchError):
        return exc.message
    if isinstance(exc, asyncio.TimeoutError):
        return f"timed out after {int(timeout_s * 1000)}ms"
    return str(exc) or type(exc).__name__


@dataclass
class ResourceStream:
    status_code: int
    content_type: str | None
    chunks: AsyncIterator[bytes]
    response: httpx.Response
    client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


class ContentFetcher:
    """
    Outbound GETs for the pipeline.

    Every call gets its own httpx.AsyncClient and a hard deadline enforced with
    asyncio.wait_for, so an expired request is cancelled and its connection
    released. `transport` is injectable for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_ms: int = 30_000,
        resource_timeout_ms: int = 15_000,
    ):
        self._transport = transport
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self.resource_timeout_ms = resource_timeout_ms

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=True,
            event_hooks={"request": [screen_request]},
        )

    async def _get_document(self, url: str, headers: dict[str, str], timeout_s: float) -> RawDocument:
        async with self._client(timeout_s) as client:
            async with client.stream("GET", url, headers=headers) as response:
                if not response.is_success:
                    raise FetchError(FETCH_ERROR, f"HTTP {response.status_code}: {response.reason_phrase}")

                content_type = response.headers.get("content-type", "")
                # Reject before reading: a non-HTML body is never downloaded
                if not is_html_content_type(content_type):
                    raise FetchError(UNSUPPORTED_CONTENT_TYPE, f"Unsupported content type: {content_type or 'none'}")

                await response.aread()
                return RawDocument(body=response.text, final_url=str(response.url), content_type=content_type)

    async def _attempt(self, url: str, headers: dict[str, str], timeout_s: float) -> RawDocument:
        return await asyncio.wait_for(self._get_document(url, headers, timeout_s), timeout=timeout_s)

    async def fetch(
        self,
        url: str,
        *,
        egress: NetworkEgress | None = None,
        user_agent: str | None = None,
        timeout_ms: int | None = None,
    ) -> FetchResult:
        """
        Fetch an HTML document.

        Contract:
        - ALWAYS returns a FetchResult (never raises for network failures)
        - One primary attempt, then at most one fallback attempt with minimal
          headers; content-type rejection is final and skips the fallback
        """
        egress = egress or DirectEgress()
        ua = user_agent or self.user_agent
        timeout_s = (timeout_ms or self.timeout_ms) / 1000

        log_event("fetch_started", url=url, egress=egress.name, simulated=egress.simulated)

        try:
            doc = await self._attempt(url, primary_headers(ua, egress), timeout_s)
            log_event("fetch_ok", url=url, final_url=doc.final_url, bytes=len(doc.body))
            return FetchResult(ok=True, document=doc)
        except _NETWORK_ERRORS + (FetchError,) as exc:
            primary_code = classify_error(exc)
            primary_message = _describe(exc, timeout_s)

        if primary_code in FINAL_CODES:
            log_warning("fetch_failed", url=url, code=primary_code, message=primary_message)
            return FetchResult(ok=False, error_code=primary_code, error_message=primary_message)

        log_warning("fetch_fallback", url=url, code=primary_code, message=primary_message)
        try:
            doc = await self._attempt(url, minimal_headers(ua), timeout_s)
            log_event("fetch_ok", url=url, final_url=doc.final_url, bytes=len(doc.body), fallback=True)
            return FetchResult(ok=True, document=doc, used_fallback=True)
        except _NETWORK_ERRORS + (FetchError,) as exc:
            fallback_code = classify_error(exc)

        code = merge_codes(primary_code, fallback_code)
        log_warning("fetch_failed", url=url, code=code, primary=primary_code, fallback=fallback_code)
        return FetchResult(ok=False, error_code=code, error_message=primary_message)

    async def open_stream(
        self,
        url: str,
        *,
        user_agent: str | None = None,
        timeout_ms: int | None = None,
    ) -> ResourceStream:
        """
        Open a binary passthrough stream (images, stylesheets).

        The deadline covers the whole transfer: once it expires the stream
        simply ends and the upstream connection is closed.
        Raises FetchError when the upstream cannot be reached or answers non-2xx.
        """
        timeout_s = (timeout_ms or self.resource_timeout_ms) / 1000
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s

        client = self._client(timeout_s)
        request = client.build_request("GET", url, headers={"User-Agent": user_agent or self.user_agent})
        try:
            response = await asyncio.wait_for(client.send(request, stream=True), timeout=timeout_s)
        except _NETWORK_ERRORS + (FetchError,) as exc:
            await client.aclose()
            raise FetchError(classify_error(exc), _describe(exc, timeout_s)) from exc

        if not response.is_success:
            await response.aclose()
            await client.aclose()
            raise FetchError(FETCH_ERROR, f"Resource fetch failed: {response.status_code}")

        async def body() -> AsyncIterator[bytes]:
            iterator = response.aiter_bytes().__aiter__()
            try:
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        log_warning("resource_failed", url=url, code=TIMEOUT, message="deadline reached mid-stream")
                        break
                    try:
                        chunk = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    except (asyncio.TimeoutError, httpx.HTTPError) as exc:
                        log_warning("resource_failed", url=url, code=classify_error(exc), message=_describe(exc, timeout_s))
                        break
                    yield chunk
            finally:
                await response.aclose()
                await client.aclose()

        return ResourceStream(
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            chunks=body(),
            response=response,
            client=client,
        )
