from __future__ import annotations

import argparse
import asyncio
import time
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from gateway.logging_utils import log_event


CHECK_TARGET = "http://www.google.com"
CHECK_TIMEOUT_S = 5.0


@dataclass
class CheckResult:
    proxy_url: str
    response_ms: int
    status: int | str  # HTTP status, or TIMEOUT / ERROR / INVALID_URL
    error: str | None = None


def _is_proxy_url(proxy_url: str) -> bool:
    try:
        parts = urlsplit(proxy_url)
        parts.port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


async def check_proxy(
    proxy_url: str,
    *,
    target: str = CHECK_TARGET,
    timeout_s: float = CHECK_TIMEOUT_S,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CheckResult:
    """
    Time one GET through proxy_url. Only the status line is waited for.
    Failures are reported with response_ms = the timeout, so they sort last.
    """
    penalty_ms = int(timeout_s * 1000)
    if not _is_proxy_url(proxy_url):
        return CheckResult(proxy_url, penalty_ms, "INVALID_URL", "not an http(s) proxy URL")

    if transport is not None:
        client = httpx.AsyncClient(transport=transport, timeout=timeout_s)
    else:
        client = httpx.AsyncClient(proxy=proxy_url, timeout=timeout_s)

    started = time.perf_counter()
    try:
        async with client:
            async with client.stream("GET", target) as resp:
                elapsed = int((time.perf_counter() - started) * 1000)
                return CheckResult(proxy_url, elapsed, resp.status_code)
    except httpx.TimeoutException:
        return CheckResult(proxy_url, penalty_ms, "TIMEOUT")
    except (httpx.HTTPError, OSError) as exc:
        return CheckResult(proxy_url, penalty_ms, "ERROR", str(exc) or type(exc).__name__)


async def check_all(proxy_urls: list[str], **kwargs) -> list[CheckResult]:
    """Check sequentially (one at a time, like a person testing by hand); fastest first."""
    results = []
    for proxy_url in proxy_urls:
        result = await check_proxy(proxy_url, **kwargs)
        log_event("proxy_checked", proxy=proxy_url, ms=result.response_ms, status=result.status)
        results.append(result)
    return sorted(results, key=lambda r: r.response_ms)


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Measure response time through each proxy.")
    p.add_argument("proxies", nargs="+", metavar="PROXY_URL")
    p.add_argument("--target", default=CHECK_TARGET)
    p.add_argument("--timeout", type=float, default=CHECK_TIMEOUT_S, help="seconds")
    args = p.parse_args(argv)

    results = asyncio.run(check_all(args.proxies, target=args.target, timeout_s=args.timeout))

    print("Fastest proxies:")
    for r in results:
        suffix = f" ({r.error})" if r.error else ""
        print(f"{r.proxy_url} - {r.response_ms}ms - {r.status}{suffix}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
