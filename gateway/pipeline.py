# gateway/pipeline.py
from __future__ import annotations

import asyncio
import time

from gateway.cache_utils import ResponseCache, compute_cache_key
from gateway.config import GatewaySettings
from gateway.egress import egress_for
from gateway.error_codes import FETCH_ERROR
from gateway.errors import PipelineError
from gateway.fetcher import ContentFetcher, FetchError, ResourceStream
from gateway.logging_utils import log_event, log_warning
from gateway.regions import RegionLatencyAdvertiser, find_region
from gateway.rewriter import rewrite
from gateway.sanitizer import extract_snapshot, extract_title, sanitize
from gateway.schemas import GatewayResponse
from gateway.url_guard import VERDICT_CODES, GuardVerdict, NormalizedURL, validate


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class GatewayPipeline:
    """
    Guard -> cache -> fetch -> sanitize -> rewrite -> cache store.

    The cache and the ping advertiser are owned here and injected by the app
    factory, so every test can build its own isolated pipeline.
    """

    def __init__(
        self,
        *,
        settings: GatewaySettings | None = None,
        fetcher: ContentFetcher | None = None,
        cache: ResponseCache | None = None,
        advertiser: RegionLatencyAdvertiser | None = None,
    ):
        # ResponseCache defines __len__, so an empty one is falsy: compare to None
        self.settings = settings if settings is not None else GatewaySettings()
        self.fetcher = fetcher if fetcher is not None else ContentFetcher(
            user_agent=self.settings.user_agent,
            timeout_ms=self.settings.fetch_timeout_ms,
            resource_timeout_ms=self.settings.resource_timeout_ms,
        )
        self.cache = cache if cache is not None else ResponseCache(
            max_entries=self.settings.cache_max_entries,
            ttl_seconds=self.settings.cache_ttl_seconds,
        )
        self.advertiser = advertiser if advertiser is not None else RegionLatencyAdvertiser()
        # cache key -> future of the fetch currently running for it
        self._inflight: dict[str, asyncio.Future] = {}

    def resolve_region(self, hint: str | None) -> str:
        """Known region name, or the configured default for absent/unknown hints."""
        if find_region(hint, self.advertiser.profiles) is not None:
            return hint
        return self.settings.default_region

    def guard(self, url: str) -> NormalizedURL:
        normalized, verdict = validate(url)
        if verdict != GuardVerdict.OK:
            raise PipelineError(VERDICT_CODES[verdict], f"URL rejected: {verdict.value}")
        return normalized

    async def fetch_page(
        self,
        url: str,
        region_hint: str | None = None,
        *,
        user_agent: str | None = None,
    ) -> GatewayResponse:
        """
        Run the full pipeline for one URL.

        Raises PipelineError for guard rejections and for fetches that failed
        after the fallback attempt. Sanitize/rewrite problems never raise.
        """
        started = time.perf_counter()
        normalized = self.guard(url)
        source_url = normalized.geturl()
        region = self.resolve_region(region_hint)
        key = compute_cache_key(source_url, region)

        log_event("proxy_fetch", url=source_url, region=region)

        cached = self.cache.get(key)
        if cached is not None:
            log_event("cache_hit", url=source_url, region=region)
            return cached.model_copy(update={"served_from_cache": True, "processing_time_ms": _elapsed_ms(started)})

        pending = self._inflight.get(key)
        if pending is not None:
            # Someone is already fetching this key; share their result
            log_event("fetch_joined", url=source_url, region=region)
            shared = await asyncio.shield(pending)
            return shared.model_copy(update={"served_from_cache": True, "processing_time_ms": _elapsed_ms(started)})

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            response = await self._build(normalized, region, key, started, user_agent)
        except asyncio.CancelledError:
            # joiners were not cancelled themselves; hand them an ordinary failure
            future.set_exception(PipelineError(FETCH_ERROR, "Shared fetch was cancelled"))
            future.exception()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # mark retrieved so an unjoined failure does not warn at GC
            future.exception()
            raise
        else:
            future.set_result(response)
            return response
        finally:
            self._inflight.pop(key, None)

    async def _build(
        self,
        normalized: NormalizedURL,
        region: str,
        key: str,
        started: float,
        user_agent: str | None,
    ) -> GatewayResponse:
        source_url = normalized.geturl()
        egress = egress_for(region, self.advertiser.profiles)
        result = await self.fetcher.fetch(source_url, egress=egress, user_agent=user_agent)
        if not result.ok:
            raise PipelineError(result.error_code, result.error_message)

        doc = result.document
        title = extract_title(doc.body, fallback=normalized.host)
        snapshot = extract_snapshot(doc.body)
        safe_html = sanitize(doc.body, doc.final_url)
        # resolve against where we actually ended up after redirects
        html = rewrite(safe_html, doc.final_url, resource_path=self.settings.resource_path)

        response = GatewayResponse(
            sanitized_html=html,
            title=title,
            snapshot=snapshot,
            source_url=source_url,
            processing_time_ms=_elapsed_ms(started),
            served_from_cache=False,
            used_fallback=result.used_fallback,
            region=region,
        )
        self.cache.put(key, response)
        log_event("proxy_success", url=source_url, region=region, ms=response.processing_time_ms,
                  fallback=result.used_fallback)
        return response

    async def open_resource(self, url: str, *, user_agent: str | None = None) -> ResourceStream:
        """Guard + binary passthrough. No sanitization, no cache."""
        normalized = self.guard(url)
        try:
            return await self.fetcher.open_stream(normalized.geturl(), user_agent=user_agent)
        except FetchError as exc:
            log_warning("resource_failed", url=normalized.geturl(), code=exc.code, message=exc.message)
            raise PipelineError(exc.code, exc.message) from exc

    def region_statuses(self) -> list[dict]:
        return self.advertiser.snapshot()
