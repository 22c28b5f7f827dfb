"""
Feed request orchestration: the hit / 304 / miss / stale / error state machine.

Per (collection, format) request:
  - caching disabled: fetch, enrich, render, no persistence
  - fresh rendered content: 304 when If-None-Match matches, else the cached body (HIT)
  - otherwise: one upstream refresh per schema (single-flight), then enrich + render
    outside the lock and store the content (MISS)
  - refresh/render failure: expired content if any (STALE), else 500

The lock is per schema, not per format: the upstream fetch is the expensive, shared part;
rendering is cheap and format-specific, so different formats render concurrently.
"""
import logging
from email.utils import format_datetime
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence

from feedservice.config import ChannelConfig
from feedservice.core.constants import (
    CACHE_HIT,
    CACHE_MISS,
    CACHE_STALE,
    FEED_FORMATS,
    STALE_WARNING,
)
from feedservice.core.errors import (
    MSG_FEED_FAILED,
    MSG_INVALID_FORMAT,
    STATUS_BAD_REQUEST,
    STATUS_INTERNAL_ERROR,
    InvalidFormatError,
    RenderError,
    UpstreamFetchError,
    error_body,
)
from feedservice.core.etag import check_if_none_match
from feedservice.services.cache.manager import CacheManager, filter_new_items, merge_items
from feedservice.services.cache.refresh_lock import RefreshLock
from feedservice.services.cache.types import FeedContentEntry
from feedservice.services.feed.enricher import ImageEnricher
from feedservice.services.feed.renderer import render_feed
from feedservice.services.providers.base import ItemFetcher
from feedservice.services.providers.types import ContentItem

logger = logging.getLogger(__name__)


class FeedState(str, Enum):
    FRESH_HIT = "FRESH_HIT"
    CONDITIONAL_MATCH = "CONDITIONAL_MATCH"
    COLD_MISS = "COLD_MISS"
    WARM_MISS = "WARM_MISS"
    DISABLED = "DISABLED"
    ERROR_STALE = "ERROR_STALE"
    ERROR_FATAL = "ERROR_FATAL"
    INVALID_FORMAT = "INVALID_FORMAT"


class FeedResponse:
    """Transport-neutral response; the route turns it into a Starlette Response."""

    __slots__ = ("status", "body", "headers", "state")

    def __init__(self, status: int, body: str | dict | None, headers: dict[str, str], state: FeedState):
        self.status = status
        self.body = body
        self.headers = headers
        self.state = state

    @property
    def is_json_error(self) -> bool:
        return isinstance(self.body, dict)


def schema_name_for(collection: str) -> str:
    """Collection path segment -> schema name: lowercase, plural 's' dropped (posts -> post)."""
    name = (collection or "").strip().lower()
    if len(name) > 1 and name.endswith("s"):
        name = name[:-1]
    return name


def feed_self_url(channel: ChannelConfig, collection: str, fmt: str, cache_bust: str | None = None) -> str:
    url = f"{channel.feed_url}/{collection}/{fmt}"
    if cache_bust:
        url = f"{url}?v={cache_bust}"
    return url


def http_date(last_modified_ms: int) -> str:
    return format_datetime(datetime.fromtimestamp(last_modified_ms // 1000, tz=timezone.utc), usegmt=True)


Renderer = Callable[..., tuple[str, str]]


class FeedOrchestrator:
    def __init__(
        self,
        *,
        cache: CacheManager,
        fetcher: ItemFetcher,
        channel: ChannelConfig,
        enricher: ImageEnricher | None = None,
        lock: RefreshLock | None = None,
        renderer: Renderer = render_feed,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.channel = channel
        self.enricher = enricher
        self.lock = lock or RefreshLock()
        self.renderer = renderer

    def _cache_headers(self, entry: FeedContentEntry, x_cache: str) -> dict[str, str]:
        return {
            "Content-Type": entry.content_type,
            "ETag": entry.etag,
            "Last-Modified": http_date(entry.last_modified),
            "Cache-Control": f"public, max-age={self.cache.ttl}, must-revalidate",
            "X-Cache": x_cache,
        }

    async def handle(
        self,
        collection: str,
        fmt: str,
        if_none_match: str | None = None,
        cache_bust: str | None = None,
    ) -> FeedResponse:
        fmt = (fmt or "").lower()
        if fmt not in FEED_FORMATS:
            err = InvalidFormatError(fmt, FEED_FORMATS)
            return FeedResponse(STATUS_BAD_REQUEST, error_body(MSG_INVALID_FORMAT, str(err)), {}, FeedState.INVALID_FORMAT)
        schema_name = schema_name_for(collection)
        self_url = feed_self_url(self.channel, collection, fmt, cache_bust)

        if not self.cache.config.enabled:
            return await self._handle_uncached(schema_name, fmt, self_url)

        entry = await self.cache.get_feed_content(schema_name, fmt)
        if entry is not None:
            if check_if_none_match(if_none_match, entry.etag):
                logger.debug("304 for %s/%s", schema_name, fmt)
                headers = {
                    "ETag": entry.etag,
                    "Cache-Control": f"public, max-age={self.cache.ttl}, must-revalidate",
                    "X-Cache": CACHE_HIT,
                }
                return FeedResponse(304, None, headers, FeedState.CONDITIONAL_MATCH)
            logger.debug("Cache hit for %s/%s", schema_name, fmt)
            return FeedResponse(200, entry.content, self._cache_headers(entry, CACHE_HIT), FeedState.FRESH_HIT)

        try:
            items, state = await self.lock.run(schema_name, lambda: self.refresh_items(schema_name))
            entry = await self._render_and_store(schema_name, fmt, items, self_url)
            return FeedResponse(200, entry.content, self._cache_headers(entry, CACHE_MISS), state)
        except Exception as e:
            return await self._handle_failure(schema_name, fmt, e)

    async def _handle_failure(self, schema_name: str, fmt: str, exc: Exception) -> FeedResponse:
        stale = await self.cache.get_feed_content(schema_name, fmt, ignore_expiry=True)
        if stale is not None:
            logger.warning("Serving stale %s/%s after refresh failure: %s", schema_name, fmt, exc)
            headers = self._cache_headers(stale, CACHE_STALE)
            headers["Warning"] = STALE_WARNING
            return FeedResponse(200, stale.content, headers, FeedState.ERROR_STALE)
        logger.warning("Feed %s/%s failed with no cached content: %s", schema_name, fmt, exc, exc_info=True)
        return FeedResponse(STATUS_INTERNAL_ERROR, error_body(MSG_FEED_FAILED, str(exc)), {}, FeedState.ERROR_FATAL)

    async def _handle_uncached(self, schema_name: str, fmt: str, self_url: str) -> FeedResponse:
        try:
            items = await self._fetch(schema_name)
            items = await self._enrich(items)
            body, content_type = self._render(fmt, items, schema_name, self_url)
        except Exception as e:
            logger.warning("Uncached feed %s/%s failed: %s", schema_name, fmt, e, exc_info=True)
            return FeedResponse(STATUS_INTERNAL_ERROR, error_body(MSG_FEED_FAILED, str(e)), {}, FeedState.ERROR_FATAL)
        headers = {"Content-Type": content_type, "Cache-Control": "no-cache"}
        return FeedResponse(200, body, headers, FeedState.DISABLED)

    # --- Refresh (runs inside the schema's RefreshLock) ---

    async def refresh_items(self, schema_name: str) -> tuple[list[ContentItem], FeedState]:
        """
        Warm path (fresh item data): fetch everything, merge only items newer than the
        stored watermark. Cold path (no data or expired data): fetch and store everything,
        replacing what was cached. Returns pre-enrichment items.
        """
        entry = await self.cache.get_feed_data(schema_name)
        all_items = await self._fetch(schema_name)
        if entry is None:
            await self.cache.set_feed_data(schema_name, all_items)
            logger.info("Cold refresh for %s: cached %s items", schema_name, len(all_items))
            return all_items, FeedState.COLD_MISS

        new_items = filter_new_items(all_items, entry.last_processed_timestamp)
        if new_items:
            merged = merge_items(entry.items, new_items)
            await self.cache.set_feed_data(schema_name, merged)
            logger.info("Warm refresh for %s: merged %s new items (%s total)", schema_name, len(new_items), len(merged))
            return merged, FeedState.WARM_MISS
        logger.debug("Warm refresh for %s: no new items", schema_name)
        return list(entry.items), FeedState.WARM_MISS

    async def _fetch(self, schema_name: str) -> list[ContentItem]:
        try:
            return list(await self.fetcher.fetch_items(schema_name))
        except UpstreamFetchError:
            raise
        except Exception as e:
            raise UpstreamFetchError(f"Failed to fetch items for {schema_name}: {e}") from e

    async def _enrich(self, items: Sequence[ContentItem]) -> list[ContentItem]:
        if self.enricher is None:
            return list(items)
        try:
            return await self.enricher.enrich(items)
        except Exception as e:
            logger.warning("Image enrichment failed; rendering without it: %s", e)
            return list(items)

    def _render(self, fmt: str, items: Sequence[ContentItem], schema_name: str, self_url: str) -> tuple[str, str]:
        try:
            return self.renderer(fmt, self.channel, items, schema_name=schema_name, self_url=self_url)
        except InvalidFormatError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to render {fmt} feed for {schema_name}: {e}") from e

    async def _render_and_store(self, schema_name: str, fmt: str, items: Sequence[ContentItem], self_url: str) -> FeedContentEntry:
        enriched = await self._enrich(items)
        body, content_type = self._render(fmt, enriched, schema_name, self_url)
        return await self.cache.set_feed_content(schema_name, fmt, body, content_type)

    # --- Background refresh ---

    async def refresh_schema(self, schema_name: str) -> None:
        """Refresh item data (single-flight) and re-render every format."""
        items, _ = await self.lock.run(schema_name, lambda: self.refresh_items(schema_name))
        for fmt in FEED_FORMATS:
            await self._render_and_store(schema_name, fmt, items, feed_self_url(self.channel, schema_name, fmt))

    async def refresh_all(self) -> dict[str, str]:
        """Refresh every schema with cached item data. Failures are logged per schema; old entries stay."""
        results: dict[str, str] = {}
        for schema_name in await self.cache.known_schemas():
            try:
                await self.refresh_schema(schema_name)
                results[schema_name] = "ok"
            except Exception as e:
                logger.warning("Background refresh failed for %s: %s", schema_name, e)
                results[schema_name] = f"error: {e}"
        return results
