"""
Feed cache manager: item data per schema, rendered content per (schema, format), and
image metadata per transaction id, each with TTL expiry and on-disk persistence.

The in-memory index is loaded from the store on first use and updated by swapping whole
entries, so readers never see a half-written entry. Disk failures never fail a request:
read errors behave as a cache miss, write errors are logged and dropped.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Sequence

from feedservice.config import CacheConfig
from feedservice.core.errors import CachePersistenceError
from feedservice.core.etag import content_etag
from feedservice.services.cache.store import CacheStore
from feedservice.services.cache.types import FeedContentEntry, FeedDataEntry, ImageMetadataEntry
from feedservice.services.images.types import ImageMetadata
from feedservice.services.providers.types import ContentItem

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_METADATA_TTL = 604800


def watermark(items: Iterable[ContentItem]) -> int:
    """Highest time_created among items; 0 for an empty list."""
    return max((item.time_created for item in items), default=0)


def filter_new_items(all_items: Iterable[ContentItem], last_processed_timestamp: int) -> list[ContentItem]:
    """Items created strictly after the watermark, in input order."""
    return [item for item in all_items if item.time_created > last_processed_timestamp]


def merge_items(cached_items: Sequence[ContentItem], new_items: Iterable[ContentItem]) -> list[ContentItem]:
    """
    Merge by id. A new item whose id is already cached replaces it in place (upstream edits
    win); unseen ids are appended in the order discovered. Never re-sorted: readers order by
    pubDate, not array position.
    """
    merged = list(cached_items)
    position = {item.id: i for i, item in enumerate(merged)}
    for item in new_items:
        i = position.get(item.id)
        if i is None:
            position[item.id] = len(merged)
            merged.append(item)
        else:
            merged[i] = item
    return merged


class CacheManager:
    """One instance per process (or per test) owning one cache directory."""

    # Pure merge helpers, exposed on the manager for callers holding only the instance.
    filter_new_items = staticmethod(filter_new_items)
    merge_items = staticmethod(merge_items)

    def __init__(
        self,
        config: CacheConfig,
        *,
        store: CacheStore | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config
        self._store = store or CacheStore(config.cache_dir)
        self._clock = clock or time.time
        self._feed_data: dict[str, FeedDataEntry] = {}
        self._feed_content: dict[tuple[str, str], FeedContentEntry] = {}
        self._image_metadata: dict[str, ImageMetadataEntry] = {}
        self._loaded = False
        self._load_lock = asyncio.Lock()

    @property
    def ttl(self) -> int:
        return self.config.ttl

    @property
    def image_metadata_ttl(self) -> int:
        if self.config.image_metadata is None:
            return DEFAULT_IMAGE_METADATA_TTL
        return self.config.image_metadata.ttl

    def now(self) -> int:
        return int(self._clock())

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # --- Load / persist plumbing ---

    async def load(self) -> None:
        """Load every namespace from disk once. A failing namespace starts empty (all misses)."""
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            self._feed_data = await self._read(self._store.load_feed_data, "feed data") or {}
            self._feed_content = await self._read(self._store.load_feed_content, "feed content") or {}
            self._image_metadata = await self._read(self._store.load_image_metadata, "image metadata") or {}
            self._loaded = True
            logger.info(
                "Cache loaded from %s: %s feed data, %s feed content, %s image metadata",
                self._store.cache_dir,
                len(self._feed_data),
                len(self._feed_content),
                len(self._image_metadata),
            )

    async def _read(self, fn: Callable[[], Any], what: str) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except CachePersistenceError as e:
            logger.warning("Cache read failed (%s); treating as empty: %s", what, e)
            return None

    async def _write(self, fn: Callable[..., Any], *args: Any, what: str) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except CachePersistenceError as e:
            logger.warning("Cache write failed (%s); continuing without persistence: %s", what, e)
            return None

    # --- Feed data ---

    async def get_feed_data(self, schema_name: str, *, ignore_expiry: bool = False) -> FeedDataEntry | None:
        """Cached items for schema, or None if absent/expired. ignore_expiry=True returns stale entries too."""
        await self.load()
        entry = self._feed_data.get(schema_name)
        if entry is None:
            return None
        if not ignore_expiry and entry.is_expired(self.ttl, self.now()):
            logger.debug("Feed data expired for %s", schema_name)
            return None
        return entry

    async def set_feed_data(self, schema_name: str, items: Sequence[ContentItem]) -> FeedDataEntry:
        await self.load()
        entry = FeedDataEntry(
            schema_name=schema_name,
            items=list(items),
            last_processed_timestamp=watermark(items),
            saved_at=self.now(),
        )
        self._feed_data[schema_name] = entry
        await self._write(self._store.save_feed_data, entry, what=f"feed data {schema_name}")
        return entry

    # --- Feed content ---

    async def get_feed_content(self, schema_name: str, fmt: str, *, ignore_expiry: bool = False) -> FeedContentEntry | None:
        await self.load()
        entry = self._feed_content.get((schema_name, fmt))
        if entry is None:
            return None
        if not ignore_expiry and entry.is_expired(self.ttl, self.now()):
            logger.debug("Feed content expired for %s/%s", schema_name, fmt)
            return None
        return entry

    async def set_feed_content(self, schema_name: str, fmt: str, content: str, content_type: str) -> FeedContentEntry:
        """Store a rendered feed under a fresh last_modified (ms) and matching etag."""
        await self.load()
        last_modified = self._now_ms()
        previous = self._feed_content.get((schema_name, fmt))
        if previous is not None and previous.last_modified >= last_modified:
            # Same-millisecond re-render must still get a new etag
            last_modified = previous.last_modified + 1
        entry = FeedContentEntry(
            schema_name=schema_name,
            format=fmt,
            content=content,
            content_type=content_type,
            etag=content_etag(schema_name, fmt, last_modified, len(content)),
            last_modified=last_modified,
            saved_at=self.now(),
        )
        self._feed_content[(schema_name, fmt)] = entry
        await self._write(self._store.save_feed_content, entry, what=f"feed content {schema_name}/{fmt}")
        return entry

    # --- Image metadata ---

    async def get_image_metadata(self, transaction_id: str) -> ImageMetadataEntry | None:
        await self.load()
        entry = self._image_metadata.get(transaction_id)
        if entry is None or entry.is_expired(self.image_metadata_ttl, self.now()):
            return None
        return entry

    async def set_image_metadata(self, transaction_id: str, metadata: ImageMetadata) -> ImageMetadataEntry:
        await self.load()
        entry = ImageMetadataEntry(transaction_id=transaction_id, metadata=metadata, saved_at=self.now())
        self._image_metadata[transaction_id] = entry
        await self._write(self._store.save_image_metadata, entry, what=f"image metadata {transaction_id}")
        return entry

    # --- Invalidation ---

    async def clear_feed_data(self, schema_name: str) -> None:
        """Drop the schema's item data and rendered content (all formats), in memory and on disk."""
        await self.load()
        self._feed_data.pop(schema_name, None)
        for key in [k for k in self._feed_content if k[0] == schema_name]:
            self._feed_content.pop(key, None)
        await self._write(self._store.delete_feed, schema_name, what=f"clear {schema_name}")
        logger.info("Cleared feed cache for %s", schema_name)

    async def clear_all(self) -> None:
        """Drop every feed data and feed content entry."""
        await self.load()
        self._feed_data = {}
        self._feed_content = {}
        await self._write(self._store.delete_all_feeds, what="clear all feeds")
        logger.info("Cleared all feed caches")

    async def clear_image_metadata(self) -> None:
        await self.load()
        self._image_metadata = {}
        await self._write(self._store.delete_image_metadata, what="clear image metadata")
        logger.info("Cleared image metadata cache")

    async def prune_expired(self) -> int:
        """Remove expired image metadata from memory and disk. Feed entries are kept for stale serving."""
        await self.load()
        now = self.now()
        ttl = self.image_metadata_ttl
        expired = {tx for tx, entry in self._image_metadata.items() if entry.is_expired(ttl, now)}
        if expired:
            self._image_metadata = {tx: e for tx, e in self._image_metadata.items() if tx not in expired}
        await self._write(self._store.delete_image_metadata, now - ttl, what="prune image metadata")
        if expired:
            logger.info("Pruned %s expired image metadata entries", len(expired))
        return len(expired)

    # --- Introspection ---

    async def known_schemas(self) -> list[str]:
        await self.load()
        return sorted(self._feed_data)

    async def stats(self) -> dict[str, int]:
        await self.load()
        return {
            "feed_data": len(self._feed_data),
            "feed_content": len(self._feed_content),
            "image_metadata": len(self._image_metadata),
        }
