"""
Attach image metadata to feed items before rendering.

Metadata is cached per transaction id independently of feed item caching. Items are
enriched concurrently; any failure leaves that item as-is so a feed always renders.
"""
import asyncio
import logging
from typing import Sequence

from feedservice.core.constants import HAS_IMAGE_FIELD, IMAGE_METADATA_FIELD, IMAGE_TRANSACTION_FIELDS
from feedservice.services.cache.manager import CacheManager
from feedservice.services.cache.refresh_lock import RefreshLock
from feedservice.services.images.detector import ImageDetectionService
from feedservice.services.images.types import ImageMetadata
from feedservice.services.providers.types import ContentItem

logger = logging.getLogger(__name__)


def transaction_id_for(item: ContentItem) -> str | None:
    for field in IMAGE_TRANSACTION_FIELDS:
        value = item.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ImageEnricher:
    def __init__(self, cache: CacheManager, detector: ImageDetectionService, *, lock: RefreshLock | None = None):
        self._cache = cache
        self._detector = detector
        # Concurrent requests probing the same transaction share one detection
        self.lock = lock or RefreshLock()

    async def enrich(self, items: Sequence[ContentItem]) -> list[ContentItem]:
        results = await asyncio.gather(*(self._enrich_one(item) for item in items), return_exceptions=True)
        enriched: list[ContentItem] = []
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.warning("Image enrichment failed for item %s: %s", item.id, result)
                enriched.append(item)
            elif isinstance(result, BaseException):
                raise result
            else:
                enriched.append(result)
        return enriched

    async def _enrich_one(self, item: ContentItem) -> ContentItem:
        tx = transaction_id_for(item)
        if tx is None:
            return item
        metadata = await self.metadata_for(tx)
        return item.with_fields(**{IMAGE_METADATA_FIELD: metadata.to_dict(), HAS_IMAGE_FIELD: metadata.is_image})

    async def metadata_for(self, transaction_id: str) -> ImageMetadata:
        """Cached metadata, else detect once (single-flight per transaction) and cache, negatives included."""
        entry = await self._cache.get_image_metadata(transaction_id)
        if entry is not None:
            return entry.metadata
        return await self.lock.run(f"image:{transaction_id}", lambda: self._detect_and_store(transaction_id))

    async def _detect_and_store(self, transaction_id: str) -> ImageMetadata:
        entry = await self._cache.get_image_metadata(transaction_id)
        if entry is not None:
            return entry.metadata
        metadata = await self._detector.detect_image(transaction_id)
        await self._cache.set_image_metadata(transaction_id, metadata)
        logger.debug("Image metadata for %s: is_image=%s", transaction_id, metadata.is_image)
        return metadata
