"""
Feed cache: two tiers (item data per schema, rendered content per schema+format) plus an
image-metadata side cache, persisted per process under CACHE_DIR.
"""
from feedservice.services.cache.manager import CacheManager, filter_new_items, merge_items, watermark
from feedservice.services.cache.refresh_lock import RefreshLock
from feedservice.services.cache.store import CacheStore
from feedservice.services.cache.types import FeedContentEntry, FeedDataEntry, ImageMetadataEntry

__all__ = [
    "CacheManager",
    "CacheStore",
    "FeedContentEntry",
    "FeedDataEntry",
    "ImageMetadataEntry",
    "RefreshLock",
    "filter_new_items",
    "merge_items",
    "watermark",
]
