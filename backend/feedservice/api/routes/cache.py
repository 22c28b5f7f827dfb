"""
Cache admin API: operational resets. Mounted under /cache.

Clearing drops both the in-memory index and the on-disk records; the next request for a
cleared feed does a cold refresh.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from feedservice.services.cache.manager import CacheManager
from feedservice.services.feed.orchestrator import schema_name_for

router = APIRouter()
logger = logging.getLogger(__name__)


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


@router.get("/stats")
async def cache_stats(cache: CacheManager = Depends(get_cache)) -> dict[str, Any]:
    return {"enabled": cache.config.enabled, "ttl": cache.ttl, "entries": await cache.stats()}


@router.post("/clear")
async def clear_cache(
    include_images: bool = Query(False),
    cache: CacheManager = Depends(get_cache),
) -> dict[str, Any]:
    """Clear all feed data and rendered content; image metadata too with include_images=true."""
    await cache.clear_all()
    if include_images:
        await cache.clear_image_metadata()
    return {"cleared": "all", "include_images": include_images}


@router.post("/clear/{collection}")
async def clear_collection(collection: str, cache: CacheManager = Depends(get_cache)) -> dict[str, Any]:
    schema_name = schema_name_for(collection)
    await cache.clear_feed_data(schema_name)
    return {"cleared": schema_name}
