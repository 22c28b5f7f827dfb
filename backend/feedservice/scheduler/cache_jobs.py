"""
Background cache jobs (APScheduler, asyncio flavour so jobs share the app's event loop,
cache manager and refresh locks):

- background refresh: every CACHE_REFRESH_INTERVAL seconds re-run the single-flight refresh
  for each schema with cached item data and re-render all formats, so readers keep hitting
  fresh content instead of paying the upstream fetch on a miss.
- image metadata prune: drop expired image metadata records.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedservice.config import CacheConfig
from feedservice.core.constants import (
    BACKGROUND_REFRESH_JOB_ID,
    IMAGE_METADATA_PRUNE_INTERVAL_SECONDS,
    IMAGE_METADATA_PRUNE_JOB_ID,
)
from feedservice.services.cache.manager import CacheManager
from feedservice.services.feed.orchestrator import FeedOrchestrator

logger = logging.getLogger(__name__)


async def run_background_refresh_job(orchestrator: FeedOrchestrator) -> None:
    """One tick: refresh every known schema. Never raises into the scheduler."""
    try:
        results = await orchestrator.refresh_all()
    except Exception as e:
        logger.exception("Background refresh tick failed: %s", e)
        return
    failed = [s for s, r in results.items() if r != "ok"]
    if failed:
        logger.warning("Background refresh: %s/%s schemas failed: %s", len(failed), len(results), failed)
    else:
        logger.info("Background refresh: %s schemas refreshed", len(results))


async def run_image_metadata_prune_job(cache: CacheManager) -> None:
    try:
        pruned = await cache.prune_expired()
        logger.debug("Image metadata prune removed %s entries", pruned)
    except Exception as e:
        logger.exception("Image metadata prune failed: %s", e)


def build_scheduler(orchestrator: FeedOrchestrator, config: CacheConfig) -> AsyncIOScheduler:
    """Scheduler with the prune job always, and the refresh job when background refresh is on."""
    scheduler = AsyncIOScheduler()
    if config.enabled and config.background_refresh and config.refresh_interval > 0:
        scheduler.add_job(
            run_background_refresh_job,
            "interval",
            seconds=config.refresh_interval,
            id=BACKGROUND_REFRESH_JOB_ID,
            args=[orchestrator],
            max_instances=1,
            coalesce=True,
        )
    if config.enabled and config.image_enrichment_enabled:
        scheduler.add_job(
            run_image_metadata_prune_job,
            "interval",
            seconds=IMAGE_METADATA_PRUNE_INTERVAL_SECONDS,
            id=IMAGE_METADATA_PRUNE_JOB_ID,
            args=[orchestrator.cache],
            max_instances=1,
            coalesce=True,
        )
    return scheduler
