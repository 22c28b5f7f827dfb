from unittest.mock import AsyncMock

import pytest

from feedservice.config import CacheConfig, ImageMetadataConfig, Settings
from feedservice.core.constants import BACKGROUND_REFRESH_JOB_ID, IMAGE_METADATA_PRUNE_JOB_ID
from feedservice.scheduler.cache_jobs import build_scheduler, run_background_refresh_job, run_image_metadata_prune_job


def test_settings_normalization():
    cfg = Settings(
        cache_ttl=-5,
        image_gateways=" a.example, ,b.example ",
        feed_url="https://feed.example.com/",
        image_timeout_ms=0,
    )
    cache_config = cfg.cache_config()
    assert cache_config.ttl == 0
    assert cache_config.image_metadata.gateways == ["a.example", "b.example"]
    assert cache_config.image_metadata.timeout_seconds is None
    assert cfg.channel_config().feed_url == "https://feed.example.com"


def test_empty_gateway_list_uses_defaults():
    assert Settings(image_gateways=" , ").gateway_list() == ["arweave.net", "ar-io.net"]


def test_channel_copyright_default(channel):
    assert channel.copyright.endswith("All rights reserved")


def _job_ids(scheduler) -> set[str]:
    return {job.id for job in scheduler.get_jobs()}


def test_scheduler_jobs_follow_config(tmp_path):
    orchestrator = AsyncMock()
    on = CacheConfig(
        cache_dir=tmp_path,
        background_refresh=True,
        refresh_interval=60,
        image_metadata=ImageMetadataConfig(),
    )
    assert _job_ids(build_scheduler(orchestrator, on)) == {BACKGROUND_REFRESH_JOB_ID, IMAGE_METADATA_PRUNE_JOB_ID}

    refresh_off = CacheConfig(cache_dir=tmp_path, background_refresh=False, image_metadata=None)
    assert _job_ids(build_scheduler(orchestrator, refresh_off)) == set()

    disabled = CacheConfig(enabled=False, cache_dir=tmp_path, background_refresh=True, image_metadata=ImageMetadataConfig())
    assert _job_ids(build_scheduler(orchestrator, disabled)) == set()


@pytest.mark.asyncio
async def test_jobs_never_raise():
    orchestrator = AsyncMock()
    orchestrator.refresh_all.side_effect = RuntimeError("boom")
    await run_background_refresh_job(orchestrator)

    cache = AsyncMock()
    cache.prune_expired.side_effect = RuntimeError("boom")
    await run_image_metadata_prune_job(cache)


@pytest.mark.asyncio
async def test_refresh_job_runs_every_schema():
    orchestrator = AsyncMock()
    orchestrator.refresh_all.return_value = {"post": "ok", "page": "error: down"}
    await run_background_refresh_job(orchestrator)
    orchestrator.refresh_all.assert_awaited_once()
