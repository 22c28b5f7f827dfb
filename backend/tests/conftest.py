"""Shared fixtures: isolated cache directories, a controllable clock and item builders."""
from unittest.mock import AsyncMock

import pytest

from feedservice.config import CacheConfig, ChannelConfig, ImageMetadataConfig
from feedservice.services.cache.manager import CacheManager
from feedservice.services.providers.types import ContentItem


class FakeClock:
    """Callable clock (unix seconds) that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_item(item_id: str, time_created: int, **fields) -> ContentItem:
    raw = {"id": item_id, "timeCreated": time_created, "title": f"Post {item_id}", **fields}
    return ContentItem.from_upstream(raw)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_config(tmp_path) -> CacheConfig:
    return CacheConfig(ttl=3600, cache_dir=tmp_path / "cache", image_metadata=None)


@pytest.fixture
def image_cache_config(tmp_path) -> CacheConfig:
    return CacheConfig(
        ttl=3600,
        cache_dir=tmp_path / "cache",
        image_metadata=ImageMetadataConfig(ttl=604800, gateways=["gw1.test", "gw2.test"], timeout_ms=1000),
    )


@pytest.fixture
def cache(cache_config, clock) -> CacheManager:
    return CacheManager(cache_config, clock=clock)


@pytest.fixture
def channel() -> ChannelConfig:
    return ChannelConfig(
        title="Seed Protocol",
        description="Content published via Seed Protocol",
        site_url="https://seedprotocol.io",
        feed_url="https://feed.seedprotocol.io",
        author_name="Seed Protocol",
        author_email="info@seedprotocol.io",
    )


@pytest.fixture
def items() -> list[ContentItem]:
    return [make_item("a", 100, summary="first"), make_item("b", 200, summary="second")]


@pytest.fixture
def fetcher(items) -> AsyncMock:
    mock = AsyncMock()
    mock.fetch_items.return_value = items
    return mock


@pytest.fixture
def item_factory():
    return make_item
