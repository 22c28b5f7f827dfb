"""CacheManager: TTL expiry, persistence across instances, merge helpers, invalidation, fail-open."""
import pytest
from sqlalchemy import text

from feedservice.core.errors import CachePersistenceError
from feedservice.db.session import create_cache_engine
from feedservice.services.cache.manager import CacheManager, filter_new_items, merge_items, watermark
from feedservice.services.cache.store import CacheStore
from feedservice.services.images.types import ImageMetadata


class BrokenStore(CacheStore):
    """Store whose database can never be opened."""

    def _factory(self):
        raise CachePersistenceError("disk unavailable")


# ── Pure helpers ────────────────────────────────────────────────


def test_watermark(item_factory):
    assert watermark([]) == 0
    assert watermark([item_factory("a", 5), item_factory("b", 9), item_factory("c", 7)]) == 9


def test_filter_new_items_is_strictly_after_watermark(item_factory):
    all_items = [item_factory("a", 100), item_factory("b", 200), item_factory("c", 300)]
    assert [i.id for i in filter_new_items(all_items, 200)] == ["c"]
    assert filter_new_items(all_items, 300) == []


def test_merge_replaces_by_id_and_appends_unseen(item_factory):
    cached = [item_factory("a", 100), item_factory("b", 200)]
    edited_b = item_factory("b", 250, title="B edited")
    merged = merge_items(cached, [edited_b, item_factory("c", 300)])
    assert [i.id for i in merged] == ["a", "b", "c"]
    assert merged[1].get("title") == "B edited"
    # Input list untouched
    assert cached[1].get("title") == "Post b"


def test_merge_is_idempotent(item_factory):
    cached = [item_factory("a", 100)]
    new = [item_factory("b", 200)]
    once = merge_items(cached, new)
    assert merge_items(once, new) == once


def test_incremental_refresh_scenario(item_factory):
    cached = [item_factory("1", 1000), item_factory("2", 1001)]
    upstream = [*cached, item_factory("3", 2000)]
    new = filter_new_items(upstream, watermark(cached))
    assert [i.id for i in new] == ["3"]
    merged = merge_items(cached, new)
    assert [i.id for i in merged] == ["1", "2", "3"]
    assert merge_items(merged, []) == merged


def test_manager_exposes_merge_helpers(cache, item_factory):
    assert cache.filter_new_items([item_factory("a", 1)], 0)[0].id == "a"
    assert len(cache.merge_items([], [item_factory("a", 1)])) == 1


# ── Feed data ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_feed_data_round_trip_and_watermark(cache, items):
    assert await cache.get_feed_data("post") is None
    entry = await cache.set_feed_data("post", items)
    assert entry.last_processed_timestamp == 200
    got = await cache.get_feed_data("post")
    assert got is not None
    assert [i.id for i in got.items] == ["a", "b"]


@pytest.mark.asyncio
async def test_feed_data_expires_after_ttl(cache, clock, items):
    await cache.set_feed_data("post", items)
    clock.advance(cache.ttl)
    assert await cache.get_feed_data("post") is not None
    clock.advance(1)
    assert await cache.get_feed_data("post") is None
    stale = await cache.get_feed_data("post", ignore_expiry=True)
    assert stale is not None and len(stale.items) == 2


@pytest.mark.asyncio
async def test_entries_survive_a_new_manager_on_the_same_directory(cache_config, clock, items):
    first = CacheManager(cache_config, clock=clock)
    await first.set_feed_data("post", items)
    content = await first.set_feed_content("post", "rss", "<rss/>", "application/rss+xml; charset=utf-8")
    await first.set_image_metadata("tx1", ImageMetadata(is_image=True, url="https://gw/tx1", width=4, height=3))

    second = CacheManager(cache_config, clock=clock)
    data = await second.get_feed_data("post")
    assert data is not None
    assert list(data.items) == items
    assert data.last_processed_timestamp == 200
    stored = await second.get_feed_content("post", "rss")
    assert stored.content == "<rss/>"
    assert stored.etag == content.etag
    image = await second.get_image_metadata("tx1")
    assert image.metadata.width == 4
    assert image.metadata.is_image


# ── Feed content ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_set_feed_content_always_changes_etag(cache):
    first = await cache.set_feed_content("post", "rss", "<rss/>", "application/rss+xml")
    # Same clock reading, same body: still a new last_modified and etag
    second = await cache.set_feed_content("post", "rss", "<rss/>", "application/rss+xml")
    assert second.last_modified == first.last_modified + 1
    assert second.etag != first.etag


@pytest.mark.asyncio
async def test_feed_content_is_keyed_per_format(cache):
    await cache.set_feed_content("post", "rss", "<rss/>", "application/rss+xml")
    assert await cache.get_feed_content("post", "atom") is None
    assert (await cache.get_feed_content("post", "rss")).content == "<rss/>"


# ── Invalidation ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_clear_feed_data_drops_data_and_every_format(cache_config, clock, cache, items):
    await cache.set_feed_data("post", items)
    await cache.set_feed_content("post", "rss", "<rss/>", "application/rss+xml")
    await cache.set_feed_content("post", "json", "{}", "application/feed+json")
    await cache.set_feed_data("page", items)

    await cache.clear_feed_data("post")

    assert await cache.get_feed_data("post") is None
    assert await cache.get_feed_content("post", "rss") is None
    assert await cache.get_feed_content("post", "json") is None
    assert await cache.get_feed_data("page") is not None
    reloaded = CacheManager(cache_config, clock=clock)
    assert await reloaded.known_schemas() == ["page"]


@pytest.mark.asyncio
async def test_clear_all_keeps_image_metadata(cache, items):
    await cache.set_feed_data("post", items)
    await cache.set_image_metadata("tx1", ImageMetadata.not_image("https://gw/tx1"))
    await cache.clear_all()
    assert await cache.stats() == {"feed_data": 0, "feed_content": 0, "image_metadata": 1}
    await cache.clear_image_metadata()
    assert await cache.get_image_metadata("tx1") is None


# ── Image metadata ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_image_metadata_uses_its_own_ttl(image_cache_config, clock):
    cache = CacheManager(image_cache_config, clock=clock)
    await cache.set_image_metadata("tx1", ImageMetadata.not_image("https://gw/tx1", mime_type="text/plain"))
    clock.advance(cache.ttl + 1)
    cached = await cache.get_image_metadata("tx1")
    assert cached is not None and cached.metadata.mime_type == "text/plain"
    clock.advance(cache.image_metadata_ttl)
    assert await cache.get_image_metadata("tx1") is None


@pytest.mark.asyncio
async def test_prune_expired_removes_only_old_image_metadata(image_cache_config, clock):
    cache = CacheManager(image_cache_config, clock=clock)
    await cache.set_image_metadata("old", ImageMetadata.not_image("https://gw/old"))
    clock.advance(cache.image_metadata_ttl + 1)
    await cache.set_image_metadata("new", ImageMetadata.not_image("https://gw/new"))

    assert await cache.prune_expired() == 1
    assert (await cache.stats())["image_metadata"] == 1

    reloaded = CacheManager(image_cache_config, clock=clock)
    assert await reloaded.get_image_metadata("new") is not None
    assert (await reloaded.stats())["image_metadata"] == 1


# ── Fail-open persistence ───────────────────────────────────────


@pytest.mark.asyncio
async def test_unreadable_store_behaves_as_empty_cache(cache_config, clock, items):
    cache = CacheManager(cache_config, store=BrokenStore(cache_config.cache_dir), clock=clock)
    assert await cache.get_feed_data("post") is None
    # Writes fail on disk but the in-memory entry still serves this process
    await cache.set_feed_data("post", items)
    assert (await cache.get_feed_data("post")).last_processed_timestamp == 200
    await cache.clear_feed_data("post")
    assert await cache.get_feed_data("post") is None


@pytest.mark.asyncio
async def test_corrupt_rows_are_skipped_on_load(cache_config, clock, items):
    first = CacheManager(cache_config, clock=clock)
    await first.set_feed_data("post", items)
    await first.set_feed_data("page", items)
    await first.set_image_metadata("tx1", ImageMetadata.not_image("https://gw/tx1"))
    with create_cache_engine(cache_config.cache_dir).begin() as conn:
        conn.execute(text("UPDATE feed_data SET items_json = '[1]' WHERE schema_name = 'post'"))
        conn.execute(text("UPDATE image_metadata SET metadata_json = 'null'"))

    second = CacheManager(cache_config, clock=clock)

    assert await second.get_feed_data("post") is None
    assert await second.get_image_metadata("tx1") is None
    page = await second.get_feed_data("page")
    assert [i.id for i in page.items] == ["a", "b"]
