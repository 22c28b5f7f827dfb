"""HTTP surface through FastAPI's TestClient: feed route, conditional GET, admin cache routes, health."""
import pytest
from fastapi.testclient import TestClient

from feedservice.config import Settings
from feedservice.main import create_app


@pytest.fixture
def client(tmp_path, fetcher):
    cfg = Settings(
        cache_dir=str(tmp_path / "cache"),
        cache_ttl=3600,
        cache_background_refresh=False,
        image_metadata_enabled=False,
        feed_url="https://feed.seedprotocol.io/",
    )
    app = create_app(cfg, fetcher=fetcher, start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


def test_get_feed_miss_then_hit(client, fetcher):
    first = client.get("/posts/rss")
    assert first.status_code == 200
    assert first.headers["content-type"].startswith("application/rss+xml")
    assert first.headers["x-cache"] == "MISS"
    assert first.headers["etag"]
    assert first.text.startswith("<?xml")

    second = client.get("/posts/rss")
    assert second.headers["x-cache"] == "HIT"
    assert second.text == first.text
    assert fetcher.fetch_items.await_count == 1


def test_conditional_get_returns_304(client):
    etag = client.get("/posts/json").headers["etag"]

    resp = client.get("/posts/json", headers={"If-None-Match": etag})

    assert resp.status_code == 304
    assert resp.content == b""
    assert resp.headers["etag"] == etag


def test_invalid_format_is_json_400(client, fetcher):
    resp = client.get("/posts/xml")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid feed format"
    fetcher.fetch_items.assert_not_awaited()


def test_upstream_failure_without_cache_is_json_500(client, fetcher):
    fetcher.fetch_items.side_effect = RuntimeError("upstream exploded")
    resp = client.get("/posts/atom")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to generate feed", "message": "Failed to fetch items for post: upstream exploded"}


def test_cache_bust_param_is_embedded_not_keyed(client, fetcher):
    first = client.get("/posts/rss", params={"_t": "999", "cb": "ignored"})
    assert "https://feed.seedprotocol.io/posts/rss?v=999" in first.text

    second = client.get("/posts/rss", params={"v": "1000"})
    assert second.headers["x-cache"] == "HIT"
    assert fetcher.fetch_items.await_count == 1


def test_clear_collection_forces_refetch(client, fetcher):
    client.get("/posts/rss")
    resp = client.post("/cache/clear/posts")
    assert resp.status_code == 200
    assert resp.json() == {"cleared": "post"}

    again = client.get("/posts/rss")
    assert again.headers["x-cache"] == "MISS"
    assert fetcher.fetch_items.await_count == 2


def test_clear_all_and_stats(client):
    client.get("/posts/rss")
    client.get("/pages/json")
    assert client.get("/cache/stats").json()["entries"]["feed_data"] == 2

    assert client.post("/cache/clear").json()["cleared"] == "all"
    assert client.get("/cache/stats").json()["entries"] == {"feed_data": 0, "feed_content": 0, "image_metadata": 0}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert set(body["cache"]) == {"feed_data", "feed_content", "image_metadata"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/a/b/c")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not Found", "message": "Not Found"}


def test_image_enricher_has_its_own_refresh_lock(tmp_path, fetcher):
    cfg = Settings(
        cache_dir=str(tmp_path / "cache"),
        cache_background_refresh=False,
        image_metadata_enabled=True,
        feed_url="https://feed.seedprotocol.io/",
    )
    orchestrator = create_app(cfg, fetcher=fetcher, start_scheduler=False).state.orchestrator

    assert orchestrator.enricher is not None
    assert orchestrator.enricher.lock is not orchestrator.lock
