import json

import httpx
import pytest

from feedservice.core.errors import UpstreamFetchError
from feedservice.services.providers.graphql_provider import GraphQLItemFetcher
from feedservice.services.providers.types import ContentItem, item_timestamp


def _fetcher(handler) -> GraphQLItemFetcher:
    return GraphQLItemFetcher("http://upstream.test/graphql", transport=httpx.MockTransport(handler))


def test_item_timestamp_fallbacks():
    assert item_timestamp({"timeCreated": 1700000000}) == 1700000000
    assert item_timestamp({"timeCreated": "1700000000"}) == 1700000000
    assert item_timestamp({"createdAt": "2023-11-14T22:13:20Z"}) == 1700000000
    assert item_timestamp({"publishedAt": "2023-11-14T22:13:20+00:00"}) == 1700000000
    assert item_timestamp({"title": "no time"}) == 0


def test_content_item_requires_id():
    with pytest.raises(ValueError):
        ContentItem.from_upstream({"title": "orphan"})
    item = ContentItem.from_upstream({"id": 7, "timeCreated": 5, "title": "x"})
    assert item.id == "7"
    assert item.to_dict() == {"id": "7", "timeCreated": 5, "title": "x"}


@pytest.mark.asyncio
async def test_fetch_items_posts_query_and_parses_rows():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        rows = [
            {"id": "a", "timeCreated": 100, "title": "A", "storageTransactionId": "tx1"},
            {"title": "no id"},
            "garbage",
            {"id": "b", "createdAt": "2023-11-14T22:13:20Z"},
        ]
        return httpx.Response(200, json={"data": {"getFeedItemsBySchemaName": rows}})

    items = await _fetcher(handler).fetch_items("post")

    assert seen["body"]["variables"] == {"schemaName": "post"}
    assert [i.id for i in items] == ["a", "b"]
    assert items[0].get("storageTransactionId") == "tx1"
    assert items[1].time_created == 1700000000


@pytest.mark.asyncio
async def test_graphql_errors_raise():
    def handler(request):
        return httpx.Response(200, json={"errors": [{"message": "schema not found"}], "data": None})

    with pytest.raises(UpstreamFetchError, match="schema not found"):
        await _fetcher(handler).fetch_items("post")


@pytest.mark.asyncio
async def test_http_error_status_raises():
    with pytest.raises(UpstreamFetchError, match="502"):
        await _fetcher(lambda request: httpx.Response(502)).fetch_items("post")


@pytest.mark.asyncio
async def test_network_failure_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamFetchError):
        await _fetcher(handler).fetch_items("post")


@pytest.mark.asyncio
async def test_invalid_json_raises():
    with pytest.raises(UpstreamFetchError, match="invalid JSON"):
        await _fetcher(lambda request: httpx.Response(200, content=b"<html>")).fetch_items("post")
