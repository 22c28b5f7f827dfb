"""GraphQL item source. Posts a feed-items query per schema and normalizes rows to ContentItem."""
import logging
from typing import Any

import httpx

from feedservice.core.errors import UpstreamFetchError
from feedservice.services.providers.types import ContentItem

logger = logging.getLogger(__name__)

FEED_ITEMS_OPERATION = "GetFeedItemsBySchemaName"
FEED_ITEMS_QUERY = """
query GetFeedItemsBySchemaName($schemaName: String!) {
  getFeedItemsBySchemaName(schemaName: $schemaName)
}
""".strip()


def _build_body(schema_name: str) -> dict[str, Any]:
    return {
        "operationName": FEED_ITEMS_OPERATION,
        "query": FEED_ITEMS_QUERY,
        "variables": {"schemaName": schema_name},
    }


def _extract_rows(data: dict[str, Any]) -> list[dict[str, Any]]:
    """GraphQL response is {data: {<key>: [item, ...]}, errors?: [...]}; take the first list under data."""
    errors = data.get("errors") or []
    if errors:
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        raise UpstreamFetchError(f"Upstream GraphQL error: {messages}")
    payload = data.get("data") or {}
    if not isinstance(payload, dict):
        raise UpstreamFetchError("Upstream response has no data object")
    for value in payload.values():
        if isinstance(value, list):
            return value
    return []


def _parse_items(rows: list[Any], schema_name: str) -> list[ContentItem]:
    items: list[ContentItem] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            items.append(ContentItem.from_upstream(row))
        except ValueError as e:
            logger.debug("Skip malformed %s item: %s", schema_name, e)
            continue
    return items


class GraphQLItemFetcher:
    """Async item source over HTTP. One short-lived AsyncClient per fetch."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._headers = headers or {"Content-Type": "application/json"}
        self._transport = transport

    async def fetch_items(self, schema_name: str) -> list[ContentItem]:
        """Fetch every item for schema_name. Raises UpstreamFetchError on any transport/HTTP/GraphQL failure."""
        body = _build_body(schema_name)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=body, headers=self._headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamFetchError(f"Upstream API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Upstream request failed: {e}") from e
        except ValueError as e:
            raise UpstreamFetchError(f"Upstream returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise UpstreamFetchError("Upstream response is not a JSON object")
        items = _parse_items(_extract_rows(data), schema_name)
        logger.debug("Fetched %s items for schema %s", len(items), schema_name)
        return items
