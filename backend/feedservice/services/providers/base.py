"""Protocol for upstream item sources. All sources return the same normalized ContentItem shape."""
from typing import Protocol

from feedservice.services.providers.types import ContentItem


class ItemFetcher(Protocol):
    """Interface for the upstream item source. Same contract regardless of transport."""

    async def fetch_items(self, schema_name: str) -> list[ContentItem]:
        """
        Fetch the full current item set for a schema (no pagination or time filtering).
        Raises UpstreamFetchError on network/upstream failure.
        """
        ...
