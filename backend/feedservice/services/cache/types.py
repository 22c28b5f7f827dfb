"""Cache entry types. Entries are replaced wholesale, never mutated in place."""
from feedservice.services.images.types import ImageMetadata
from feedservice.services.providers.types import ContentItem


def is_expired(saved_at: int, ttl: int, now: int) -> bool:
    """Shared TTL rule for every namespace: expired when now - saved_at > ttl."""
    return now - saved_at > ttl


class FeedDataEntry:
    """Raw items for one schema plus the watermark (max time_created seen)."""

    __slots__ = ("schema_name", "items", "last_processed_timestamp", "saved_at")

    def __init__(self, *, schema_name: str, items: list[ContentItem], last_processed_timestamp: int, saved_at: int):
        self.schema_name = schema_name
        self.items = tuple(items)
        self.last_processed_timestamp = last_processed_timestamp
        self.saved_at = saved_at

    def is_expired(self, ttl: int, now: int) -> bool:
        return is_expired(self.saved_at, ttl, now)


class FeedContentEntry:
    """Rendered body for one (schema, format); etag always matches content."""

    __slots__ = ("schema_name", "format", "content", "content_type", "etag", "last_modified", "saved_at")

    def __init__(
        self,
        *,
        schema_name: str,
        format: str,
        content: str,
        content_type: str,
        etag: str,
        last_modified: int,
        saved_at: int,
    ):
        self.schema_name = schema_name
        self.format = format
        self.content = content
        self.content_type = content_type
        self.etag = etag
        self.last_modified = last_modified
        self.saved_at = saved_at

    def is_expired(self, ttl: int, now: int) -> bool:
        return is_expired(self.saved_at, ttl, now)


class ImageMetadataEntry:
    __slots__ = ("transaction_id", "metadata", "saved_at")

    def __init__(self, *, transaction_id: str, metadata: ImageMetadata, saved_at: int):
        self.transaction_id = transaction_id
        self.metadata = metadata
        self.saved_at = saved_at

    def is_expired(self, ttl: int, now: int) -> bool:
        return is_expired(self.saved_at, ttl, now)
