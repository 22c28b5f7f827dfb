"""Normalized item type for the upstream item source. Same shape regardless of where items come from."""
from datetime import datetime, timezone
from typing import Any

# Upstream payload is a dict that must include at least:
#   - id: str                 (unique within a schema)
#   - timeCreated: int        (unix seconds; merge/ordering key)
# Fallbacks for timeCreated: createdAt, publishedAt (ISO-8601). Everything else passes through
# to the renderer untouched (title, summary, html, authors, featureImage, storageTransactionId, ...).

_TIME_FALLBACK_FIELDS = ("createdAt", "publishedAt")


def _parse_timestamp(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(float(text))
        except ValueError:
            pass
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())
    return None


def item_timestamp(raw: dict[str, Any]) -> int:
    """Creation time in unix seconds: timeCreated, else createdAt/publishedAt, else 0."""
    ts = _parse_timestamp(raw.get("timeCreated"))
    if ts is not None:
        return ts
    for field in _TIME_FALLBACK_FIELDS:
        ts = _parse_timestamp(raw.get(field))
        if ts is not None:
            return ts
    return 0


class ContentItem:
    """One upstream content item: typed id + time_created, all other fields kept in `fields`."""

    __slots__ = ("id", "time_created", "fields")

    def __init__(self, *, id: str, time_created: int, fields: dict[str, Any] | None = None):
        self.id = id
        self.time_created = time_created
        self.fields = dict(fields or {})

    @classmethod
    def from_upstream(cls, raw: dict[str, Any]) -> "ContentItem":
        """Build from an upstream (or persisted) dict. Raises ValueError when id is missing."""
        item_id = raw.get("id")
        if item_id is None or item_id == "":
            raise ValueError("content item has no id")
        return cls(id=str(item_id), time_created=item_timestamp(raw), fields=raw)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Pass-through dict for persistence and rendering; id/timeCreated always normalized."""
        out = dict(self.fields)
        out["id"] = self.id
        out["timeCreated"] = self.time_created
        return out

    def with_fields(self, **extra: Any) -> "ContentItem":
        """Copy with extra fields attached (used for render-only enrichment)."""
        return ContentItem(id=self.id, time_created=self.time_created, fields={**self.fields, **extra})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContentItem):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ContentItem(id={self.id!r}, time_created={self.time_created})"
