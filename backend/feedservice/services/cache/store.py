"""
Persistent store for the feed cache: one SQLite file per cache directory, one table per
namespace. Synchronous; the cache manager calls it from worker threads.

Every method raises CachePersistenceError on any DB failure so the manager can
apply fail-open semantics in one place.
"""
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from feedservice.core.errors import CachePersistenceError
from feedservice.db.session import create_cache_engine, make_session_factory
from feedservice.models.feed_cache import FeedContentRecord, FeedDataRecord, ImageMetadataRecord
from feedservice.services.cache.types import FeedContentEntry, FeedDataEntry, ImageMetadataEntry
from feedservice.services.images.types import ImageMetadata
from feedservice.services.providers.types import ContentItem

logger = logging.getLogger(__name__)


def _json_list_of_objects(raw: str) -> list[dict]:
    value = json.loads(raw)
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValueError("expected a JSON array of objects")
    return value


def _json_object(raw: str) -> dict:
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value


def _data_entry(row: FeedDataRecord) -> FeedDataEntry:
    items = [ContentItem.from_upstream(raw) for raw in _json_list_of_objects(row.items_json)]
    return FeedDataEntry(
        schema_name=row.schema_name,
        items=items,
        last_processed_timestamp=row.last_processed_timestamp,
        saved_at=row.saved_at,
    )


def _content_entry(row: FeedContentRecord) -> FeedContentEntry:
    return FeedContentEntry(
        schema_name=row.schema_name,
        format=row.format,
        content=row.content,
        content_type=row.content_type,
        etag=row.etag,
        last_modified=row.last_modified,
        saved_at=row.saved_at,
    )


def _image_entry(row: ImageMetadataRecord) -> ImageMetadataEntry:
    return ImageMetadataEntry(
        transaction_id=row.transaction_id,
        metadata=ImageMetadata.from_dict(_json_object(row.metadata_json)),
        saved_at=row.saved_at,
    )


class CacheStore:
    """Key/value persistence for the three cache namespaces. Engine is created on first use."""

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)
        self._session_factory: sessionmaker | None = None

    def _factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = make_session_factory(create_cache_engine(self.cache_dir))
        return self._session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """One transaction per call: commit on success, rollback and wrap any failure."""
        try:
            db = self._factory()()
        except (SQLAlchemyError, OSError) as e:
            raise CachePersistenceError(f"Cannot open cache store at {self.cache_dir}: {e}") from e
        try:
            yield db
            db.commit()
        except (SQLAlchemyError, OSError, ValueError, TypeError) as e:
            db.rollback()
            raise CachePersistenceError(str(e)) from e
        finally:
            db.close()

    # --- Load (load-on-start) ---

    def _load(self, model, key: Callable[[Any], Any], decode: Callable[[Any], Any]) -> dict:
        """Decode every row of a table. A row that does not decode is skipped, so its key is a miss."""
        out = {}
        with self._session() as db:
            for row in db.query(model).all():
                try:
                    out[key(row)] = decode(row)
                except (ValueError, TypeError) as e:
                    logger.warning("Skipping unreadable %s row %s: %s", model.__tablename__, key(row), e)
        return out

    def load_feed_data(self) -> dict[str, FeedDataEntry]:
        return self._load(FeedDataRecord, lambda row: row.schema_name, _data_entry)

    def load_feed_content(self) -> dict[tuple[str, str], FeedContentEntry]:
        return self._load(FeedContentRecord, lambda row: (row.schema_name, row.format), _content_entry)

    def load_image_metadata(self) -> dict[str, ImageMetadataEntry]:
        return self._load(ImageMetadataRecord, lambda row: row.transaction_id, _image_entry)

    # --- Write (upsert: one record per key, replaced wholesale) ---

    def save_feed_data(self, entry: FeedDataEntry) -> None:
        items_json = json.dumps([item.to_dict() for item in entry.items])
        with self._session() as db:
            db.merge(
                FeedDataRecord(
                    schema_name=entry.schema_name,
                    items_json=items_json,
                    last_processed_timestamp=entry.last_processed_timestamp,
                    saved_at=entry.saved_at,
                )
            )

    def save_feed_content(self, entry: FeedContentEntry) -> None:
        with self._session() as db:
            db.merge(
                FeedContentRecord(
                    schema_name=entry.schema_name,
                    format=entry.format,
                    content=entry.content,
                    content_type=entry.content_type,
                    etag=entry.etag,
                    last_modified=entry.last_modified,
                    saved_at=entry.saved_at,
                )
            )

    def save_image_metadata(self, entry: ImageMetadataEntry) -> None:
        metadata_json = json.dumps(entry.metadata.to_dict())
        with self._session() as db:
            db.merge(
                ImageMetadataRecord(
                    transaction_id=entry.transaction_id,
                    is_image=entry.metadata.is_image,
                    metadata_json=metadata_json,
                    saved_at=entry.saved_at,
                )
            )

    # --- Delete ---

    def delete_feed(self, schema_name: str) -> dict[str, int]:
        """Delete the schema's item data and its rendered content for every format."""
        with self._session() as db:
            return {
                "feed_data": db.query(FeedDataRecord).filter(FeedDataRecord.schema_name == schema_name).delete(),
                "feed_content": db.query(FeedContentRecord).filter(FeedContentRecord.schema_name == schema_name).delete(),
            }

    def delete_all_feeds(self) -> dict[str, int]:
        with self._session() as db:
            return {
                "feed_data": db.query(FeedDataRecord).delete(),
                "feed_content": db.query(FeedContentRecord).delete(),
            }

    def delete_image_metadata(self, saved_before: int | None = None) -> int:
        """Delete image metadata; only records saved before saved_before when given (pruning)."""
        with self._session() as db:
            q = db.query(ImageMetadataRecord)
            if saved_before is not None:
                q = q.filter(ImageMetadataRecord.saved_at < saved_before)
            return q.delete()
