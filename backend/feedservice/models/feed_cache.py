"""Persisted cache records: item data per schema, rendered content per (schema, format), image metadata per transaction."""
from sqlalchemy import Boolean, Column, Integer, String, Text

from feedservice.db.base import Base
from feedservice.db.tables import FEED_CONTENT_TABLE, FEED_DATA_TABLE, IMAGE_METADATA_TABLE


class FeedDataRecord(Base):
    __tablename__ = FEED_DATA_TABLE

    schema_name = Column(String(128), primary_key=True)
    items_json = Column(Text, nullable=False)  # pre-enrichment items, merge order
    last_processed_timestamp = Column(Integer, nullable=False, default=0)
    saved_at = Column(Integer, nullable=False)


class FeedContentRecord(Base):
    __tablename__ = FEED_CONTENT_TABLE

    schema_name = Column(String(128), primary_key=True)
    format = Column(String(16), primary_key=True)
    content = Column(Text, nullable=False)
    content_type = Column(String(128), nullable=False)
    etag = Column(String(64), nullable=False)
    last_modified = Column(Integer, nullable=False)
    saved_at = Column(Integer, nullable=False)


class ImageMetadataRecord(Base):
    __tablename__ = IMAGE_METADATA_TABLE

    transaction_id = Column(String(128), primary_key=True)
    is_image = Column(Boolean, nullable=False, default=False)
    metadata_json = Column(Text, nullable=False)
    saved_at = Column(Integer, nullable=False)
