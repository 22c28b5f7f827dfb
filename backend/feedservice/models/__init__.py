from feedservice.models.feed_cache import FeedContentRecord, FeedDataRecord, ImageMetadataRecord

__all__ = ["FeedContentRecord", "FeedDataRecord", "ImageMetadataRecord"]
