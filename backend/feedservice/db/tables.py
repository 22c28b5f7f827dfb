"""
Single source of truth for cache table names. One table per cache namespace; each is
independently prunable and clearable.
"""
FEED_DATA_TABLE = "feed_data"
FEED_CONTENT_TABLE = "feed_content"
IMAGE_METADATA_TABLE = "image_metadata"
