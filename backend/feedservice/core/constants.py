"""
Centralized constants for feeds, cache and scheduler (Encapsulate What Changes).

Change job IDs, formats or probe sizes here instead of scattering literals across
routes and services. Tunables that vary per deployment live in feedservice.config.
"""

# Feed formats served at GET /{collection}/{format}
FEED_FORMATS = ("rss", "atom", "json")

# Cache-busting query params; first present wins. Only embedded in the self URL, never in cache keys.
CACHE_BUST_PARAMS = ("v", "_t", "timestamp", "cb")

# X-Cache header values
CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
CACHE_STALE = "STALE"

STALE_WARNING = '110 - "Response is stale"'

# Scheduler job IDs (used by scheduler/cache_jobs.py add_job)
BACKGROUND_REFRESH_JOB_ID = "feed_background_refresh"
IMAGE_METADATA_PRUNE_JOB_ID = "image_metadata_prune"
IMAGE_METADATA_PRUNE_INTERVAL_SECONDS = 6 * 3600

# On-disk cache (SQLite under CACHE_DIR)
CACHE_DB_FILENAME = "feed_cache.sqlite3"

# Image probing: gateways tried in order; first 8KB is enough for most image headers
DEFAULT_IMAGE_GATEWAYS = ("arweave.net", "ar-io.net")
IMAGE_RANGE_BYTES = 8192

# Upstream item fields carrying the storage transaction id used for image detection
IMAGE_TRANSACTION_FIELDS = ("storageTransactionId", "imageTransactionId")

# Enrichment annotations attached to rendered items only (never persisted)
IMAGE_METADATA_FIELD = "_imageMetadata"
HAS_IMAGE_FIELD = "_hasImage"
