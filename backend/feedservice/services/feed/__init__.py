"""
Feed serving: request orchestration (cache state machine), image enrichment and rendering.
"""
from feedservice.services.feed.enricher import ImageEnricher
from feedservice.services.feed.orchestrator import FeedOrchestrator, FeedResponse, FeedState, schema_name_for
from feedservice.services.feed.renderer import CONTENT_TYPES, render_feed

__all__ = [
    "CONTENT_TYPES",
    "FeedOrchestrator",
    "FeedResponse",
    "FeedState",
    "ImageEnricher",
    "render_feed",
    "schema_name_for",
]
