"""
Upstream item sources.
Each source fetches items in its own way but returns the same normalized ContentItem
shape so the cache, merge and render layers stay source-agnostic.
"""
from feedservice.services.providers.base import ItemFetcher
from feedservice.services.providers.graphql_provider import GraphQLItemFetcher
from feedservice.services.providers.types import ContentItem

__all__ = [
    "ContentItem",
    "GraphQLItemFetcher",
    "ItemFetcher",
]
