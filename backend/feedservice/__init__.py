"""Syndication feed service with a two-tier on-disk cache and single-flight refresh."""

__version__ = "0.1.0"
