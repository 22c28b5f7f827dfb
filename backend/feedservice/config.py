"""
Application settings (Pydantic Settings).

Settings is read once by the app factory; components get plain config objects
built from it (CacheConfig, ImageMetadataConfig, ChannelConfig) so tests can
construct isolated instances without touching the environment.
"""
from datetime import datetime
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

from feedservice.core.constants import DEFAULT_IMAGE_GATEWAYS

# .env next to backend/ (parent of feedservice/)
_env_path = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    cache_enabled: bool = True
    cache_ttl: int = 3600  # seconds; feed data and rendered content
    cache_dir: str = "./cache"
    cache_background_refresh: bool = False
    cache_refresh_interval: int = 300

    image_metadata_enabled: bool = True
    image_metadata_ttl: int = 604800  # 7 days
    # IMAGE_GATEWAYS in .env: comma-separated hosts, highest priority first
    image_gateways: str = ",".join(DEFAULT_IMAGE_GATEWAYS)
    image_timeout_ms: int = 5000

    upstream_url: str = "http://localhost:3000/graphql"
    upstream_timeout: float = 30.0

    feed_title: str = "Seed Protocol"
    feed_description: str = "Content published via Seed Protocol"
    feed_site_url: str = "https://seedprotocol.io"
    feed_url: str = "https://feed.seedprotocol.io"
    feed_language: str = "en"
    feed_author_name: str = "Seed Protocol"
    feed_author_email: str = "info@seedprotocol.io"

    cors_origins: str = ""
    log_level: str = "INFO"

    class Config:
        env_file = _env_path
        extra = "ignore"

    @field_validator("cache_ttl", "cache_refresh_interval", "image_metadata_ttl", "image_timeout_ms", mode="after")
    @classmethod
    def non_negative(cls, v: int) -> int:
        return max(v, 0)

    @field_validator("feed_site_url", "feed_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    def gateway_list(self) -> list[str]:
        hosts = [h.strip() for h in self.image_gateways.split(",") if h.strip()]
        return hosts or list(DEFAULT_IMAGE_GATEWAYS)

    def cache_config(self) -> "CacheConfig":
        return CacheConfig(
            enabled=self.cache_enabled,
            ttl=self.cache_ttl,
            cache_dir=self.cache_dir,
            background_refresh=self.cache_background_refresh,
            refresh_interval=self.cache_refresh_interval,
            image_metadata=ImageMetadataConfig(
                enabled=self.image_metadata_enabled,
                ttl=self.image_metadata_ttl,
                gateways=self.gateway_list(),
                timeout_ms=self.image_timeout_ms,
            ),
        )

    def channel_config(self) -> "ChannelConfig":
        return ChannelConfig(
            title=self.feed_title,
            description=self.feed_description,
            site_url=self.feed_site_url,
            feed_url=self.feed_url,
            language=self.feed_language,
            author_name=self.feed_author_name,
            author_email=self.feed_author_email or None,
        )


class ImageMetadataConfig:
    """Gateway probing and image-metadata cache settings."""

    __slots__ = ("enabled", "ttl", "gateways", "timeout_ms")

    def __init__(
        self,
        *,
        enabled: bool = True,
        ttl: int = 604800,
        gateways: list[str] | None = None,
        timeout_ms: int = 5000,
    ) -> None:
        self.enabled = enabled
        self.ttl = ttl
        self.gateways = list(gateways) if gateways else list(DEFAULT_IMAGE_GATEWAYS)
        self.timeout_ms = timeout_ms

    @property
    def timeout_seconds(self) -> float | None:
        # 0 disables the per-call timeout
        return self.timeout_ms / 1000.0 if self.timeout_ms > 0 else None


class CacheConfig:
    """Feed cache settings. image_metadata=None disables enrichment entirely."""

    __slots__ = ("enabled", "ttl", "cache_dir", "background_refresh", "refresh_interval", "image_metadata")

    def __init__(
        self,
        *,
        enabled: bool = True,
        ttl: int = 3600,
        cache_dir: str | Path = "./cache",
        background_refresh: bool = False,
        refresh_interval: int = 300,
        image_metadata: ImageMetadataConfig | None = None,
    ) -> None:
        self.enabled = enabled
        self.ttl = ttl
        self.cache_dir = Path(cache_dir)
        self.background_refresh = background_refresh
        self.refresh_interval = refresh_interval
        self.image_metadata = image_metadata

    @property
    def image_enrichment_enabled(self) -> bool:
        return self.image_metadata is not None and self.image_metadata.enabled


class ChannelConfig:
    """Channel-level metadata handed to the feed renderer."""

    __slots__ = ("title", "description", "site_url", "feed_url", "language", "copyright", "author_name", "author_email")

    def __init__(
        self,
        *,
        title: str,
        description: str,
        site_url: str,
        feed_url: str,
        language: str = "en",
        copyright: str | None = None,
        author_name: str | None = None,
        author_email: str | None = None,
    ) -> None:
        self.title = title
        self.description = description
        self.site_url = site_url.rstrip("/")
        self.feed_url = feed_url.rstrip("/")
        self.language = language
        self.copyright = copyright or f"© {datetime.now().year} All rights reserved"
        self.author_name = author_name
        self.author_email = author_email


settings = Settings()
