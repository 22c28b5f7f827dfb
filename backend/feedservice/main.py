"""
FastAPI app entrypoint.

Serves RSS / Atom / JSON Feed documents for content collections, cached per schema with
ETag revalidation, stale fallback and optional background refresh.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from feedservice import __version__
from feedservice.api.routes import cache as cache_routes
from feedservice.api.routes import feed as feed_routes
from feedservice.config import Settings, settings as default_settings
from feedservice.core.errors import (
    MSG_INTERNAL_ERROR,
    STATUS_INTERNAL_ERROR,
    FeedServiceError,
    error_body,
    feed_error_response,
)
from feedservice.scheduler.cache_jobs import build_scheduler
from feedservice.services.cache.manager import CacheManager
from feedservice.services.cache.refresh_lock import RefreshLock
from feedservice.services.feed.enricher import ImageEnricher
from feedservice.services.feed.orchestrator import FeedOrchestrator
from feedservice.services.images.detector import ImageDetectionService
from feedservice.services.providers.base import ItemFetcher
from feedservice.services.providers.graphql_provider import GraphQLItemFetcher

logger = logging.getLogger(__name__)

# Dev origins; CORS_ORIGINS env (comma-separated) adds production readers/frontends
_DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _cors_origins(cfg: Settings) -> list[str]:
    origins = list(_DEV_CORS_ORIGINS)
    if cfg.cors_origins:
        origins.extend(o.strip() for o in cfg.cors_origins.split(",") if o.strip())
    return origins


def create_app(
    cfg: Settings | None = None,
    *,
    fetcher: ItemFetcher | None = None,
    cache: CacheManager | None = None,
    detector_transport: httpx.AsyncBaseTransport | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    Wire config -> cache -> fetcher -> enricher -> orchestrator and mount the routes.
    Tests pass their own fetcher/cache (and a mock transport for gateway probes).
    """
    cfg = cfg or default_settings
    cache_config = cfg.cache_config()
    cache = cache or CacheManager(cache_config)
    fetcher = fetcher or GraphQLItemFetcher(cfg.upstream_url, timeout=cfg.upstream_timeout)
    enricher = None
    if cache.config.image_enrichment_enabled:
        detector = ImageDetectionService(cache.config.image_metadata, transport=detector_transport)
        # Own RefreshLock: transaction keys live apart from schema keys
        enricher = ImageEnricher(cache, detector, lock=RefreshLock())

    orchestrator = FeedOrchestrator(
        cache=cache,
        fetcher=fetcher,
        channel=cfg.channel_config(),
        enricher=enricher,
        lock=RefreshLock(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await cache.load()
        scheduler = build_scheduler(orchestrator, cache.config) if start_scheduler else None
        if scheduler is not None:
            scheduler.start()
            app.state.scheduler = scheduler
            logger.info("Scheduler started with jobs: %s", [job.id for job in scheduler.get_jobs()])
        logger.info(
            "Feed service ready (cache %s, ttl=%ss, dir=%s)",
            "enabled" if cache.config.enabled else "disabled",
            cache.ttl,
            cache.config.cache_dir,
        )
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)

    app = FastAPI(title="Feed Cache Service", version=__version__, lifespan=lifespan)
    app.state.cache = cache
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(cfg),
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["ETag", "Last-Modified", "X-Cache", "Warning"],
    )

    @app.exception_handler(FeedServiceError)
    async def feed_service_error_handler(request: Request, exc: FeedServiceError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return feed_error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        label = "Not Found" if exc.status_code == 404 else "HTTP Error"
        return JSONResponse(status_code=exc.status_code, content=error_body(label, str(exc.detail)), headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=STATUS_INTERNAL_ERROR, content=error_body(MSG_INTERNAL_ERROR, str(exc)))

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "cache": await cache.stats()}

    @app.get("/", include_in_schema=False)
    def root():
        return {"message": "Feed Cache Service", "docs": "/docs", "health": "/health"}

    # Admin routes first so /cache/clear is not captured by /{collection}/{format}
    app.include_router(cache_routes.router, prefix="/cache", tags=["cache"])
    app.include_router(feed_routes.router, tags=["feed"])
    return app


app = create_app()
