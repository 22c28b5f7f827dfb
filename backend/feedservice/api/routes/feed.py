"""
Feed API: GET /{collection}/{format} with ETag conditional requests.

Cache-busting params (v, _t, timestamp, cb; first present wins) only change the self URL
embedded in a freshly rendered feed, never the cache key.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse

from feedservice.core.constants import CACHE_BUST_PARAMS
from feedservice.services.feed.orchestrator import FeedOrchestrator, FeedResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> FeedOrchestrator:
    return request.app.state.orchestrator


def _cache_bust(request: Request) -> str | None:
    for name in CACHE_BUST_PARAMS:
        values = request.query_params.getlist(name)
        if values:
            return values[0]
    return None


def to_http_response(result: FeedResponse) -> Response:
    if result.status == 304:
        return Response(status_code=304, headers=result.headers)
    if result.is_json_error:
        return JSONResponse(status_code=result.status, content=result.body, headers=result.headers)
    headers = dict(result.headers)
    media_type = headers.pop("Content-Type", None)
    return Response(content=result.body or "", status_code=result.status, headers=headers, media_type=media_type)


@router.get("/{collection}/{format}")
async def get_feed(
    collection: str,
    format: str,
    request: Request,
    if_none_match: str | None = Header(None, alias="If-None-Match"),
    orchestrator: FeedOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Serve a feed for a collection (schema) as rss, atom or json."""
    result = await orchestrator.handle(collection, format, if_none_match=if_none_match, cache_bust=_cache_bust(request))
    logger.info("GET /%s/%s -> %s (%s)", collection, format, result.status, result.state.value)
    return to_http_response(result)
