"""
Centralized error handling for feed generation failures.
Exception types, constants and a reusable helper so routes stay thin and new error
types are easy to add.
"""
from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

# ---------------------------------------------------------------------------
# Constants: status codes and user-facing messages
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_INTERNAL_ERROR = 500

MSG_INVALID_FORMAT = "Invalid feed format"
MSG_FEED_FAILED = "Failed to generate feed"
MSG_INTERNAL_ERROR = "Internal Server Error"


# ---------------------------------------------------------------------------
# Exception taxonomy
# ---------------------------------------------------------------------------


class FeedServiceError(Exception):
    """Base for all errors raised by the feed service."""


class InvalidFormatError(FeedServiceError):
    """Requested format is not one of rss/atom/json. User error, never retried."""

    def __init__(self, fmt: str, allowed: tuple[str, ...]):
        self.format = fmt
        self.allowed = allowed
        super().__init__(f"Format '{fmt}' is not supported. Use one of: {', '.join(allowed)}")


class UpstreamFetchError(FeedServiceError):
    """Item source unreachable or returned an error. Triggers stale-serve fallback."""


class RenderError(FeedServiceError):
    """Feed markup could not be produced. Handled like UpstreamFetchError."""


class CachePersistenceError(FeedServiceError):
    """On-disk cache read/write failed. Absorbed by the cache manager, never surfaced."""


class ImageDetectionError(FeedServiceError):
    """Gateway probe failed (network, timeout, 5xx). Absorbed per gateway and per item."""


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code, error label)
# Add new rules here instead of scattering checks in routes. First match wins.
# ---------------------------------------------------------------------------

FEED_ERROR_RULES: list[tuple[type[Exception], int, str]] = [
    (InvalidFormatError, STATUS_BAD_REQUEST, MSG_INVALID_FORMAT),
    (UpstreamFetchError, STATUS_INTERNAL_ERROR, MSG_FEED_FAILED),
    (RenderError, STATUS_INTERNAL_ERROR, MSG_FEED_FAILED),
]


def error_body(error: str, message: str) -> dict[str, Any]:
    return {"error": error, "message": message}


def feed_error_response(exc: Exception) -> JSONResponse:
    """
    Map an exception from the feed pipeline into a JSON error response {error, message}.
    Uses FEED_ERROR_RULES for known error types; otherwise 500 with the exception message.
    """
    for exc_type, status_code, label in FEED_ERROR_RULES:
        if isinstance(exc, exc_type):
            return JSONResponse(status_code=status_code, content=error_body(label, str(exc)))
    return JSONResponse(status_code=STATUS_INTERNAL_ERROR, content=error_body(MSG_INTERNAL_ERROR, str(exc)))
