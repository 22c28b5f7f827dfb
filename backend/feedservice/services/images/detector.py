"""
Image detection for content-gateway transaction ids.

For each gateway in priority order: HEAD to read Content-Type cheaply; non-images stop
there. Images get a ranged GET of the first few KB (full GET if the range is refused) and
width/height/format are sniffed from the header bytes. The first gateway to give a
definitive answer wins, including "not an image"; only network errors, timeouts and 5xx
answers move on to the next gateway. Never raises.
"""
import asyncio
import logging

import httpx
from PIL import Image, ImageFile

from feedservice.config import ImageMetadataConfig
from feedservice.core.constants import DEFAULT_IMAGE_GATEWAYS, IMAGE_RANGE_BYTES
from feedservice.core.errors import ImageDetectionError
from feedservice.services.images.types import ImageMetadata

logger = logging.getLogger(__name__)

_MIME_FORMATS = {
    "jpeg": "jpeg",
    "jpg": "jpeg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "svg+xml": "svg",
}


def gateway_url(gateway: str, transaction_id: str) -> str:
    return f"https://{gateway.strip().rstrip('/')}/{transaction_id}"


def _mime(content_type: str | None) -> str:
    return (content_type or "").lower().split(";")[0].strip()


def is_image_content_type(content_type: str | None) -> bool:
    return _mime(content_type).startswith("image/")


def _int_header(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def sniff_image(data: bytes) -> tuple[int, int, str | None]:
    """(width, height, format) from leading image bytes; (0, 0, None) when the header can't be parsed."""
    parser = ImageFile.Parser()
    try:
        parser.feed(data)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        # Header may be parsed even when decoding the truncated body fails
        logger.debug("Image sniff stopped early: %s", e)
    image = parser.image
    if image is None:
        return 0, 0, None
    width, height = image.size
    return width, height, (image.format or "").lower() or None


def image_format(content_type: str | None, sniffed: str | None) -> str | None:
    """Format from the MIME subtype (normalized), else what Pillow detected."""
    mime = _mime(content_type)
    if mime.startswith("image/"):
        subtype = mime[len("image/"):]
        if subtype:
            return _MIME_FORMATS.get(subtype, subtype)
    return sniffed


class ImageDetectionService:
    """Probes gateways over one AsyncClient per detection. Per-call timeout is enforced by cancellation."""

    def __init__(self, config: ImageMetadataConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    @property
    def gateways(self) -> list[str]:
        return list(self._config.gateways) or list(DEFAULT_IMAGE_GATEWAYS)

    async def detect_image(self, transaction_id: str) -> ImageMetadata:
        gateways = self.gateways
        timeout = self._config.timeout_seconds
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport, follow_redirects=True) as client:
            for gateway in gateways:
                url = gateway_url(gateway, transaction_id)
                try:
                    return await self._probe(client, url)
                except ImageDetectionError as e:
                    logger.warning("Gateway %s failed for transaction %s: %s", gateway, transaction_id, e)
                    continue
        logger.warning("All gateways failed for transaction %s", transaction_id)
        return ImageMetadata.not_image(gateway_url(gateways[0], transaction_id))

    async def _probe(self, client: httpx.AsyncClient, url: str) -> ImageMetadata:
        head = await self._call(client.head(url), url)
        self._raise_for_gateway_fault(head, url)
        if not head.is_success:
            return ImageMetadata.not_image(url)
        content_type = head.headers.get("content-type", "")
        content_length = _int_header(head.headers.get("content-length"))
        if not is_image_content_type(content_type):
            return ImageMetadata.not_image(url, mime_type=content_type, size=content_length)

        status, data = await self._call(self._read_range(client, url), url)
        if status is not None and status >= 500:
            raise ImageDetectionError(f"{url} returned {status} for ranged GET")
        if data is None:
            # Range refused; some gateways only serve whole objects
            full = await self._call(client.get(url), url)
            self._raise_for_gateway_fault(full, url)
            if not full.is_success:
                return ImageMetadata.not_image(url, mime_type=content_type, size=content_length)
            data = full.content
            content_length = len(data)

        width, height, sniffed = sniff_image(data)
        return ImageMetadata(
            is_image=True,
            url=url,
            mime_type=content_type,
            width=width,
            height=height,
            size=content_length,
            format=image_format(content_type, sniffed),
        )

    async def _read_range(self, client: httpx.AsyncClient, url: str) -> tuple[int, bytes | None]:
        """Stream at most IMAGE_RANGE_BYTES; (status, None) when the server rejects the range."""
        headers = {"Range": f"bytes=0-{IMAGE_RANGE_BYTES - 1}"}
        async with client.stream("GET", url, headers=headers) as resp:
            if not resp.is_success:
                return resp.status_code, None
            buf = bytearray()
            async for chunk in resp.aiter_bytes():
                buf.extend(chunk)
                if len(buf) >= IMAGE_RANGE_BYTES:
                    break
            return resp.status_code, bytes(buf[:IMAGE_RANGE_BYTES])

    async def _call(self, coro, url: str):
        """Await one outbound call under the configured timeout; network failures become ImageDetectionError."""
        try:
            return await asyncio.wait_for(coro, timeout=self._config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ImageDetectionError(f"Request to {url} timed out after {self._config.timeout_ms}ms") from e
        except httpx.TimeoutException as e:
            raise ImageDetectionError(f"Request to {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ImageDetectionError(f"Request to {url} failed: {e}") from e

    @staticmethod
    def _raise_for_gateway_fault(resp: httpx.Response, url: str) -> None:
        if resp.status_code >= 500:
            raise ImageDetectionError(f"{url} returned {resp.status_code}")

