"""Image detection for gateway-hosted transactions."""
from feedservice.services.images.detector import ImageDetectionService, is_image_content_type, sniff_image
from feedservice.services.images.types import ImageMetadata

__all__ = [
    "ImageDetectionService",
    "ImageMetadata",
    "is_image_content_type",
    "sniff_image",
]
