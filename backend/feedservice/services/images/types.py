"""Image metadata returned by gateway probing and stored in the image-metadata cache."""
from typing import Any

# Serialized keys (camelCase) match what feed items carry in _imageMetadata.
_OPTIONAL_KEYS = (
    ("mime_type", "mimeType"),
    ("width", "width"),
    ("height", "height"),
    ("size", "size"),
    ("format", "format"),
)


class ImageMetadata:
    """Result of probing one transaction id. Negative results (is_image=False) are cached too."""

    __slots__ = ("is_image", "url", "mime_type", "width", "height", "size", "format")

    def __init__(
        self,
        *,
        is_image: bool,
        url: str,
        mime_type: str | None = None,
        width: int | None = None,
        height: int | None = None,
        size: int | None = None,
        format: str | None = None,
    ):
        self.is_image = is_image
        self.url = url
        self.mime_type = mime_type
        self.width = width
        self.height = height
        self.size = size
        self.format = format

    @classmethod
    def not_image(cls, url: str, *, mime_type: str | None = None, size: int | None = None) -> "ImageMetadata":
        return cls(is_image=False, url=url, mime_type=mime_type or None, size=size)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageMetadata":
        kwargs = {attr: data.get(key) for attr, key in _OPTIONAL_KEYS}
        return cls(is_image=bool(data.get("isImage")), url=str(data.get("url") or ""), **kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Omits unset optional fields."""
        out: dict[str, Any] = {"isImage": self.is_image, "url": self.url}
        for attr, key in _OPTIONAL_KEYS:
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageMetadata):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"ImageMetadata({self.to_dict()!r})"
