"""
ETag generation and If-None-Match matching.

ETags are derived from semantic state (schema, format, watermark/last-modified, sizes),
never from wall-clock randomness, so identical inputs always give identical tags.
"""
import hashlib


def generate_etag(value: str) -> str:
    """Quoted strong ETag: first 16 hex chars of the md5 of value."""
    digest = hashlib.md5(value.encode("utf-8")).hexdigest()
    return f'"{digest[:16]}"'


def content_etag(schema_name: str, fmt: str, last_modified: int, content_length: int) -> str:
    """ETag for rendered feed content: schema, format, last-modified and body length."""
    return generate_etag(f"{schema_name}-{fmt}-{last_modified}-{content_length}")


def _normalize(etag: str) -> str:
    tag = etag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag.strip('"')


def etag_matches(a: str, b: str) -> bool:
    """Compare two ETags ignoring surrounding quotes (and a weak W/ prefix)."""
    return _normalize(a) == _normalize(b)


def parse_if_none_match(header_value: str | None) -> list[str]:
    """Split an If-None-Match header into its (possibly quoted) ETags."""
    if not header_value:
        return []
    return [tag.strip() for tag in header_value.split(",") if tag.strip()]


def check_if_none_match(header_value: str | None, current_etag: str) -> bool:
    """True if the header names current_etag or is the wildcard '*'."""
    tags = parse_if_none_match(header_value)
    if not tags:
        return False
    if "*" in tags:
        return True
    return any(etag_matches(tag, current_etag) for tag in tags)
