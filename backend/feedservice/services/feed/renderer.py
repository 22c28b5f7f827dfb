"""
Feed markup: RSS 2.0, Atom 1.0 and JSON Feed 1.1 from normalized items + channel metadata.

Pure functions, no I/O. Item fields follow the upstream GraphQL shape (title, summary, html,
authors, featureImage, createdAt/updatedAt); image enrichment (_imageMetadata) adds
enclosures/media elements when the transaction resolved to an image.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Sequence
from xml.sax.saxutils import escape, quoteattr

from feedservice.config import ChannelConfig
from feedservice.core.constants import FEED_FORMATS, IMAGE_METADATA_FIELD
from feedservice.core.errors import InvalidFormatError
from feedservice.services.providers.types import ContentItem, item_timestamp

CONTENT_TYPES = {
    "rss": "application/rss+xml; charset=utf-8",
    "atom": "application/atom+xml; charset=utf-8",
    "json": "application/feed+json; charset=utf-8",
}

JSON_FEED_VERSION = "https://jsonfeed.org/version/1.1"
MEDIA_NS = "http://search.yahoo.com/mrss/"


def _cdata(s: str) -> str:
    # Split CDATA safely if ']]>' appears in the text
    s = s.replace("]]>", "]]]]><![CDATA[>")
    return f"<![CDATA[{s}]]>"


def _dt(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _iso(ts: int) -> str:
    return _dt(ts).isoformat().replace("+00:00", "Z")


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class FeedEntry:
    """Render-ready view of one ContentItem."""

    __slots__ = ("id", "title", "link", "summary", "html", "published", "updated", "authors", "image")

    def __init__(self, item: ContentItem, link: str):
        self.id = item.id
        self.title = _text(item.get("title")) or item.id
        self.link = _text(item.get("link")) or _text(item.get("url")) or link
        self.summary = _text(item.get("summary"))
        self.html = _text(item.get("html"))
        self.published = item.time_created
        updated = item.get("updatedAt")
        self.updated = item_timestamp({"timeCreated": updated}) if updated else item.time_created
        self.authors = self._authors(item.get("authors"))
        self.image = self._image(item)

    @staticmethod
    def _authors(raw: Any) -> list[dict[str, str]]:
        out = []
        for a in raw or []:
            if not isinstance(a, dict):
                continue
            name = _text(a.get("displayName")) or _text(a.get("name"))
            if name:
                out.append({"name": name, "url": _text(a.get("profile"))})
        return out

    @staticmethod
    def _image(item: ContentItem) -> dict[str, Any] | None:
        """Detected image (enrichment) wins over the item's own featureImage."""
        meta = item.get(IMAGE_METADATA_FIELD)
        if isinstance(meta, dict) and meta.get("isImage") and meta.get("url"):
            return {
                "url": meta["url"],
                "type": meta.get("mimeType"),
                "length": meta.get("size"),
                "width": meta.get("width") or None,
                "height": meta.get("height") or None,
            }
        feature = item.get("featureImage")
        if isinstance(feature, dict) and _text(feature.get("src")):
            return {"url": _text(feature["src"]), "alt": _text(feature.get("alt"))}
        return None


def _entries(items: Sequence[ContentItem], channel: ChannelConfig, schema_name: str) -> list[FeedEntry]:
    return [FeedEntry(item, f"{channel.site_url}/{schema_name}/{item.id}") for item in items]


def _updated(entries: list[FeedEntry]) -> int:
    return max((e.updated for e in entries), default=0) or int(datetime.now(timezone.utc).timestamp())


def render_rss(channel: ChannelConfig, entries: list[FeedEntry], self_url: str) -> str:
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom" xmlns:media="{MEDIA_NS}" '
        'xmlns:content="http://purl.org/rss/1.0/modules/content/">',
        "<channel>",
        f"<title>{escape(channel.title)}</title>",
        f"<link>{escape(channel.site_url)}</link>",
        f"<description>{escape(channel.description)}</description>",
        f"<language>{escape(channel.language)}</language>",
        f"<copyright>{escape(channel.copyright)}</copyright>",
        f"<lastBuildDate>{format_datetime(_dt(_updated(entries)))}</lastBuildDate>",
        f"<atom:link href={quoteattr(self_url)} rel=\"self\" type=\"application/rss+xml\"/>",
    ]
    for e in entries:
        parts.append("<item>")
        parts.append(f"<title>{escape(e.title)}</title>")
        parts.append(f"<link>{escape(e.link)}</link>")
        parts.append(f'<guid isPermaLink="false">{escape(e.id)}</guid>')
        parts.append(f"<pubDate>{format_datetime(_dt(e.published))}</pubDate>")
        if e.summary:
            parts.append(f"<description>{_cdata(e.summary)}</description>")
        if e.html:
            parts.append(f"<content:encoded>{_cdata(e.html)}</content:encoded>")
        for a in e.authors:
            parts.append(f"<author>{escape(a['name'])}</author>")
        if e.image:
            img = e.image
            if img.get("type"):
                parts.append(
                    f"<enclosure url={quoteattr(img['url'])} type={quoteattr(img['type'])} "
                    f"length=\"{int(img.get('length') or 0)}\"/>"
                )
            dims = "".join(
                f' {k}="{int(img[k])}"' for k in ("width", "height") if img.get(k)
            )
            parts.append(f'<media:content url={quoteattr(img["url"])} medium="image"{dims}/>')
        parts.append("</item>")
    parts.append("</channel>")
    parts.append("</rss>")
    return "\n".join(parts)


def render_atom(channel: ChannelConfig, entries: list[FeedEntry], self_url: str) -> str:
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<feed xmlns="http://www.w3.org/2005/Atom" xml:lang={quoteattr(channel.language)}>',
        f"<id>{escape(self_url)}</id>",
        f"<title>{escape(channel.title)}</title>",
        f"<subtitle>{escape(channel.description)}</subtitle>",
        f"<updated>{_iso(_updated(entries))}</updated>",
        f'<link rel="alternate" href={quoteattr(channel.site_url)}/>',
        f'<link rel="self" href={quoteattr(self_url)}/>',
        f"<rights>{escape(channel.copyright)}</rights>",
    ]
    if channel.author_name:
        email = f"<email>{escape(channel.author_email)}</email>" if channel.author_email else ""
        parts.append(f"<author><name>{escape(channel.author_name)}</name>{email}</author>")
    for e in entries:
        parts.append("<entry>")
        parts.append(f"<id>{escape(e.link)}</id>")
        parts.append(f"<title>{escape(e.title)}</title>")
        parts.append(f'<link rel="alternate" href={quoteattr(e.link)}/>')
        parts.append(f"<published>{_iso(e.published)}</published>")
        parts.append(f"<updated>{_iso(e.updated)}</updated>")
        for a in e.authors:
            uri = f"<uri>{escape(a['url'])}</uri>" if a["url"] else ""
            parts.append(f"<author><name>{escape(a['name'])}</name>{uri}</author>")
        if e.summary:
            parts.append(f"<summary>{escape(e.summary)}</summary>")
        if e.html:
            parts.append(f'<content type="html">{escape(e.html)}</content>')
        if e.image:
            mime = f" type={quoteattr(e.image['type'])}" if e.image.get("type") else ""
            length = f' length="{int(e.image["length"])}"' if e.image.get("length") else ""
            parts.append(f'<link rel="enclosure" href={quoteattr(e.image["url"])}{mime}{length}/>')
        parts.append("</entry>")
    parts.append("</feed>")
    return "\n".join(parts)


def render_json(channel: ChannelConfig, entries: list[FeedEntry], self_url: str) -> str:
    feed: dict[str, Any] = {
        "version": JSON_FEED_VERSION,
        "title": channel.title,
        "home_page_url": channel.site_url,
        "feed_url": self_url,
        "description": channel.description,
        "language": channel.language,
        "items": [],
    }
    if channel.author_name:
        feed["authors"] = [{"name": channel.author_name}]
    for e in entries:
        item: dict[str, Any] = {
            "id": e.id,
            "url": e.link,
            "title": e.title,
            "date_published": _iso(e.published),
            "date_modified": _iso(e.updated),
        }
        if e.html:
            item["content_html"] = e.html
        if e.summary:
            item["summary"] = e.summary
            if not e.html:
                item["content_text"] = e.summary
        if not e.html and not e.summary:
            item["content_text"] = e.title
        if e.authors:
            item["authors"] = [{"name": a["name"], **({"url": a["url"]} if a["url"] else {})} for a in e.authors]
        if e.image:
            item["image"] = e.image["url"]
            if e.image.get("type"):
                item["attachments"] = [
                    {
                        "url": e.image["url"],
                        "mime_type": e.image["type"],
                        **({"size_in_bytes": int(e.image["length"])} if e.image.get("length") else {}),
                    }
                ]
        feed["items"].append(item)
    return json.dumps(feed, ensure_ascii=False, indent=2)


_RENDERERS = {
    "rss": render_rss,
    "atom": render_atom,
    "json": render_json,
}


def render_feed(
    fmt: str,
    channel: ChannelConfig,
    items: Sequence[ContentItem],
    *,
    schema_name: str,
    self_url: str,
) -> tuple[str, str]:
    """Render items as fmt. Returns (body, content_type). Raises InvalidFormatError for unknown formats."""
    renderer = _RENDERERS.get(fmt)
    if renderer is None:
        raise InvalidFormatError(fmt, FEED_FORMATS)
    return renderer(channel, _entries(items, channel, schema_name), self_url), CONTENT_TYPES[fmt]
