"""
Parse RSS 2.0 / Atom / RDF feed documents into a uniform item shape.
"""
import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import feedparser

from services.logging import log_event

logger = logging.getLogger(__name__)

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"

_TAG_RE = re.compile(r"<[^>]+>")
_ATOM_ROOT_RE = re.compile(r"""<feed[\s>][^>]*xmlns=["']""" + re.escape(ATOM_NAMESPACE) + r"""["']""")
_RDF_ROOT_RE = re.compile(r"<rdf:RDF[\s>]")
_WS_RE = re.compile(r"\s+")

# Timestamp keys in priority order for each format
_DATE_KEYS = {
    "atom": ("published_parsed", "updated_parsed"),
    "rdf": ("updated_parsed", "published_parsed"),  # dc:date
    "rss": ("published_parsed", "updated_parsed"),  # pubDate
}


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str
    published: Optional[datetime]
    description: str
    content: str
    author: Optional[str] = None
    thumbnail: Optional[str] = None
    guid: Optional[str] = None


def detect_format(xml: str) -> str:
    """
    Classify a feed document as ``atom``, ``rdf`` or ``rss`` (the default).
    Atom needs a <feed> root in the Atom default namespace; an RSS feed
    that merely declares xmlns:atom stays RSS.
    """
    if _ATOM_ROOT_RE.search(xml):
        return "atom"
    if _RDF_ROOT_RE.search(xml):
        return "rdf"
    return "rss"


def clean_text(text: Optional[str]) -> str:
    """Decode entities, strip markup tags and collapse whitespace."""
    if not text:
        return ""
    text = html.unescape(text)
    text = _TAG_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def clean_title(text: Optional[str]) -> str:
    """Decode entities and collapse whitespace. Titles keep literal < and >."""
    if not text:
        return ""
    return _WS_RE.sub(" ", html.unescape(text)).strip()


def _published(entry: Any, feed_format: str) -> Optional[datetime]:
    for key in _DATE_KEYS[feed_format]:
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def _thumbnail(entry: Any) -> Optional[str]:
    thumbnails = entry.get("media_thumbnail") or []
    for thumb in thumbnails:
        if thumb.get("url"):
            return thumb["url"]

    for enclosure in entry.get("enclosures") or []:
        if str(enclosure.get("type", "")).startswith("image") and enclosure.get("href"):
            return enclosure["href"]

    return None


def _author(entry: Any, feed_format: str) -> Optional[str]:
    if feed_format == "atom":
        detail = entry.get("author_detail") or {}
        name = detail.get("name") or entry.get("author")
    else:
        # dc:creator and <author> both land on "author"
        name = entry.get("author")
    name = clean_text(name)
    return name or None


def _body(entry: Any) -> str:
    contents = entry.get("content") or []
    for block in contents:
        value = block.get("value")
        if value:
            return value
    return ""


def _to_item(entry: Any, feed_format: str) -> Optional[FeedItem]:
    title = clean_title(entry.get("title"))
    link = (entry.get("link") or "").strip()

    if not title or not link:
        return None

    description = clean_text(entry.get("summary"))
    content = clean_text(_body(entry)) or description

    return FeedItem(
        title=title,
        link=link,
        published=_published(entry, feed_format),
        description=description,
        content=content,
        author=_author(entry, feed_format),
        thumbnail=_thumbnail(entry),
        guid=entry.get("id"),
    )


def parse_feed(xml: str, item_cap: int) -> Iterator[FeedItem]:
    """
    Yield at most ``item_cap`` items in document order.

    Items without a title or link are dropped. A malformed document
    yields whatever entries could be recovered, possibly none.
    """
    if not xml or item_cap <= 0:
        return

    feed_format = detect_format(xml)
    parsed = feedparser.parse(xml)

    log_event(
        logger,
        "feed.parsed",
        level=logging.DEBUG,
        format=feed_format,
        entries=len(parsed.entries),
        malformed=bool(parsed.get("bozo")),
    )

    emitted = 0
    for entry in parsed.entries:
        if emitted >= item_cap:
            break
        try:
            item = _to_item(entry, feed_format)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed feed entry: {e}")
            continue
        if item is None:
            continue
        emitted += 1
        yield item
