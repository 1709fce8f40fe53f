"""
Channel listing fetch.

Downloads a YouTube channel's Atom feed and turns each ``<entry>`` into an
``ItemDescriptor``. The feed lists videos newest first, and that order is
kept.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import parse_qs, urlparse

import requests
from bs4 import BeautifulSoup

from youpod.logger import log_function

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={item_id}"


def channel_id_from_feed_url(feed_url: str) -> Optional[str]:
    """``.../feeds/videos.xml?channel_id=UCxyz`` -> ``UCxyz`` (None if absent)"""
    values = parse_qs(urlparse(feed_url).query).get("channel_id")
    return values[0] if values else None


@dataclass(frozen=True)
class Thumbnail:
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class ItemDescriptor:
    """
    One remote item as listed by the channel feed.

    Attributes:
        item_id: Video id, unique within the source
        title: Video title
        url: Canonical watch URL
        published_at: ISO-8601 publish timestamp
        updated_at: ISO-8601 last update timestamp, if listed
        description: Free-text description, if listed
        author_name: Channel name as listed
        thumbnail: Thumbnail reference, if listed
    """

    item_id: str
    title: str
    url: str
    published_at: str
    updated_at: Optional[str] = None
    description: Optional[str] = None
    author_name: Optional[str] = None
    thumbnail: Optional[Thumbnail] = None


def _text(tag) -> Optional[str]:
    if tag is None:
        return None
    text = tag.get_text(strip=True)
    return text or None


def _int_attr(tag, name: str) -> Optional[int]:
    try:
        return int(tag[name])
    except (KeyError, TypeError, ValueError):
        return None


def parse_listing(xml: Union[str, bytes]) -> list[ItemDescriptor]:
    """
    Parse a channel Atom feed into item descriptors.

    Entries without a video id are skipped.

    Args:
        xml: Raw feed document

    Returns:
        list[ItemDescriptor]: Items in feed order (newest first)
    """
    soup = BeautifulSoup(xml, "xml")
    items = []

    for entry in soup.find_all("entry"):
        item_id = _text(entry.find("yt:videoId", recursive=False))
        if not item_id:
            logger.warning("Skipping feed entry without a video id")
            continue

        link_tag = entry.find("link", recursive=False)
        url = link_tag.get("href") if link_tag is not None else None

        thumbnail = None
        thumbnail_tag = entry.find("media:thumbnail")
        if thumbnail_tag is not None and thumbnail_tag.get("url"):
            thumbnail = Thumbnail(
                url=thumbnail_tag["url"],
                width=_int_attr(thumbnail_tag, "width"),
                height=_int_attr(thumbnail_tag, "height"),
            )

        # Descriptions keep their line breaks
        description_tag = entry.find("media:description")
        description = description_tag.get_text() if description_tag is not None else None

        author_tag = entry.find("author", recursive=False)
        items.append(
            ItemDescriptor(
                item_id=item_id,
                title=_text(entry.find("title", recursive=False)) or item_id,
                url=url or WATCH_URL.format(item_id=item_id),
                published_at=_text(entry.find("published", recursive=False)) or "",
                updated_at=_text(entry.find("updated", recursive=False)),
                description=description or None,
                author_name=_text(author_tag.find("name")) if author_tag is not None else None,
                thumbnail=thumbnail,
            )
        )

    return items


@log_function(logger_name="youpod.ingestion")
def fetch_listing(feed_url: str, timeout: int = 30) -> list[ItemDescriptor]:
    """
    Fetch and parse a channel feed.

    Args:
        feed_url: Channel feed URL
        timeout: Request timeout in seconds

    Returns:
        list[ItemDescriptor]: Items in feed order (newest first)

    Raises:
        requests.RequestException: If the feed cannot be fetched
    """
    logger.info(f"Fetching feed from {feed_url}...")
    response = requests.get(feed_url, timeout=timeout)
    response.raise_for_status()

    items = parse_listing(response.content)
    if not items:
        logger.warning(f"No entries found in feed {feed_url}")
    logger.info(f"Found {len(items)} items in {feed_url}")
    return items
