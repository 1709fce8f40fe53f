"""
Podcast feed generation from ledger entries.

Builds one RSS 2.0 (+ iTunes) document per source and one aggregate
document over every source. Generation is a pure function of the sources,
the entries and the options: the same inputs always give byte-identical
documents, which lets the upload stage skip unchanged feeds.

Published layout (relative to the storage root):
    podcasts/<slug>/feed.xml        per-source feed
    podcasts/<slug>/icon.jpg        source artwork
    podcasts/<slug>/media/<id>.mp4  artifacts
    podcasts/all/feed.xml           aggregate feed
    podcasts/all/icon.jpg           aggregate artwork
"""

import dataclasses
import logging
import re
import xml.etree.ElementTree as ET
from email.utils import format_datetime
from typing import Iterable, Mapping, Optional, Sequence

from youpod import __version__
from youpod.config.settings import SourceConfig
from youpod.errors import UnknownSourceReference
from youpod.ledger.models import LedgerEntry, slugify, sort_newest_first
from youpod.logger import log_function
from youpod.storage.base import BaseStorage
from youpod.storage.local import LocalStorage
from .models import (
    AGGREGATE_SLUG,
    DEFAULT_AGGREGATE_MAX_ITEMS,
    DEFAULT_SOURCE_MAX_ITEMS,
    FEED_FILENAME,
    ICON_FILENAME,
    MEDIA_DIRNAME,
    PODCASTS_PREFIX,
    FeedDocument,
    FeedOptions,
    SyndicationItem,
    document_path,
)

logger = logging.getLogger(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
ATOM_NS = "http://www.w3.org/2005/Atom"

ET.register_namespace("itunes", ITUNES_NS)
ET.register_namespace("atom", ATOM_NS)

GENERATOR = f"youpod {__version__}"

# Outside the XML 1.0 Char production
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


class _UrlResolver:
    """
    Builds hosted references for a document published under ``document_slug``.

    With a base URL every reference is absolute; without one, references are
    relative to ``podcasts/<document_slug>/``.
    """

    def __init__(self, base_url: str, document_slug: str):
        self.base_url = base_url.rstrip("/")
        self.document_slug = document_slug

    def hosted(self, slug: str, *parts: str) -> str:
        tail = "/".join(parts)
        if self.base_url:
            return f"{self.base_url}/{PODCASTS_PREFIX}/{slug}/{tail}"
        if slug == self.document_slug:
            return tail
        return f"../{slug}/{tail}"

    def feed_url(self) -> str:
        return self.hosted(self.document_slug, FEED_FILENAME)

    def icon_url(self, slug: str) -> str:
        return self.hosted(slug, ICON_FILENAME)

    def media_url(self, slug: str, entry: LedgerEntry) -> str:
        return self.hosted(slug, MEDIA_DIRNAME, f"{entry.item_id}.{entry.media_kind.extension}")


class _SourceIndex:
    """Lookup of sources by slug, falling back to the display label."""

    def __init__(self, sources: Iterable[SourceConfig]):
        self.by_id: dict[str, SourceConfig] = {}
        self.by_label: dict[str, SourceConfig] = {}
        for source in sources:
            self.by_id.setdefault(source.source_id, source)
            self.by_label.setdefault(source.label, source)

    def resolve(self, source_id: str) -> SourceConfig:
        source = self.by_id.get(source_id) or self.by_label.get(source_id)
        if source is None:
            raise UnknownSourceReference(source_id)
        return source


def _select(entries: Iterable[LedgerEntry], max_items: int) -> list[LedgerEntry]:
    """Sort newest first, then keep the first ``max_items``."""
    ordered = sort_newest_first(entries)
    return ordered[: max(max_items, 0)]


def _make_item(
    entry: LedgerEntry, slug: str, urls: _UrlResolver, options: FeedOptions
) -> SyndicationItem:
    return SyndicationItem(
        entry=entry,
        source_slug=slug,
        link=options.item_link_template.format(item_id=entry.item_id),
        enclosure_url=urls.media_url(slug, entry),
        image_url=urls.icon_url(slug),
    )


def _xml_text(value: str) -> str:
    """Drop characters that XML 1.0 does not allow in a document."""
    return _XML_ILLEGAL.sub("", value)


def _sub(parent: ET.Element, tag: str, value: Optional[str] = None, **attrs) -> ET.Element:
    element = ET.SubElement(parent, tag, {key: _xml_text(val) for key, val in attrs.items()})
    if value is not None:
        element.text = _xml_text(value)
    return element


def _itunes(name: str) -> str:
    return f"{{{ITUNES_NS}}}{name}"


def render_feed(
    title: str,
    description: str,
    site_url: str,
    feed_url: str,
    image_url: str,
    items: Sequence[SyndicationItem],
    options: FeedOptions,
    author: Optional[str] = None,
) -> str:
    """
    Serialize a feed document.

    No wall-clock value is written: ``lastBuildDate`` is the newest item's
    publish date.
    """
    author = author or title

    rss = ET.Element("rss", {"version": "2.0"})
    channel = _sub(rss, "channel")
    _sub(channel, "title", title)
    _sub(channel, "description", description)
    _sub(channel, "link", site_url)
    _sub(
        channel,
        f"{{{ATOM_NS}}}link",
        href=feed_url,
        rel="self",
        type="application/rss+xml",
    )
    _sub(channel, "generator", GENERATOR)
    _sub(channel, "language", options.language)
    if options.copyright:
        _sub(channel, "copyright", options.copyright)
    if items:
        newest = max(item.entry.published_datetime for item in items)
        _sub(channel, "lastBuildDate", format_datetime(newest, usegmt=True))

    image = _sub(channel, "image")
    _sub(image, "url", image_url)
    _sub(image, "title", title)
    _sub(image, "link", site_url)

    _sub(channel, _itunes("author"), author)
    _sub(channel, _itunes("subtitle"), description)
    _sub(channel, _itunes("summary"), description)
    _sub(channel, _itunes("explicit"), "true" if options.explicit else "false")
    owner = _sub(channel, _itunes("owner"))
    _sub(owner, _itunes("name"), author)
    _sub(owner, _itunes("email"), options.owner_email)
    _sub(channel, _itunes("image"), href=image_url)
    for category in options.categories:
        _sub(channel, _itunes("category"), text=category)

    for item in items:
        entry = item.entry
        element = _sub(channel, "item")
        _sub(element, "title", item.title)
        _sub(element, "description", item.summary)
        _sub(element, "link", item.link)
        _sub(element, "guid", entry.item_id, isPermaLink="false")
        _sub(element, "pubDate", format_datetime(entry.published_datetime, usegmt=True))
        _sub(
            element,
            "enclosure",
            url=item.enclosure_url,
            length=str(entry.size_bytes),
            type=entry.media_kind.mime_type,
        )
        _sub(element, _itunes("image"), href=item.image_url)
        _sub(element, _itunes("summary"), item.summary)

    ET.indent(rss, space="  ")
    body = ET.tostring(rss, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"


def build_source_feed(
    source: SourceConfig,
    entries: Iterable[LedgerEntry],
    options: Optional[FeedOptions] = None,
) -> FeedDocument:
    """
    Build the feed of one source.

    Entries are ordered newest first (ties by item id) and truncated to
    ``options.max_items`` (default 50) after sorting.

    Args:
        source: Source the entries belong to; provides title and artwork
        entries: The source's ledger entries, in any order
        options: Rendering options

    Returns:
        FeedDocument: Rendered document for ``podcasts/<slug>/feed.xml``
    """
    options = options or FeedOptions()
    slug = source.source_id
    urls = _UrlResolver(options.base_url, slug)
    max_items = options.max_items if options.max_items is not None else DEFAULT_SOURCE_MAX_ITEMS

    items = tuple(_make_item(entry, slug, urls, options) for entry in _select(entries, max_items))

    if source.channel_id:
        default_site = f"https://www.youtube.com/channel/{source.channel_id}"
    else:
        default_site = source.feed_url
    title = options.title or source.label

    xml = render_feed(
        title=title,
        description=options.description or f"{source.label} podcast",
        site_url=options.site_url or default_site,
        feed_url=urls.feed_url(),
        image_url=options.image_url or urls.icon_url(slug),
        items=items,
        options=options,
        author=options.author or source.label,
    )
    return FeedDocument(slug=slug, path=document_path(slug), title=title, xml=xml, items=items)


def _merge_entries(
    sources: Sequence[SourceConfig], entries_by_source: Mapping[str, Sequence[LedgerEntry]]
) -> list[LedgerEntry]:
    """All entries of all lists, first occurrence of an item id wins."""
    configured = [source.source_id for source in sources if source.source_id in entries_by_source]
    others = sorted(key for key in entries_by_source if key not in set(configured))

    merged: dict[str, LedgerEntry] = {}
    for key in configured + others:
        for entry in entries_by_source[key]:
            merged.setdefault(entry.item_id, entry)
    return list(merged.values())


def build_aggregate_feed(
    sources: Sequence[SourceConfig],
    entries_by_source: Mapping[str, Sequence[LedgerEntry]],
    options: Optional[FeedOptions] = None,
) -> FeedDocument:
    """
    Build the feed merging every source.

    Each entry's media and artwork references use its own source's slug. An
    entry whose source is not configured is kept, with a slug derived from
    the stored source name.

    Args:
        sources: Configured sources
        entries_by_source: Ledger entries keyed by source slug
        options: Rendering options (default cap 100 items)

    Returns:
        FeedDocument: Rendered document for ``podcasts/all/feed.xml``
    """
    options = options or FeedOptions()
    index = _SourceIndex(sources)
    urls = _UrlResolver(options.base_url, AGGREGATE_SLUG)
    max_items = options.max_items if options.max_items is not None else DEFAULT_AGGREGATE_MAX_ITEMS

    items = []
    unknown: set[str] = set()
    for entry in _select(_merge_entries(sources, entries_by_source), max_items):
        try:
            slug = index.resolve(entry.source_id).source_id
        except UnknownSourceReference as e:
            slug = slugify(entry.source_id)
            if e.source_id not in unknown:
                unknown.add(e.source_id)
                logger.warning(f"{e}; using slug {slug!r}")
        items.append(_make_item(entry, slug, urls, options))

    title = options.title or "YouPod"
    description = options.description or "YouTube channels as podcasts"
    xml = render_feed(
        title=title,
        description=description,
        site_url=options.site_url or "https://www.youtube.com",
        feed_url=urls.feed_url(),
        image_url=options.image_url or urls.icon_url(AGGREGATE_SLUG),
        items=items,
        options=options,
        author=options.author,
    )
    return FeedDocument(
        slug=AGGREGATE_SLUG,
        path=document_path(AGGREGATE_SLUG),
        title=title,
        xml=xml,
        items=tuple(items),
    )


@log_function(logger_name="youpod.feeds")
def build_all(
    sources: Sequence[SourceConfig],
    entries_by_source: Mapping[str, Sequence[LedgerEntry]],
    sink: Optional[BaseStorage] = None,
    options: Optional[FeedOptions] = None,
    aggregate_options: Optional[FeedOptions] = None,
) -> list[str]:
    """
    Build and write every per-source feed plus the aggregate feed.

    Sources without entries are skipped (and reported); the aggregate feed
    is always written.

    Args:
        sources: Configured sources
        entries_by_source: Ledger entries keyed by source slug
        sink: Storage the documents are saved to (default: LocalStorage("feeds"))
        options: Options for the per-source feeds
        aggregate_options: Options for the aggregate feed (default: ``options``
            with the per-source ``max_items``, ``title`` and ``description`` cleared)

    Returns:
        list[str]: Locations written, aggregate last
    """
    sink = sink if sink is not None else LocalStorage("feeds")
    options = options or FeedOptions()
    if aggregate_options is None:
        aggregate_options = dataclasses.replace(
            options, max_items=None, title=None, description=None, image_url=None
        )

    written = []
    skipped = []
    for source in sources:
        entries = list(entries_by_source.get(source.source_id) or [])
        if source.label != source.source_id:
            # Rows written under the display label by older versions
            entries += entries_by_source.get(source.label) or []
        if not entries:
            logger.warning(f"Source {source.label!r} has no downloaded items, skipping its feed")
            skipped.append(source.source_id)
            continue
        document = build_source_feed(source, entries, options)
        written.append(sink.save_file(document.workspace, document.filename, document.xml))
        logger.info(f"Generated feed for {source.label}: {len(document.items)} items")

    aggregate = build_aggregate_feed(sources, entries_by_source, aggregate_options)
    written.append(sink.save_file(aggregate.workspace, aggregate.filename, aggregate.xml))
    logger.info(f"Generated aggregate feed: {len(aggregate.items)} items")

    if skipped:
        logger.info(f"Skipped sources without items: {', '.join(skipped)}")
    logger.info(f"Wrote {len(written)} feeds: {', '.join(written)}")
    return written
