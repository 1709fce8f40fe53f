"""
Pipeline stage functions.

Each stage wraps the library modules and provides:
- Per-item and per-source error isolation
- Progress logging
- A summary the CLI can print
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import requests
from bs4 import BeautifulSoup

from youpod.config import AppConfig, SourceConfig
from youpod.errors import AcquisitionFailed, ConfigError
from youpod.feeds import (
    AGGREGATE_SLUG,
    ICON_FILENAME,
    MEDIA_DIRNAME,
    PODCASTS_PREFIX,
    FeedOptions,
    build_all,
)
from youpod.ingestion import acquire, diff, fetch_listing
from youpod.ledger import LedgerEntry, LedgerStore, MediaKind, slugify
from youpod.logger import log_function
from youpod.storage import CloudStorage, LocalStorage

CHANNEL_URL = "https://www.youtube.com/channel/{channel_id}"

logger = logging.getLogger("youpod.pipeline")


@dataclass
class DownloadSummary:
    """Outcome of one download stage run"""

    recorded: list[LedgerEntry] = field(default_factory=list)
    failed_items: list[str] = field(default_factory=list)
    failed_sources: list[str] = field(default_factory=list)


@dataclass
class UploadSummary:
    """Outcome of one upload stage run"""

    uploaded: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)
    feed_urls: dict[str, str] = field(default_factory=dict)


def downloads_root(config: AppConfig, output_dir: Optional[str] = None) -> Path:
    """Base download directory; each source gets a ``<slug>/`` subdirectory."""
    return Path(output_dir) if output_dir else config.root_dir / config.downloads_dir


def feeds_root(config: AppConfig) -> Path:
    return config.root_dir / config.feeds_dir


def entries_by_source(store: LedgerStore) -> dict[str, list[LedgerEntry]]:
    return {source_id: store.entries_for(source_id) for source_id in store.source_ids()}


def build_feed_options(config: AppConfig) -> tuple[FeedOptions, FeedOptions]:
    """
    Feed options for the per-source feeds and for the aggregate feed.

    Per-source feeds take their title, author and site from the source;
    the aggregate feed takes them from the ``feed`` section of config.yml.
    """
    feed = config.feed
    options = FeedOptions(
        copyright=feed.copyright,
        language=feed.language,
        categories=list(feed.categories),
        explicit=feed.explicit,
        max_items=feed.max_items,
        base_url=config.base_url,
    )
    aggregate_options = FeedOptions(
        title=feed.title,
        description=feed.description,
        site_url=feed.site_url,
        author=feed.author,
        copyright=feed.copyright,
        language=feed.language,
        categories=list(feed.categories),
        explicit=feed.explicit,
        max_items=feed.aggregate_max_items,
        base_url=config.base_url,
    )
    return options, aggregate_options


@log_function(logger_name="youpod.pipeline", log_execution_time=True)
def run_download_stage(
    config: AppConfig,
    store: LedgerStore,
    sources: Sequence[SourceConfig],
    max_items: int = 10,
    media_kind: Optional[MediaKind] = None,
    quality: str = "medium",
    output_dir: Optional[str] = None,
) -> DownloadSummary:
    """
    Fetch each source's listing, download new items and record them.

    A failing item is logged and skipped (it will be retried next run since
    it was never recorded). A source whose listing cannot be fetched is
    skipped. Ledger write failures propagate.

    Args:
        config: Application configuration
        store: Open ledger
        sources: Sources to process, in order
        max_items: Maximum new items per source
        media_kind: Override of the sources' configured media kind
        quality: yt-dlp quality preset
        output_dir: Base download directory (default: ``<root>/downloads``)

    Returns:
        DownloadSummary: Recorded entries and failures
    """
    summary = DownloadSummary()
    base_dir = downloads_root(config, output_dir)

    for source in sources:
        logger.info(f"===== Channel: {source.label} =====")
        try:
            listing = fetch_listing(source.feed_url)
        except requests.RequestException as e:
            logger.error(f"Could not fetch listing for {source.label}: {e}")
            summary.failed_sources.append(source.source_id)
            continue

        new_items = diff(store, source.source_id, listing, max_items)
        kind = media_kind or source.media_kind
        source_dir = base_dir / source.source_id

        for item in new_items:
            try:
                result = acquire(item, source_dir, media_kind=kind, quality=quality)
            except AcquisitionFailed as e:
                logger.error(str(e))
                summary.failed_items.append(item.item_id)
                continue

            entry = store.record_entry(
                LedgerEntry(
                    source_id=source.source_id,
                    item_id=item.item_id,
                    title=item.title,
                    local_path=str(result.local_path),
                    size_bytes=result.size_bytes,
                    media_kind=result.media_kind,
                    published_at=item.published_at,
                    description=item.description,
                )
            )
            summary.recorded.append(entry)
            logger.info(f"Recorded {entry.item_id}: {entry.title}")

    logger.info(
        f"Download stage: {len(summary.recorded)} recorded, "
        f"{len(summary.failed_items)} failed items, "
        f"{len(summary.failed_sources)} failed sources"
    )
    return summary


def find_icon_url(source: SourceConfig, timeout: int = 30) -> Optional[str]:
    """
    Artwork URL of a source.

    Uses the configured ``icon_url`` when set, otherwise the ``og:image``
    of the channel page.
    """
    if source.icon_url:
        return source.icon_url
    if not source.channel_id:
        return None

    response = requests.get(CHANNEL_URL.format(channel_id=source.channel_id), timeout=timeout)
    response.raise_for_status()
    soup = BeautifulSoup(response.text, "html.parser")
    meta = soup.find("meta", attrs={"property": "og:image"})
    return meta.get("content") if meta is not None else None


def fetch_icons(sources: Sequence[SourceConfig], feeds_dir: Path) -> list[Path]:
    """
    Download missing artwork to ``<feeds_dir>/podcasts/<slug>/icon.jpg``.

    The aggregate feed reuses the first available source icon. Existing
    icons are kept. Failures are logged and do not stop the others.

    Returns:
        list[Path]: Icons that were written
    """
    written = []
    for source in sources:
        icon_path = feeds_dir / PODCASTS_PREFIX / source.source_id / ICON_FILENAME
        if icon_path.is_file():
            continue
        try:
            icon_url = find_icon_url(source)
            if not icon_url:
                logger.info(f"No icon found for {source.label}")
                continue
            response = requests.get(icon_url, timeout=30)
            response.raise_for_status()
            icon_path.parent.mkdir(parents=True, exist_ok=True)
            icon_path.write_bytes(response.content)
            written.append(icon_path)
            logger.info(f"Saved icon for {source.label}: {icon_path}")
        except (requests.RequestException, OSError) as e:
            logger.warning(f"Could not fetch icon for {source.label}: {e}")

    aggregate_icon = feeds_dir / PODCASTS_PREFIX / AGGREGATE_SLUG / ICON_FILENAME
    if not aggregate_icon.is_file():
        for source in sources:
            icon_path = feeds_dir / PODCASTS_PREFIX / source.source_id / ICON_FILENAME
            if icon_path.is_file():
                aggregate_icon.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(icon_path, aggregate_icon)
                written.append(aggregate_icon)
                break

    return written


@log_function(logger_name="youpod.pipeline", log_execution_time=True)
def run_feed_stage(
    config: AppConfig, store: LedgerStore, with_icons: bool = True
) -> list[str]:
    """
    Regenerate every feed under ``<root>/feeds/podcasts/``.

    Returns:
        list[str]: Paths of the written feed documents, aggregate last
    """
    feeds_dir = feeds_root(config)
    if with_icons:
        fetch_icons(config.sources, feeds_dir)

    options, aggregate_options = build_feed_options(config)
    return build_all(
        config.sources,
        entries_by_source(store),
        LocalStorage(feeds_dir),
        options,
        aggregate_options,
    )


def _slug_for(config: AppConfig, source_id: str) -> str:
    source = config.find_source(source_id)
    return source.source_id if source is not None else slugify(source_id)


@log_function(logger_name="youpod.pipeline", log_execution_time=True)
def run_upload_stage(
    config: AppConfig,
    store: LedgerStore,
    storage: Optional[CloudStorage] = None,
    include_media: bool = True,
) -> UploadSummary:
    """
    Publish media, feeds and icons to the bucket under ``podcasts/``.

    Media keys are ``podcasts/<slug>/media/<item_id>.<ext>``, which is what
    the generated enclosures point to. Feed and icon keys mirror the
    layout of the local feeds directory. Unchanged objects are skipped.

    Args:
        config: Application configuration (needs a ``storage`` section)
        store: Open ledger
        storage: Upload client (default: built from ``config.storage``)
        include_media: Upload ledger artifacts as well as feeds

    Returns:
        UploadSummary: Counters, failed keys and public feed URLs

    Raises:
        ConfigError: If no storage is configured
    """
    if storage is None:
        if config.storage is None:
            raise ConfigError("No storage section in config.yml, cannot upload")
        storage = CloudStorage(config.storage)

    summary = UploadSummary()

    if include_media:
        for entry in store.entries():
            path = store.resolve_path(entry)
            if not path.is_file():
                logger.warning(f"Artifact missing for {entry.item_id}, not uploading: {path}")
                continue
            slug = _slug_for(config, entry.source_id)
            key = (
                f"{PODCASTS_PREFIX}/{slug}/{MEDIA_DIRNAME}/"
                f"{entry.item_id}.{entry.media_kind.extension}"
            )
            try:
                storage.upload_file(path, key, entry.media_kind.mime_type)
            except RuntimeError as e:
                logger.error(str(e))
                summary.failed.append(key)

    feeds_dir = feeds_root(config)
    for key in LocalStorage(feeds_dir).list_files():
        try:
            url = storage.upload_file(feeds_dir / key, key)
        except RuntimeError as e:
            logger.error(str(e))
            summary.failed.append(key)
            continue
        if key.endswith("/feed.xml"):
            summary.feed_urls[key.split("/")[1]] = url

    summary.uploaded = storage.uploaded_files
    summary.skipped = storage.skipped_files
    logger.info(
        f"Upload stage: {summary.uploaded} uploaded, {summary.skipped} unchanged, "
        f"{len(summary.failed)} failed"
    )
    return summary
