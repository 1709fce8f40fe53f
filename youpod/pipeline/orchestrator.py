import logging
from dataclasses import dataclass
from typing import Optional

from youpod.config import AppConfig, SourceConfig
from youpod.errors import ConfigError
from youpod.ledger import LedgerStore, MediaKind
from youpod.logger import log_function
from .stages import (
    DownloadSummary,
    UploadSummary,
    run_download_stage,
    run_feed_stage,
    run_upload_stage,
)


@dataclass
class PipelineOptions:
    """
    What one pipeline run does.

    With none of the ``*_only`` flags, the run downloads and regenerates
    feeds. ``all`` runs every stage including the upload.
    """

    max_items: int = 10
    media_kind: Optional[MediaKind] = None
    quality: str = "medium"
    output_dir: Optional[str] = None
    channel: Optional[str] = None
    download_only: bool = False
    feed_only: bool = False
    upload_only: bool = False
    all: bool = False

    @property
    def should_download(self) -> bool:
        return self.download_only or self.all or not (self.feed_only or self.upload_only)

    @property
    def should_generate_feeds(self) -> bool:
        return self.feed_only or self.all or not (self.download_only or self.upload_only)

    @property
    def should_upload(self) -> bool:
        return self.upload_only or self.all


@dataclass
class PipelineResult:
    download: Optional[DownloadSummary] = None
    feeds: Optional[list[str]] = None
    upload: Optional[UploadSummary] = None


def select_sources(config: AppConfig, channel: Optional[str] = None) -> list[SourceConfig]:
    """
    Sources to download, optionally filtered by slug or label.

    Raises:
        ConfigError: If ``channel`` matches no configured source
    """
    if channel is None:
        return list(config.sources)
    source = config.find_source(channel)
    if source is None:
        available = ", ".join(s.label for s in config.sources)
        raise ConfigError(f"Channel {channel!r} not found (available: {available})")
    return [source]


@log_function(logger_name="youpod.pipeline", log_execution_time=True)
def run_pipeline(
    config: AppConfig,
    options: Optional[PipelineOptions] = None,
    store: Optional[LedgerStore] = None,
) -> PipelineResult:
    """
    Run the selected stages: download -> feeds -> upload.

    Args:
        config: Application configuration
        options: Stage selection and download settings
        store: Open ledger (default: opened from ``config`` and closed afterwards)

    Returns:
        PipelineResult: Summary of each stage that ran
    """
    logger = logging.getLogger("youpod.pipeline")
    options = options or PipelineOptions()
    sources = select_sources(config, options.channel)

    owns_store = store is None
    if owns_store:
        store = LedgerStore.open(config.root_dir, config.ledger_file)

    result = PipelineResult()
    try:
        logger.info("=== PIPELINE STARTED ===")
        logger.info(f"Ledger: {store.ledger_path} ({len(store)} entries)")

        if options.should_download:
            result.download = run_download_stage(
                config,
                store,
                sources,
                max_items=options.max_items,
                media_kind=options.media_kind,
                quality=options.quality,
                output_dir=options.output_dir,
            )

        if options.should_generate_feeds:
            result.feeds = run_feed_stage(config, store)

        if options.should_upload:
            result.upload = run_upload_stage(
                config, store, include_media=not options.feed_only
            )

        logger.info("=== PIPELINE COMPLETED ===")
    finally:
        if owns_store:
            store.close()

    return result
