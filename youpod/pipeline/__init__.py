"""
Pipeline module.

Orchestrates the youpod workflow:
    1. Listing fetch and new-item detection (youpod.ingestion)
    2. Download with yt-dlp and ledger recording (youpod.ledger)
    3. Feed generation (youpod.feeds)
    4. Upload to Cloudflare R2 (youpod.storage)

Usage:
    # CLI interface
    uv run -m youpod.pipeline --all

    # Programmatic interface
    from youpod.config import load_config
    from youpod.pipeline import PipelineOptions, run_pipeline
    run_pipeline(load_config("config.yml"), PipelineOptions(feed_only=True))
"""

from .orchestrator import PipelineOptions, PipelineResult, run_pipeline, select_sources
from .stages import (
    DownloadSummary,
    UploadSummary,
    build_feed_options,
    fetch_icons,
    run_download_stage,
    run_feed_stage,
    run_upload_stage,
)

__all__ = [
    "PipelineOptions",
    "PipelineResult",
    "run_pipeline",
    "select_sources",
    "DownloadSummary",
    "UploadSummary",
    "build_feed_options",
    "fetch_icons",
    "run_download_stage",
    "run_feed_stage",
    "run_upload_stage",
]
