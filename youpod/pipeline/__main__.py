#!/usr/bin/env python3
"""
CLI interface for the youpod pipeline.

The pipeline turns YouTube channels into podcast feeds:
    1. Fetch each channel's feed and download new videos (yt-dlp)
    2. Record downloads in the ledger (data/download_history.tsv)
    3. Generate per-channel and aggregate RSS feeds (feeds/podcasts/)
    4. Upload media, feeds and icons to Cloudflare R2

Usage:
    uv run -m youpod.pipeline
    uv run -m youpod.pipeline --channel "Some Channel" --max 3
    uv run -m youpod.pipeline --feed-only
    uv run -m youpod.pipeline --all
"""

import argparse
import sys

from youpod.config import load_config
from youpod.errors import YouPodError
from youpod.ingestion.acquisition import QUALITY_PRESETS
from youpod.ledger import MediaKind
from youpod.logger import setup_logging
from .orchestrator import PipelineOptions, run_pipeline

FORMAT_TO_MEDIA_KIND = {"mp3": MediaKind.AUDIO, "mp4": MediaKind.VIDEO}


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="YouPod - Download YouTube channels and publish them as podcast feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Stages (default: download + feeds):
  --download-only   Only download new videos
  --feed-only       Only regenerate feeds (with --all: upload feeds, not media)
  --upload-only     Only upload to R2
  --all             Download, regenerate feeds and upload

Examples:
  uv run -m youpod.pipeline
  uv run -m youpod.pipeline --max 3 --format mp3
  uv run -m youpod.pipeline --channel "Some Channel" --quality high
  uv run -m youpod.pipeline --feed-only
  uv run -m youpod.pipeline --all --verbose

Notes:
  - Channels are configured in config.yml, R2 credentials in .env
  - Downloaded videos are never downloaded twice (see data/download_history.tsv)
  - Logs written to logs/pipeline.log
        """,
    )

    download_group = parser.add_argument_group("download options")
    download_group.add_argument(
        "-m",
        "--max",
        type=int,
        default=10,
        metavar="N",
        help="Maximum new videos per channel (default: 10)",
    )
    download_group.add_argument(
        "-f",
        "--format",
        choices=sorted(FORMAT_TO_MEDIA_KIND),
        help="Force mp3 or mp4 for every channel (default: per-channel format)",
    )
    download_group.add_argument(
        "-q",
        "--quality",
        choices=QUALITY_PRESETS,
        default="medium",
        help="yt-dlp quality preset (default: medium)",
    )
    download_group.add_argument(
        "-o",
        "--output",
        metavar="DIR",
        help="Base download directory (default: downloads/)",
    )
    download_group.add_argument(
        "-c",
        "--channel",
        metavar="NAME",
        help="Only download this channel (label or slug, case-insensitive)",
    )

    stage_group = parser.add_argument_group("stage control")
    stage_group.add_argument("--download-only", action="store_true", help="Only download")
    stage_group.add_argument("--feed-only", action="store_true", help="Only generate feeds")
    stage_group.add_argument("--upload-only", action="store_true", help="Only upload")
    stage_group.add_argument("--all", action="store_true", help="Run every stage")

    options_group = parser.add_argument_group("options")
    options_group.add_argument(
        "--config", default="config.yml", help="Path to config.yml (default: config.yml)"
    )
    options_group.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging output"
    )

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> PipelineOptions:
    if args.max < 0:
        raise YouPodError("--max must be >= 0")
    return PipelineOptions(
        max_items=args.max,
        media_kind=FORMAT_TO_MEDIA_KIND.get(args.format) if args.format else None,
        quality=args.quality,
        output_dir=args.output,
        channel=args.channel,
        download_only=args.download_only,
        feed_only=args.feed_only,
        upload_only=args.upload_only,
        all=args.all,
    )


def main(argv=None):
    """Main entry point for the pipeline CLI."""
    args = parse_arguments(argv)

    logger = setup_logging(
        logger_name="youpod",
        log_file="logs/pipeline.log",
        verbose=args.verbose,
    )

    try:
        options = build_options(args)
        config = load_config(args.config)
        print(f"{len(config.sources)} channels configured")

        logger.info("=" * 80)
        logger.info("Pipeline execution started")
        logger.info(
            f"Stages: download={options.should_download}, "
            f"feeds={options.should_generate_feeds}, upload={options.should_upload}"
        )
        logger.info("=" * 80)

        result = run_pipeline(config, options)

        if result.download is not None:
            print(f"✓ Downloaded {len(result.download.recorded)} new videos")
            if result.download.failed_items:
                print(f"  ✗ Failed: {', '.join(result.download.failed_items)}")
            if result.download.failed_sources:
                print(f"  ✗ Unreachable channels: {', '.join(result.download.failed_sources)}")

        if result.feeds is not None:
            print(f"✓ Generated {len(result.feeds)} feeds")
            for path in result.feeds:
                print(f"  - {path}")

        if result.upload is not None:
            print(
                f"✓ Uploaded {result.upload.uploaded} files "
                f"({result.upload.skipped} unchanged, {len(result.upload.failed)} failed)"
            )
            print("\n===== Podcast feed URLs =====")
            for slug, url in sorted(result.upload.feed_urls.items()):
                print(f"  {slug}: {url}")

        logger.info("Pipeline execution completed successfully")

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except (YouPodError, RuntimeError, OSError) as e:
        logger.error(f"Pipeline execution failed: {e}")
        print(f"\n✗ PIPELINE FAILED: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
