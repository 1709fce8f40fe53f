"""
Podcast feed generation.

- models.py: FeedOptions, SyndicationItem, FeedDocument and the publish layout
- generator.py: per-source and aggregate RSS documents, build_all
"""

from .models import (
    AGGREGATE_SLUG,
    FEED_FILENAME,
    ICON_FILENAME,
    MEDIA_DIRNAME,
    PODCASTS_PREFIX,
    FeedDocument,
    FeedOptions,
    SyndicationItem,
    document_path,
)
from .generator import build_aggregate_feed, build_all, build_source_feed, render_feed

__all__ = [
    "AGGREGATE_SLUG",
    "FEED_FILENAME",
    "ICON_FILENAME",
    "MEDIA_DIRNAME",
    "PODCASTS_PREFIX",
    "FeedDocument",
    "FeedOptions",
    "SyndicationItem",
    "document_path",
    "build_aggregate_feed",
    "build_all",
    "build_source_feed",
    "render_feed",
]
