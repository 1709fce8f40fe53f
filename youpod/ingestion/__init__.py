"""
Ingestion package.

The ingestion side of the pipeline consists of:

1. Listing fetch (listing.py):
   - Fetches a channel's Atom feed
   - Parses entries into ItemDescriptor objects (newest first)

2. New-item detection (synchronizer.py):
   - Diffs a listing against the ledger, bounded by a maximum count

3. Acquisition (acquisition.py):
   - Downloads items with yt-dlp as mp3 or mp4
   - Retries with exponential backoff
"""

from .listing import (
    ItemDescriptor,
    Thumbnail,
    channel_id_from_feed_url,
    fetch_listing,
    parse_listing,
)
from .synchronizer import diff
from .acquisition import AcquisitionResult, acquire

__all__ = [
    "ItemDescriptor",
    "Thumbnail",
    "channel_id_from_feed_url",
    "fetch_listing",
    "parse_listing",
    "diff",
    "AcquisitionResult",
    "acquire",
]
