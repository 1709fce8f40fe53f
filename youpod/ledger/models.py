"""
Record types for the download ledger.

Models:
    LedgerEntry: one materialized item (the ledger's unit of storage)

Enums:
    MediaKind: container family of a materialized artifact
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum as PyEnum
from pathlib import PurePath
from typing import Optional


class MediaKind(str, PyEnum):
    """
    Enum of the artifact kinds the ledger knows about.

    AUDIO: audio-only artifact (mp3)
    VIDEO: audio/video artifact (mp4)
    """

    AUDIO = "audio"
    VIDEO = "video"

    @property
    def extension(self) -> str:
        return "mp3" if self is MediaKind.AUDIO else "mp4"

    @property
    def mime_type(self) -> str:
        return "audio/mpeg" if self is MediaKind.AUDIO else "video/mp4"

    @classmethod
    def parse(cls, value: str) -> "MediaKind":
        """Parse a kind name or a container name (``mp3``, ``mp4``...)."""
        normalized = value.strip().lower().lstrip(".")
        if normalized in _AUDIO_CONTAINERS:
            return cls.AUDIO
        if normalized in _VIDEO_CONTAINERS:
            return cls.VIDEO
        return cls(normalized)

    @classmethod
    def from_path(cls, path: str) -> "MediaKind":
        """Derive the kind from an artifact's file extension."""
        return cls.parse(PurePath(path).suffix or "")


_AUDIO_CONTAINERS = {"audio", "mp3", "m4a", "aac", "opus", "ogg"}
_VIDEO_CONTAINERS = {"video", "mp4", "webm", "mkv", "mov"}


@dataclass(frozen=True)
class LedgerEntry:
    """
    Durable record of one materialized item.

    Attributes:
        source_id: Slug of the source (channel) that produced the item
        item_id: Primary key, unique across the whole ledger
        title: Item title at acquisition time
        local_path: Artifact location, relative to the ledger root once recorded
        size_bytes: Artifact size in bytes
        media_kind: Artifact kind (audio or video)
        published_at: ISO-8601 publish timestamp from the remote listing
        recorded_at: ISO-8601 timestamp set when the entry was first written
        description: Optional free text (may contain tabs and newlines)
    """

    source_id: str
    item_id: str
    title: str
    local_path: str
    size_bytes: int = 0
    media_kind: MediaKind = MediaKind.VIDEO
    published_at: str = ""
    recorded_at: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        if not self.source_id:
            raise ValueError("source_id must not be empty")
        if not self.item_id:
            raise ValueError("item_id must not be empty")
        if self.size_bytes < 0:
            raise ValueError(f"size_bytes must be >= 0, got {self.size_bytes}")
        if not isinstance(self.media_kind, MediaKind):
            object.__setattr__(self, "media_kind", MediaKind.parse(self.media_kind))
        # Stored as an empty field, so "" and None are the same description
        if self.description == "":
            object.__setattr__(self, "description", None)

    @property
    def published_datetime(self) -> datetime:
        return parse_timestamp(self.published_at)

    def same_content(self, other: "LedgerEntry") -> bool:
        """Equality ignoring ``recorded_at`` (which is stamped on write)."""
        return _content_key(self) == _content_key(other)


def _content_key(entry: LedgerEntry) -> tuple:
    return (
        entry.source_id,
        entry.item_id,
        entry.title,
        entry.local_path,
        entry.size_bytes,
        entry.media_kind,
        entry.published_at,
        entry.description,
    )


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Missing or unparseable values sort as the
    epoch, so they end up last in newest-first listings.
    """
    if not value:
        return EPOCH
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format as ``2024-01-01T00:00:00.000Z`` (UTC, millisecond precision)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def slugify(label: str) -> str:
    """Lowercase a label and replace whitespace runs with dashes."""
    return re.sub(r"\s+", "-", label.strip().lower())


def sort_newest_first(entries) -> list:
    """
    Order entries by publish date descending, ties by item id ascending.

    This is the single ordering used by the ledger views and every feed.
    """
    by_id = sorted(entries, key=lambda entry: entry.item_id)
    return sorted(by_id, key=lambda entry: entry.published_datetime, reverse=True)
