"""
Configuration loading for youpod.

Channels, storage and feed defaults come from ``config.yml``; storage
credentials come from the environment (``.env`` is loaded with python-dotenv).

Example config.yml:

    channels:
      - label: Some Channel
        feed_url: https://www.youtube.com/feeds/videos.xml?channel_id=UC...
        format: audio
    storage:
      type: r2
      bucket: my-bucket
      public_url: https://pub.example.com
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from youpod.errors import ConfigError
from youpod.ingestion.listing import channel_id_from_feed_url
from youpod.ledger.models import MediaKind, slugify


@dataclass(frozen=True)
class SourceConfig:
    """One configured channel. ``source_id`` must never change once used."""

    source_id: str
    label: str
    feed_url: str
    media_kind: MediaKind = MediaKind.VIDEO
    icon_url: Optional[str] = None

    @property
    def channel_id(self) -> Optional[str]:
        return channel_id_from_feed_url(self.feed_url)


@dataclass
class StorageConfig:
    """Cloudflare R2 bucket settings"""

    type: str = "r2"
    bucket: Optional[str] = None
    public_url: Optional[str] = None

    # Credentials (from environment)
    account_id: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    @property
    def endpoint_url(self) -> Optional[str]:
        if not self.account_id:
            return None
        return f"https://{self.account_id}.r2.cloudflarestorage.com"


@dataclass
class FeedConfig:
    """Defaults applied to generated feeds"""

    max_items: int = 50
    aggregate_max_items: int = 100
    title: str = "YouPod"
    description: str = "YouTube channels as podcasts"
    site_url: str = "https://www.youtube.com"
    author: str = "YouPod"
    language: str = "en"
    copyright: Optional[str] = None
    categories: list[str] = field(default_factory=lambda: ["Technology"])
    explicit: bool = False


@dataclass
class AppConfig:
    """Configuration for one youpod installation"""

    sources: list[SourceConfig]
    storage: Optional[StorageConfig] = None
    feed: FeedConfig = field(default_factory=FeedConfig)

    # Layout, relative to root_dir
    root_dir: Path = Path(".")
    downloads_dir: str = "downloads"
    feeds_dir: str = "feeds"
    ledger_file: str = "data/download_history.tsv"

    @property
    def base_url(self) -> str:
        """Public URL the feeds are served from, or "" for relative feeds."""
        if self.storage is None:
            return ""
        if self.storage.public_url:
            return self.storage.public_url.rstrip("/")
        if self.storage.bucket:
            return f"https://{self.storage.bucket}.r2.dev"
        return ""

    def find_source(self, name: str) -> Optional[SourceConfig]:
        """Look up a source by slug or display label (case-insensitive)."""
        name = name.lower()
        for source in self.sources:
            if source.source_id.lower() == name or source.label.lower() == name:
                return source
        return None


def _parse_source(raw: Any, index: int) -> SourceConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"channels[{index}] must be a mapping")
    label = str(raw.get("label") or "").strip()
    feed_url = str(raw.get("feed_url") or "").strip()
    if not label or not feed_url:
        raise ConfigError(f"channels[{index}] needs both label and feed_url")

    slug = str(raw.get("slug") or slugify(label))
    if any(c in slug for c in "\t\r\n/"):
        raise ConfigError(f"channels[{index}] has an invalid slug {slug!r}")

    try:
        media_kind = MediaKind.parse(str(raw.get("format") or "video"))
    except ValueError:
        raise ConfigError(f"channels[{index}] has an unknown format {raw.get('format')!r}")

    return SourceConfig(
        source_id=slug,
        label=label,
        feed_url=feed_url,
        media_kind=media_kind,
        icon_url=raw.get("icon_url"),
    )


def _parse_feed(raw: Any) -> FeedConfig:
    if raw is None:
        return FeedConfig()
    if not isinstance(raw, dict):
        raise ConfigError("feed must be a mapping")
    known = {name for name in FeedConfig.__dataclass_fields__}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown feed settings: {', '.join(sorted(unknown))}")
    return FeedConfig(**raw)


def _parse_storage(raw: Any) -> Optional[StorageConfig]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ConfigError("storage must be a mapping")
    return StorageConfig(
        type=str(raw.get("type", "r2")),
        bucket=raw.get("bucket"),
        public_url=raw.get("public_url"),
        account_id=os.getenv("R2_ACCOUNT_ID", raw.get("account_id")),
        access_key_id=os.getenv("R2_ACCESS_KEY_ID", raw.get("access_key_id")),
        secret_access_key=os.getenv("R2_SECRET_ACCESS_KEY", raw.get("secret_access_key")),
    )


def load_config(config_path: str = "config.yml") -> AppConfig:
    """
    Load and validate the configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        AppConfig: Parsed configuration. ``root_dir`` is the config file's directory.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, has no
            ``channels`` list or defines the same slug twice
    """
    load_dotenv()

    path = Path(config_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")

    channels = data.get("channels")
    if not isinstance(channels, list):
        raise ConfigError("channels is missing from the config file or is not a list")

    sources = [_parse_source(raw, i) for i, raw in enumerate(channels)]
    seen = set()
    for source in sources:
        if source.source_id in seen:
            raise ConfigError(f"Duplicate channel slug {source.source_id!r}")
        seen.add(source.source_id)

    return AppConfig(
        sources=sources,
        storage=_parse_storage(data.get("storage")),
        feed=_parse_feed(data.get("feed")),
        root_dir=path.parent.resolve(),
    )
