"""Configuration (config.yml + environment) for youpod."""

from .settings import AppConfig, FeedConfig, SourceConfig, StorageConfig, load_config

__all__ = ["AppConfig", "FeedConfig", "SourceConfig", "StorageConfig", "load_config"]
