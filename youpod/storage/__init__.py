"""
Storage backends.

LocalStorage writes generated feeds under a local directory; CloudStorage
publishes feeds, artwork and media to a Cloudflare R2 bucket.
"""

from .base import BaseStorage
from .cloud import CloudStorage
from .local import LocalStorage

__all__ = [
    "BaseStorage",
    "CloudStorage",
    "LocalStorage",
]
