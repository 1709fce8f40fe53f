"""
Download ledger package.

Structure:
- models.py: LedgerEntry record and MediaKind enum
- codec.py: tab-separated line encoding (header, base64 descriptions)
- store.py: LedgerStore, the file-backed keyed store
- maintenance.py: prune / relabel / orphan-file passes
- __main__.py: maintenance CLI (uv run -m youpod.ledger)
"""

from .models import LedgerEntry, MediaKind, parse_timestamp, slugify, sort_newest_first
from .store import LedgerStore, DEFAULT_LEDGER_FILENAME

__all__ = [
    "LedgerEntry",
    "MediaKind",
    "LedgerStore",
    "DEFAULT_LEDGER_FILENAME",
    "parse_timestamp",
    "slugify",
    "sort_newest_first",
]
