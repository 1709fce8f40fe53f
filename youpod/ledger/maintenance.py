"""
Ledger maintenance passes.

These are explicit, operator-triggered repairs; the normal pipeline never
deletes ledger entries.

Passes:
    prune_missing: drop entries whose artifact file is gone
    relabel_entries: move entries recorded under a display label (or a stale
        slug) back to the configured source slug
    find_orphan_files / delete_orphan_files: media files no entry references
"""

import dataclasses
import logging
from pathlib import Path
from typing import Iterable

from youpod.config.settings import SourceConfig
from youpod.logger import log_function
from .models import LedgerEntry
from .store import LedgerStore

logger = logging.getLogger(__name__)

MEDIA_SUFFIXES = {".mp3", ".mp4", ".m4a", ".webm", ".mkv", ".part"}


@log_function(logger_name="youpod.ledger")
def prune_missing(store: LedgerStore, dry_run: bool = False) -> list[LedgerEntry]:
    """
    Remove entries whose artifact no longer exists on disk.

    Args:
        store: Open ledger
        dry_run: If True, only report what would be removed

    Returns:
        list[LedgerEntry]: Entries that were (or would be) removed
    """
    missing = [entry for entry in store.entries() if not store.resolve_path(entry).is_file()]
    for entry in missing:
        logger.info(f"Artifact missing for {entry.item_id}: {entry.local_path}")

    if missing and not dry_run:
        store.remove(entry.item_id for entry in missing)
    return missing


def _slug_from_path(local_path: str) -> str:
    """``downloads/<slug>/<item>.mp4`` -> ``<slug>``"""
    return Path(local_path).parent.name


@log_function(logger_name="youpod.ledger")
def relabel_entries(
    store: LedgerStore, sources: Iterable[SourceConfig], dry_run: bool = False
) -> list[LedgerEntry]:
    """
    Rewrite entries whose source is not a configured slug.

    The slug is taken from the artifact's directory when it names a
    configured source, otherwise from a source whose display label matches
    the stored value (case-insensitive). Entries matching neither are left
    alone and reported.

    Returns:
        list[LedgerEntry]: The corrected entries
    """
    sources = list(sources)
    slugs = {source.source_id for source in sources}
    by_label = {source.label.lower(): source.source_id for source in sources}

    corrected = []
    for entry in store.entries():
        if entry.source_id in slugs:
            continue
        slug = _slug_from_path(entry.local_path)
        if slug not in slugs:
            slug = by_label.get(entry.source_id.lower())
        if slug is None:
            logger.warning(
                f"No configured source for {entry.item_id} (stored as {entry.source_id!r})"
            )
            continue
        logger.info(f"Relabel {entry.item_id}: {entry.source_id!r} -> {slug!r}")
        corrected.append(dataclasses.replace(entry, source_id=slug))

    if corrected and not dry_run:
        store.update_entries(corrected)
    return corrected


def find_orphan_files(store: LedgerStore, downloads_dir) -> list[Path]:
    """Media files under ``downloads_dir`` that no ledger entry points to."""
    downloads = Path(downloads_dir)
    if not downloads.is_dir():
        return []

    referenced = {store.resolve_path(entry).resolve() for entry in store.entries()}
    return sorted(
        path
        for path in downloads.rglob("*")
        if path.is_file()
        and path.suffix.lower() in MEDIA_SUFFIXES
        and path.resolve() not in referenced
    )


def delete_orphan_files(paths: Iterable[Path]) -> int:
    """Delete the given files, returning how many were removed."""
    deleted = 0
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        logger.info(f"Deleted orphan file {path}")
        deleted += 1
    return deleted
