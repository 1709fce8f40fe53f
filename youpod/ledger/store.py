"""
Download ledger backed by a tab-separated text file.

The ledger remembers every item that was materialized locally, keyed by item
id, so repeated runs never acquire the same item twice. The whole file is
loaded into memory on open; new items are appended as single lines, while
updates to an existing item go through a full rewrite into a temporary file
that replaces the ledger atomically.

Usage:
    with LedgerStore.open("/srv/youpod") as ledger:
        if not ledger.has(video_id):
            ledger.record_entry(entry)
        entries = ledger.entries_for("some-channel")

A ledger file must only be written by one process at a time: there is no
file lock.
"""

import dataclasses
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from youpod.errors import MalformedRecord, StorageUnavailable, StorageWriteFailed
from .codec import COLUMNS, HEADER, decode_entry, encode_entry, parse_header
from .models import LedgerEntry, format_timestamp, parse_timestamp, sort_newest_first

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILENAME = "data/download_history.tsv"

PathLike = Union[str, os.PathLike]


class LedgerStore:
    """In-memory view of the ledger file, kept consistent with disk."""

    def __init__(self, root_dir: PathLike, ledger_path: PathLike):
        self.root_dir = Path(os.path.abspath(root_dir))
        self.ledger_path = Path(ledger_path)
        self.malformed_count = 0
        self._entries: dict[str, LedgerEntry] = {}
        self._last_recorded_at: Optional[datetime] = None
        self._closed = False

    @classmethod
    def open(
        cls, root_dir: PathLike = ".", filename: str = DEFAULT_LEDGER_FILENAME
    ) -> "LedgerStore":
        """
        Open (creating if needed) the ledger under ``root_dir`` and load it.

        Args:
            root_dir: Fixed root that artifact paths are stored relative to
            filename: Ledger file location, relative to ``root_dir``

        Returns:
            LedgerStore: The loaded store

        Raises:
            StorageUnavailable: If the ledger file cannot be created, read or written
        """
        root = Path(os.path.abspath(root_dir))
        store = cls(root, root / filename)
        store._ensure_file()
        store._load()
        return store

    # Lifecycle

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"Ledger {self.ledger_path} is closed")

    # Read view

    def has(self, item_id: str) -> bool:
        """Whether an entry with this item id has been recorded."""
        self._check_open()
        return item_id in self._entries

    def __contains__(self, item_id: str) -> bool:
        return self.has(item_id)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, item_id: str) -> Optional[LedgerEntry]:
        self._check_open()
        return self._entries.get(item_id)

    def entries(self) -> list[LedgerEntry]:
        """All entries in canonical (item id) order."""
        self._check_open()
        return [self._entries[item_id] for item_id in sorted(self._entries)]

    def entries_for(self, source_id: str) -> list[LedgerEntry]:
        """
        Entries of one source, newest first.

        Entries with the same publish date are ordered by item id.
        """
        self._check_open()
        return sort_newest_first(
            entry for entry in self._entries.values() if entry.source_id == source_id
        )

    def source_ids(self) -> list[str]:
        self._check_open()
        return sorted({entry.source_id for entry in self._entries.values()})

    def resolve_path(self, entry: LedgerEntry) -> Path:
        """Absolute location of an entry's artifact."""
        path = Path(entry.local_path)
        if path.is_absolute():
            return path
        return self.root_dir / path

    # Writes

    def record_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Record a materialized item.

        A new item id is appended as one line. Re-recording an item with the
        same content is a no-op; different content replaces the previous
        entry through a full rewrite. The in-memory view only changes once
        the write has succeeded.

        Args:
            entry: Entry to record. ``local_path`` may be absolute; it is
                stored relative to the ledger root. ``recorded_at`` is stamped
                when unset.

        Returns:
            LedgerEntry: The entry as stored

        Raises:
            StorageWriteFailed: If the ledger file could not be written
            ValueError: If an id or path contains a tab or line break
        """
        self._check_open()
        entry = self._normalize(entry)
        existing = self._entries.get(entry.item_id)

        if existing is not None and existing.same_content(entry):
            logger.debug(f"Item {entry.item_id} already recorded, nothing to do")
            return existing

        if entry.recorded_at is None:
            recorded_at = existing.recorded_at if existing else None
            entry = dataclasses.replace(
                entry, recorded_at=recorded_at or self._next_recorded_at()
            )

        if existing is None:
            self._append_line(encode_entry(entry))
            self._entries[entry.item_id] = entry
            logger.info(f"Recorded {entry.item_id} ({entry.source_id}): {entry.title}")
        else:
            updated = dict(self._entries)
            updated[entry.item_id] = entry
            self._write_all(updated)
            self._entries = updated
            logger.info(f"Updated ledger entry {entry.item_id} ({entry.source_id})")

        return entry

    def update_entries(self, entries: Iterable[LedgerEntry]) -> int:
        """
        Replace several existing entries with a single rewrite.

        Entries whose item id is unknown are ignored.

        Returns:
            int: Number of entries that changed
        """
        self._check_open()
        updated = dict(self._entries)
        changed = 0
        for entry in entries:
            entry = self._normalize(entry)
            existing = updated.get(entry.item_id)
            if existing is None or existing.same_content(entry):
                continue
            if entry.recorded_at is None:
                entry = dataclasses.replace(entry, recorded_at=existing.recorded_at)
            updated[entry.item_id] = entry
            changed += 1
        if changed:
            self._write_all(updated)
            self._entries = updated
        return changed

    def remove(self, item_ids: Iterable[str]) -> list[LedgerEntry]:
        """
        Drop entries by item id with a single rewrite.

        Only used by maintenance; normal operation never deletes entries.

        Returns:
            list[LedgerEntry]: The removed entries
        """
        self._check_open()
        remaining = dict(self._entries)
        removed = [remaining.pop(item_id) for item_id in item_ids if item_id in remaining]
        if removed:
            self._write_all(remaining)
            self._entries = remaining
            logger.info(f"Removed {len(removed)} entries from {self.ledger_path}")
        return removed

    def rewrite_all(self) -> None:
        """
        Write every entry back to disk in canonical order.

        Raises:
            StorageWriteFailed: If the replacement file could not be written
        """
        self._check_open()
        self._write_all(self._entries)

    # Internals

    def _normalize(self, entry: LedgerEntry) -> LedgerEntry:
        relative = self._relative_path(entry.local_path)
        if relative == entry.local_path:
            return entry
        return dataclasses.replace(entry, local_path=relative)

    def _relative_path(self, local_path: str) -> str:
        path = Path(local_path)
        if not path.is_absolute():
            return path.as_posix()
        try:
            return Path(os.path.relpath(path, self.root_dir)).as_posix()
        except ValueError:
            # Different drive on Windows
            logger.warning(f"Cannot store {local_path} relative to {self.root_dir}")
            return path.as_posix()

    def _next_recorded_at(self) -> str:
        now = datetime.now(timezone.utc)
        if self._last_recorded_at is not None and now < self._last_recorded_at:
            now = self._last_recorded_at
        self._last_recorded_at = now
        return format_timestamp(now)

    def _ensure_file(self) -> None:
        try:
            self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
            if not self.ledger_path.exists() or self.ledger_path.stat().st_size == 0:
                with open(self.ledger_path, "w", encoding="utf-8", newline="\n") as f:
                    f.write(HEADER + "\n")
                logger.info(f"Created ledger file {self.ledger_path}")
        except OSError as e:
            raise StorageUnavailable(f"Cannot create ledger {self.ledger_path}: {e}") from e

        if not os.access(self.ledger_path, os.R_OK | os.W_OK):
            raise StorageUnavailable(f"Ledger {self.ledger_path} is not readable and writable")

    def _load(self) -> None:
        try:
            raw_lines = self.ledger_path.read_bytes().splitlines()
        except OSError as e:
            raise StorageUnavailable(f"Cannot read ledger {self.ledger_path}: {e}") from e

        columns: Optional[tuple[str, ...]] = None
        entries: dict[str, LedgerEntry] = {}
        needs_rewrite = False

        for line_number, raw in enumerate(raw_lines, start=1):
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError:
                self._skip_line(MalformedRecord("not valid UTF-8", line_number))
                continue
            if not line.strip():
                continue

            if columns is None:
                columns = parse_header(line)
                if columns is not None:
                    needs_rewrite = columns != COLUMNS
                    continue
                # No header: assume the current column order
                columns = COLUMNS
                needs_rewrite = True

            try:
                entry = decode_entry(line, columns, line_number)
            except MalformedRecord as e:
                self._skip_line(e)
                continue

            normalized = self._normalize(entry)
            if normalized is not entry:
                needs_rewrite = True
            if normalized.item_id in entries:
                logger.warning(
                    f"Duplicate item {normalized.item_id} at line {line_number}, keeping the later row"
                )
                needs_rewrite = True
            entries[normalized.item_id] = normalized

            recorded = parse_timestamp(normalized.recorded_at)
            if self._last_recorded_at is None or recorded > self._last_recorded_at:
                self._last_recorded_at = recorded

        self._entries = entries
        logger.info(
            f"Loaded {len(entries)} ledger entries from {self.ledger_path}"
            + (f" ({self.malformed_count} malformed lines skipped)" if self.malformed_count else "")
        )

        if needs_rewrite:
            logger.info(f"Normalizing ledger file {self.ledger_path}")
            try:
                self._write_all(entries)
            except StorageWriteFailed as e:
                raise StorageUnavailable(str(e)) from e

    def _skip_line(self, error: MalformedRecord) -> None:
        self.malformed_count += 1
        logger.warning(f"Skipping malformed ledger record in {self.ledger_path}: {error}")

    def _ends_with_newline(self) -> bool:
        with open(self.ledger_path, "rb") as f:
            f.seek(0, os.SEEK_END)
            if f.tell() == 0:
                return True
            f.seek(-1, os.SEEK_END)
            return f.read(1) == b"\n"

    def _append_line(self, line: str) -> None:
        size = None
        try:
            size = os.path.getsize(self.ledger_path)
            # A crash can leave the last line unterminated
            prefix = "" if self._ends_with_newline() else "\n"
            with open(self.ledger_path, "a", encoding="utf-8", newline="\n") as f:
                f.write(prefix + line + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            if size is not None:
                self._truncate(size)
            raise StorageWriteFailed(f"Cannot append to ledger {self.ledger_path}: {e}") from e

    def _truncate(self, size: int) -> None:
        """Cut the file back to ``size`` bytes after a failed append."""
        try:
            os.truncate(self.ledger_path, size)
        except OSError as e:
            logger.error(f"Cannot roll back partial append to {self.ledger_path}: {e}")

    def _write_all(self, entries: dict[str, LedgerEntry]) -> None:
        lines = [HEADER] + [encode_entry(entries[item_id]) for item_id in sorted(entries)]
        content = "\n".join(lines) + "\n"

        temp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                newline="\n",
                dir=self.ledger_path.parent,
                prefix=f".{self.ledger_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as temp_file:
                temp_name = temp_file.name
                temp_file.write(content)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            os.replace(temp_name, self.ledger_path)
        except OSError as e:
            if temp_name and os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError:
                    logger.warning(f"Could not remove temporary file {temp_name}")
            raise StorageWriteFailed(f"Cannot rewrite ledger {self.ledger_path}: {e}") from e

        logger.debug(f"Rewrote {self.ledger_path} with {len(entries)} entries")
