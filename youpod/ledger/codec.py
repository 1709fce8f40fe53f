"""
Line codec for the tab-separated ledger file.

One record per line, fields separated by a tab. The first line is a header
naming the columns; rows are mapped through it, so older rows that lack the
optional trailing columns still decode. Free-text descriptions are base64
encoded so tabs and newlines inside them cannot break the line format.
"""

import base64
import binascii
from typing import Optional

from youpod.errors import MalformedRecord
from .models import LedgerEntry, MediaKind

DELIMITER = "\t"

# Column order of the current schema. Append new optional columns at the end.
COLUMNS = (
    "sourceLabel",
    "itemId",
    "title",
    "localPath",
    "sizeBytes",
    "mediaKind",
    "publishedAt",
    "recordedAt",
    "description",
)
REQUIRED_COLUMNS = ("sourceLabel", "itemId", "localPath")

HEADER = DELIMITER.join(COLUMNS)

# Header names written by older versions of the ledger
_COLUMN_ALIASES = {
    "channelLabel": "sourceLabel",
    "videoId": "itemId",
    "filePath": "localPath",
    "fileSize": "sizeBytes",
    "format": "mediaKind",
    "downloadedAt": "recordedAt",
}


def encode_text(text: Optional[str]) -> str:
    """Reversibly encode free text into a delimiter-free field."""
    if not text:
        return ""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_text(field: Optional[str]) -> Optional[str]:
    """Inverse of :func:`encode_text`. Empty fields decode to ``None``."""
    if not field:
        return None
    try:
        return base64.b64decode(field.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise MalformedRecord(f"undecodable description field: {e}") from e


def clean_title(title: str) -> str:
    """Collapse characters that would break the line format into spaces."""
    return " ".join(title.replace("\t", " ").replace("\r", " ").split("\n"))


def _check_field(name: str, value: str) -> str:
    if any(c in value for c in (DELIMITER, "\n", "\r")):
        raise ValueError(f"{name} must not contain tabs or line breaks: {value!r}")
    return value


def encode_entry(entry: LedgerEntry) -> str:
    """
    Encode an entry as one ledger line (without the trailing newline).

    Raises:
        ValueError: If an id, path or timestamp contains a tab or line break.
    """
    fields = {
        "sourceLabel": _check_field("source_id", entry.source_id),
        "itemId": _check_field("item_id", entry.item_id),
        "title": clean_title(entry.title or ""),
        "localPath": _check_field("local_path", entry.local_path),
        "sizeBytes": str(int(entry.size_bytes)),
        "mediaKind": entry.media_kind.value,
        "publishedAt": _check_field("published_at", entry.published_at or ""),
        "recordedAt": _check_field("recorded_at", entry.recorded_at or ""),
        "description": encode_text(entry.description),
    }
    return DELIMITER.join(fields[column] for column in COLUMNS)


def parse_header(line: str) -> Optional[tuple[str, ...]]:
    """
    Return the column names if ``line`` is a header line, else ``None``.

    Unknown column names are kept so their positions still line up.
    """
    names = tuple(
        _COLUMN_ALIASES.get(name.strip(), name.strip())
        for name in line.rstrip("\r\n").split(DELIMITER)
    )
    if "itemId" in names:
        return names
    return None


def decode_entry(
    line: str,
    columns: tuple[str, ...] = COLUMNS,
    line_number: Optional[int] = None,
) -> LedgerEntry:
    """
    Decode one ledger line using the given column layout.

    Absent trailing columns are treated as unset. Extra columns beyond the
    layout are ignored.

    Raises:
        MalformedRecord: If a required field is missing or a value is invalid.
    """
    values = line.rstrip("\r\n").split(DELIMITER)
    row = {name: value for name, value in zip(columns, values)}

    for name in REQUIRED_COLUMNS:
        if not row.get(name, "").strip():
            raise MalformedRecord(f"missing required field {name}", line_number)

    size_field = row.get("sizeBytes", "").strip() or "0"
    try:
        size_bytes = int(size_field)
    except ValueError:
        raise MalformedRecord(f"invalid sizeBytes {size_field!r}", line_number)
    if size_bytes < 0:
        raise MalformedRecord(f"negative sizeBytes {size_bytes}", line_number)

    kind_field = row.get("mediaKind", "").strip()
    try:
        if kind_field:
            media_kind = MediaKind.parse(kind_field)
        else:
            media_kind = MediaKind.from_path(row["localPath"])
    except ValueError:
        raise MalformedRecord(f"unknown mediaKind {kind_field!r}", line_number)

    try:
        description = decode_text(row.get("description"))
    except MalformedRecord as e:
        raise MalformedRecord(str(e), line_number) from e

    return LedgerEntry(
        source_id=row["sourceLabel"].strip(),
        item_id=row["itemId"].strip(),
        title=row.get("title", ""),
        local_path=row["localPath"].strip(),
        size_bytes=size_bytes,
        media_kind=media_kind,
        published_at=row.get("publishedAt", "").strip(),
        recorded_at=row.get("recordedAt", "").strip() or None,
        description=description,
    )
