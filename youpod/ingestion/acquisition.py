"""
Content acquisition through yt-dlp.

Materializes one listed item as ``<output_dir>/<item_id>.<ext>`` (mp3 for
audio sources, mp4 for video sources), retrying failed downloads with
exponential backoff.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from youpod.errors import AcquisitionFailed
from youpod.ledger.models import MediaKind
from youpod.logger import log_function
from .listing import ItemDescriptor

logger = logging.getLogger(__name__)

YTDLP_BINARY = "yt-dlp"

QUALITY_PRESETS = ("low", "medium", "high")

VIDEO_FORMATS = {
    "low": "worst[ext=mp4]/worst",
    "medium": "best[height<=720][ext=mp4]/best[height<=720]/best",
    "high": "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best",
}
AUDIO_QUALITY = {"low": "9", "medium": "5", "high": "0"}


@dataclass(frozen=True)
class AcquisitionResult:
    """Materialized artifact of one item"""

    local_path: Path
    size_bytes: int
    media_kind: MediaKind


def build_command(
    item: ItemDescriptor, output_dir: Path, media_kind: MediaKind, quality: str
) -> list[str]:
    """yt-dlp arguments writing the item to ``output_dir/<item_id>.<ext>``."""
    if quality not in QUALITY_PRESETS:
        raise ValueError(f"Unknown quality preset {quality!r}, expected one of {QUALITY_PRESETS}")

    template = str(output_dir / f"{item.item_id}.%(ext)s")
    command = [YTDLP_BINARY, item.url, "-o", template]

    if media_kind is MediaKind.AUDIO:
        command += ["-x", "--audio-format", "mp3", "--audio-quality", AUDIO_QUALITY[quality]]
    else:
        command += [
            "-f",
            VIDEO_FORMATS[quality],
            "--merge-output-format",
            "mp4",
            "--remux-video",
            "mp4",
        ]

    command += ["--no-playlist", "--no-warnings"]
    return command


def _locate_output(output_dir: Path, item_id: str, extension: str) -> Optional[Path]:
    """
    Find the downloaded file, renaming it to ``<item_id>.<extension>``.

    yt-dlp may pick a different extension than requested.
    """
    expected = output_dir / f"{item_id}.{extension}"
    if expected.is_file():
        return expected

    for candidate in sorted(output_dir.glob(f"{item_id}.*")):
        if candidate.suffix in (".part", ".ytdl") or not candidate.is_file():
            continue
        logger.info(f"Renaming {candidate.name} -> {expected.name}")
        candidate.rename(expected)
        return expected
    return None


def _cleanup_partial(output_dir: Path, item_id: str) -> None:
    for leftover in output_dir.glob(f"{item_id}.*"):
        try:
            leftover.unlink()
        except OSError as e:
            logger.warning(f"Could not remove partial file {leftover}: {e}")


@log_function(logger_name="youpod.ingestion")
def acquire(
    item: ItemDescriptor,
    output_dir,
    media_kind: MediaKind = MediaKind.VIDEO,
    quality: str = "medium",
    max_retries: int = 3,
    timeout: Optional[int] = 3600,
) -> AcquisitionResult:
    """
    Download one item with yt-dlp.

    An already existing ``<item_id>.<ext>`` file is reused without
    downloading. Failed attempts are cleaned up and retried after 1s, 2s,
    4s... up to ``max_retries`` attempts.

    Args:
        item: Listed item to download
        output_dir: Source download directory (created if needed)
        media_kind: AUDIO (mp3) or VIDEO (mp4)
        quality: One of "low", "medium", "high"
        max_retries: Number of attempts
        timeout: Per-attempt timeout in seconds

    Returns:
        AcquisitionResult: Path, size and kind of the artifact

    Raises:
        AcquisitionFailed: If every attempt failed
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    extension = media_kind.extension
    target = output_dir / f"{item.item_id}.{extension}"

    if target.is_file() and target.stat().st_size > 0:
        logger.info(f"File already exists: {target.name}")
        return AcquisitionResult(target, target.stat().st_size, media_kind)

    command = build_command(item, output_dir, media_kind, quality)
    last_error = ""

    for attempt in range(max_retries):
        logger.info(f"Downloading {item.item_id} (attempt {attempt + 1}/{max_retries}): {item.title}")
        try:
            subprocess.run(command, check=True, capture_output=True, text=True, timeout=timeout)
            path = _locate_output(output_dir, item.item_id, extension)
            if path is None:
                raise FileNotFoundError(f"yt-dlp finished but {target.name} was not found")

            size = path.stat().st_size
            logger.info(f"Downloaded {path.name} ({size:,} bytes)")
            return AcquisitionResult(path, size, media_kind)

        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            last_error = stderr.splitlines()[-1] if stderr else f"exit status {e.returncode}"
        except subprocess.TimeoutExpired:
            last_error = f"timed out after {timeout}s"
        except OSError as e:
            last_error = str(e)

        logger.warning(f"Download attempt {attempt + 1} failed for {item.item_id}: {last_error}")
        _cleanup_partial(output_dir, item.item_id)

        if attempt < max_retries - 1:
            wait_time = 2**attempt  # 1s, 2s, 4s
            logger.info(f"Waiting {wait_time}s before retry...")
            time.sleep(wait_time)

    logger.error(f"Failed to download {item.item_id} after {max_retries} attempts")
    raise AcquisitionFailed(item.item_id, max_retries, last_error)
