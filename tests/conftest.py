"""
Shared pytest fixtures for youpod tests.
"""
import pytest

from youpod.config import SourceConfig
from youpod.ingestion import ItemDescriptor
from youpod.ledger import LedgerEntry, LedgerStore, MediaKind


@pytest.fixture
def make_entry():
    """Factory for ledger entries with sensible defaults."""

    def _make(item_id="v1", source_id="ch1", published_at="2024-01-01T00:00:00Z", **kwargs):
        kwargs.setdefault("title", f"Title {item_id}")
        kwargs.setdefault("local_path", f"downloads/{source_id}/{item_id}.mp4")
        kwargs.setdefault("size_bytes", 1000)
        return LedgerEntry(
            source_id=source_id,
            item_id=item_id,
            published_at=published_at,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_descriptor():
    """Factory for listed items."""

    def _make(item_id, title=None, published_at="2024-01-01T00:00:00+00:00", **kwargs):
        return ItemDescriptor(
            item_id=item_id,
            title=title or f"Video {item_id}",
            url=f"https://www.youtube.com/watch?v={item_id}",
            published_at=published_at,
            **kwargs,
        )

    return _make


@pytest.fixture
def ledger(tmp_path):
    """Empty ledger rooted at a temporary directory."""
    store = LedgerStore.open(tmp_path)
    yield store
    store.close()


@pytest.fixture
def sources():
    """Two configured channels, ch1 (video) and ch2 (audio)."""
    return [
        SourceConfig(
            source_id="ch1",
            label="Channel One",
            feed_url="https://www.youtube.com/feeds/videos.xml?channel_id=UC111",
        ),
        SourceConfig(
            source_id="ch2",
            label="Channel Two",
            feed_url="https://www.youtube.com/feeds/videos.xml?channel_id=UC222",
            media_kind=MediaKind.AUDIO,
        ),
    ]
