"""
Tests for podcast feed generation.
"""
import xml.etree.ElementTree as ET

from youpod.feeds import FeedOptions, build_aggregate_feed, build_all, build_source_feed
from youpod.storage import BaseStorage, LocalStorage

ATOM = "{http://www.w3.org/2005/Atom}"
ITUNES = "{http://www.itunes.com/dtds/podcast-1.0.dtd}"


class RecordingSink(BaseStorage):
    def __init__(self):
        self.saved = {}

    def file_exist(self, workspace, filename):
        return self._join(workspace, filename) in self.saved

    def _get_absolute_filename(self, workspace, filename):
        return self._join(workspace, filename)

    def save_file(self, workspace, filename, content):
        path = self._get_absolute_filename(workspace, filename)
        self.saved[path] = content
        return path


def channel_of(document):
    return ET.fromstring(document.xml.encode("utf-8")).find("channel")


def guids(document):
    return [item.findtext("guid") for item in channel_of(document).findall("item")]


def enclosures(document):
    return [item.find("enclosure").get("url") for item in channel_of(document).findall("item")]


def test_source_feed_is_sorted_then_truncated(sources, make_entry):
    """Test the newest items are kept when the cap applies after sorting."""
    entries = [
        make_entry("old", published_at="2023-01-01T00:00:00Z"),
        make_entry("newest", published_at="2024-05-01T00:00:00Z"),
        make_entry("middle", published_at="2024-01-01T00:00:00Z"),
        make_entry("oldest", published_at="2022-01-01T00:00:00Z"),
    ]

    document = build_source_feed(sources[0], entries, FeedOptions(max_items=2))

    assert guids(document) == ["newest", "middle"]
    assert document.path == "podcasts/ch1/feed.xml"


def test_ties_are_ordered_by_item_id(sources, make_entry):
    """Test entries with the same date are ordered by id."""
    entries = [make_entry(i, published_at="2024-01-01T00:00:00Z") for i in ("b", "c", "a")]

    assert guids(build_source_feed(sources[0], entries)) == ["a", "b", "c"]


def test_source_feed_channel_metadata(sources, make_entry):
    """Test channel-level elements of a per-source feed."""
    document = build_source_feed(sources[0], [make_entry("v1", published_at="2024-01-02T00:00:00Z")])
    channel = channel_of(document)

    assert channel.findtext("title") == "Channel One"
    assert channel.findtext("link") == "https://www.youtube.com/channel/UC111"
    assert channel.find(f"{ATOM}link").get("href") == "feed.xml"
    assert channel.findtext("image/url") == "icon.jpg"
    assert channel.findtext("lastBuildDate") == "Tue, 02 Jan 2024 00:00:00 GMT"
    assert channel.findtext(f"{ITUNES}author") == "Channel One"
    assert channel.find(f"{ITUNES}category").get("text") == "Technology"
    assert channel.find("copyright") is None


def test_source_feed_item_elements(sources, make_entry):
    """Test one item carries its enclosure, dates and remote link."""
    entry = make_entry(
        "v1",
        title="Episode 1",
        description="Show notes",
        size_bytes=4242,
        published_at="2024-01-02T00:00:00Z",
    )
    item = channel_of(build_source_feed(sources[0], [entry])).find("item")

    assert item.findtext("title") == "Episode 1"
    assert item.findtext("description") == "Show notes"
    assert item.findtext("link") == "https://www.youtube.com/watch?v=v1"
    assert item.find("guid").get("isPermaLink") == "false"
    assert item.findtext("pubDate") == "Tue, 02 Jan 2024 00:00:00 GMT"
    enclosure = item.find("enclosure")
    assert enclosure.get("url") == "media/v1.mp4"
    assert enclosure.get("length") == "4242"
    assert enclosure.get("type") == "video/mp4"


def test_control_characters_are_dropped(sources, make_entry):
    """Test text with XML-illegal control characters still gives a parseable feed."""
    entry = make_entry("v1", title="Bell\x07title", description="form\x0cfeed")

    item = channel_of(build_source_feed(sources[0], [entry])).find("item")
    assert item.findtext("title") == "Belltitle"
    assert item.findtext("description") == "formfeed"
    assert item.findtext(f"{ITUNES}summary") == "formfeed"

    aggregate = build_aggregate_feed(sources, {"ch1": [entry]})
    assert guids(aggregate) == ["v1"]


def test_base_url_makes_references_absolute(sources, make_entry):
    """Test a base URL switches every hosted reference to an absolute URL."""
    options = FeedOptions(base_url="https://cdn.example.com/")
    document = build_source_feed(sources[0], [make_entry("v1")], options)
    channel = channel_of(document)

    assert channel.find(f"{ATOM}link").get("href") == "https://cdn.example.com/podcasts/ch1/feed.xml"
    assert channel.findtext("image/url") == "https://cdn.example.com/podcasts/ch1/icon.jpg"
    assert enclosures(document) == ["https://cdn.example.com/podcasts/ch1/media/v1.mp4"]
    assert channel.find("item").findtext("link") == "https://www.youtube.com/watch?v=v1"


def test_generation_is_deterministic(sources, make_entry):
    """Test identical inputs give byte-identical documents."""
    entries = [make_entry("v1"), make_entry("v2", published_at="2024-02-01T00:00:00Z")]

    first = build_source_feed(sources[0], entries).xml
    second = build_source_feed(sources[0], list(reversed(entries))).xml

    assert first == second
    assert first.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')


def test_empty_source_feed_has_no_build_date(sources):
    """Test no wall-clock date is written for an empty feed."""
    channel = channel_of(build_source_feed(sources[0], []))

    assert channel.find("lastBuildDate") is None
    assert channel.findall("item") == []


def test_aggregate_feed_merges_sources(sources, make_entry):
    """Test the aggregate feed interleaves sources by date."""
    entries_by_source = {
        "ch1": [
            make_entry("v1", "ch1", published_at="2024-01-02T00:00:00Z"),
            make_entry("v3", "ch1", published_at="2024-01-01T00:00:00Z"),
        ],
        "ch2": [
            make_entry(
                "v2",
                "ch2",
                local_path="downloads/ch2/v2.mp3",
                media_kind="audio",
                published_at="2024-01-03T00:00:00Z",
            )
        ],
    }

    document = build_aggregate_feed(sources, entries_by_source)

    assert document.path == "podcasts/all/feed.xml"
    assert guids(document) == ["v2", "v1", "v3"]
    assert enclosures(document) == [
        "../ch2/media/v2.mp3",
        "../ch1/media/v1.mp4",
        "../ch1/media/v3.mp4",
    ]
    items = channel_of(document).findall("item")
    assert items[0].find(f"{ITUNES}image").get("href") == "../ch2/icon.jpg"
    assert items[0].find("enclosure").get("type") == "audio/mpeg"


def test_aggregate_feed_with_base_url(sources, make_entry):
    """Test aggregate references point at each item's own source."""
    entries_by_source = {"ch2": [make_entry("v2", "ch2")]}

    document = build_aggregate_feed(
        sources, entries_by_source, FeedOptions(base_url="https://cdn.example.com")
    )

    assert enclosures(document) == ["https://cdn.example.com/podcasts/ch2/media/v2.mp4"]
    assert channel_of(document).findtext("image/url") == "https://cdn.example.com/podcasts/all/icon.jpg"


def test_aggregate_feed_cap_and_dedupe(sources, make_entry):
    """Test the aggregate cap and that an id listed twice appears once."""
    entries_by_source = {
        "ch1": [make_entry("dup", "ch1", title="From ch1")],
        "ch2": [
            make_entry("dup", "ch2", title="From ch2"),
            make_entry("other", "ch2", published_at="2023-01-01T00:00:00Z"),
        ],
    }

    document = build_aggregate_feed(sources, entries_by_source, FeedOptions(max_items=1))

    assert guids(document) == ["dup"]
    assert channel_of(document).find("item").findtext("title") == "From ch1"


def test_aggregate_feed_keeps_unknown_sources(sources, make_entry):
    """Test entries of unconfigured sources are kept under a derived slug."""
    entries_by_source = {
        "Old Label": [make_entry("x1", "Old Label")],
        "Channel One": [make_entry("x2", "Channel One", published_at="2023-06-01T00:00:00Z")],
    }

    document = build_aggregate_feed(sources, entries_by_source)

    assert enclosures(document) == ["../old-label/media/x1.mp4", "../ch1/media/x2.mp4"]


def test_build_all_writes_feeds_and_aggregate_last(sources, make_entry):
    """Test sources without entries are skipped and the aggregate is written."""
    sink = RecordingSink()
    entries_by_source = {"ch1": [make_entry("v1", "ch1")]}

    written = build_all(sources, entries_by_source, sink, FeedOptions(max_items=5))

    assert written == ["podcasts/ch1/feed.xml", "podcasts/all/feed.xml"]
    assert set(sink.saved) == set(written)
    aggregate_channel = ET.fromstring(sink.saved["podcasts/all/feed.xml"].encode("utf-8")).find("channel")
    assert aggregate_channel.findtext("title") == "YouPod"


def test_build_all_includes_rows_stored_under_label(sources, make_entry):
    """Test a source feed also picks up rows recorded under its display label."""
    sink = RecordingSink()
    entries_by_source = {
        "ch1": [make_entry("v1", "ch1")],
        "Channel One": [make_entry("v0", "Channel One", published_at="2023-01-01T00:00:00Z")],
    }

    build_all(sources, entries_by_source, sink)

    channel = ET.fromstring(sink.saved["podcasts/ch1/feed.xml"].encode("utf-8")).find("channel")
    assert [item.findtext("guid") for item in channel.findall("item")] == ["v1", "v0"]


def test_build_all_into_local_storage(sources, make_entry, tmp_path):
    """Test feeds land in the podcasts/ layout of a local directory."""
    build_all(sources, {"ch2": [make_entry("a1", "ch2")]}, LocalStorage(tmp_path))

    assert (tmp_path / "podcasts" / "ch2" / "feed.xml").is_file()
    assert (tmp_path / "podcasts" / "all" / "feed.xml").is_file()
    assert not (tmp_path / "podcasts" / "ch1").exists()
