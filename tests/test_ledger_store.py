"""
Tests for LedgerStore.
"""
import os

import pytest

from youpod.errors import StorageUnavailable, StorageWriteFailed
from youpod.ledger import DEFAULT_LEDGER_FILENAME, LedgerStore, MediaKind
from youpod.ledger import store as store_module
from youpod.ledger.codec import HEADER


def ledger_lines(root):
    return (root / DEFAULT_LEDGER_FILENAME).read_text(encoding="utf-8").splitlines()


def write_ledger(root, text):
    path = root / DEFAULT_LEDGER_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_open_creates_file_with_header(tmp_path):
    """Test opening a missing ledger creates it with only the header."""
    with LedgerStore.open(tmp_path) as store:
        assert len(store) == 0
        assert store.ledger_path == tmp_path / "data" / "download_history.tsv"

    assert ledger_lines(tmp_path) == [HEADER]


def test_record_single_entry(ledger, make_entry, tmp_path):
    """Test the v1/ch1 scenario: record, query, reopen."""
    stored = ledger.record_entry(make_entry("v1", "ch1"))

    assert ledger.has("v1")
    assert "v1" in ledger
    assert ledger.entries_for("ch1") == [stored]
    assert ledger.entries_for("ch2") == []
    assert len(ledger_lines(tmp_path)) == 2

    with LedgerStore.open(tmp_path) as reopened:
        assert reopened.entries() == [stored]


def test_record_is_idempotent(ledger, make_entry, tmp_path):
    """Test recording the same entry twice writes a single line."""
    first = ledger.record_entry(make_entry("v1"))
    second = ledger.record_entry(make_entry("v1"))

    assert second == first
    assert len(ledger) == 1
    assert len(ledger_lines(tmp_path)) == 2


def test_record_changed_entry_replaces_it(ledger, make_entry, tmp_path):
    """Test re-recording with new content rewrites instead of duplicating."""
    first = ledger.record_entry(make_entry("v1", title="Old title"))
    updated = ledger.record_entry(make_entry("v1", title="New title", size_bytes=2000))

    assert updated.title == "New title"
    assert updated.recorded_at == first.recorded_at
    assert len(ledger_lines(tmp_path)) == 2

    with LedgerStore.open(tmp_path) as reopened:
        assert reopened.get("v1").title == "New title"
        assert reopened.get("v1").size_bytes == 2000


def test_recorded_at_is_stamped(ledger, make_entry):
    """Test recorded_at is set on write and never goes backwards."""
    first = ledger.record_entry(make_entry("v1"))
    second = ledger.record_entry(make_entry("v2"))

    assert first.recorded_at.endswith("Z")
    assert second.recorded_at >= first.recorded_at


def test_reopen_round_trip(ledger, make_entry, tmp_path):
    """Test every field survives a close and reopen."""
    ledger.record_entry(make_entry("v1", "ch1", media_kind=MediaKind.VIDEO))
    ledger.record_entry(
        make_entry(
            "a1",
            "ch2",
            local_path="downloads/ch2/a1.mp3",
            media_kind=MediaKind.AUDIO,
            published_at="2024-02-01T12:30:00Z",
            description="About this episode",
        )
    )
    before = ledger.entries()
    ledger.close()

    with LedgerStore.open(tmp_path) as reopened:
        assert reopened.entries() == before
        assert reopened.source_ids() == ["ch1", "ch2"]


def test_description_with_tabs_and_newlines_round_trips(ledger, make_entry, tmp_path):
    """Test free text containing the delimiter and line breaks is preserved."""
    description = "first line\n\tindented\r\nlast line éè"
    ledger.record_entry(make_entry("v1", description=description))

    assert len(ledger_lines(tmp_path)) == 2

    with LedgerStore.open(tmp_path) as reopened:
        assert reopened.get("v1").description == description


def test_rerecording_empty_description_does_not_rewrite(ledger, make_entry, tmp_path, monkeypatch):
    """Test an entry with an empty description matches its stored copy."""
    ledger.record_entry(make_entry("v1", description=""))
    ledger.close()

    with LedgerStore.open(tmp_path) as reopened:
        def no_rewrite(entries):
            raise AssertionError("ledger was rewritten")

        monkeypatch.setattr(reopened, "_write_all", no_rewrite)
        stored = reopened.record_entry(make_entry("v1", description=""))

    assert stored.description is None


def test_title_line_breaks_are_collapsed(ledger, make_entry, tmp_path):
    """Test titles cannot break the line format."""
    ledger.record_entry(make_entry("v1", title="a\tb\nc"))

    with LedgerStore.open(tmp_path) as reopened:
        assert reopened.get("v1").title == "a b c"


def test_item_id_with_tab_is_rejected(ledger, make_entry):
    """Test ids that would corrupt the file are refused."""
    with pytest.raises(ValueError):
        ledger.record_entry(make_entry("bad\tid"))
    assert len(ledger) == 0


def test_absolute_path_is_stored_relative(ledger, make_entry, tmp_path):
    """Test artifact paths are stored relative to the ledger root."""
    absolute = tmp_path / "downloads" / "ch1" / "v1.mp4"
    stored = ledger.record_entry(make_entry("v1", local_path=str(absolute)))

    assert stored.local_path == "downloads/ch1/v1.mp4"
    assert ledger.resolve_path(stored) == absolute


def test_absolute_paths_in_file_are_normalized_on_open(tmp_path, make_entry):
    """Test a ledger written with absolute paths is rewritten relative."""
    absolute = tmp_path / "downloads" / "ch1" / "v1.mp4"
    write_ledger(tmp_path, f"{HEADER}\nch1\tv1\tTitle\t{absolute}\t10\tvideo\t\t\t\n")

    with LedgerStore.open(tmp_path) as store:
        assert store.get("v1").local_path == "downloads/ch1/v1.mp4"

    assert "downloads/ch1/v1.mp4" in ledger_lines(tmp_path)[1]
    assert str(absolute) not in ledger_lines(tmp_path)[1]


def test_malformed_lines_are_skipped(tmp_path):
    """Test bad rows are counted and skipped while good rows load."""
    write_ledger(
        tmp_path,
        f"{HEADER}\n"
        "ch1\tv1\tGood\tdownloads/ch1/v1.mp4\t10\tvideo\t2024-01-01T00:00:00Z\t\t\n"
        "garbage\n"
        "ch1\tv2\tBad size\tdownloads/ch1/v2.mp4\tlots\tvideo\t\t\t\n"
        "ch1\tv3\tBad text\tdownloads/ch1/v3.mp4\t10\tvideo\t\t\t!!notbase64!!\n",
    )

    with LedgerStore.open(tmp_path) as store:
        assert [entry.item_id for entry in store.entries()] == ["v1"]
        assert store.malformed_count == 3


def test_short_rows_use_defaults(tmp_path):
    """Test rows missing optional trailing columns still load."""
    write_ledger(tmp_path, f"{HEADER}\nch1\tv1\tOld row\tdownloads/ch1/v1.mp3\n")

    with LedgerStore.open(tmp_path) as store:
        entry = store.get("v1")

    assert entry.size_bytes == 0
    assert entry.media_kind is MediaKind.AUDIO
    assert entry.published_at == ""
    assert entry.description is None


def test_legacy_header_is_migrated(tmp_path):
    """Test a file written with the old column names is read and upgraded."""
    write_ledger(
        tmp_path,
        "videoId\ttitle\tchannelLabel\tfilePath\tfileSize\n"
        "v1\tLegacy\tChannel One\tdownloads/ch1/v1.mp4\t42\n",
    )

    with LedgerStore.open(tmp_path) as store:
        entry = store.get("v1")
        assert entry.source_id == "Channel One"
        assert entry.size_bytes == 42
        assert entry.media_kind is MediaKind.VIDEO

    assert ledger_lines(tmp_path)[0] == HEADER


def test_headerless_file_is_read_in_current_order(tmp_path):
    """Test a file without a header line is parsed and gets one."""
    write_ledger(tmp_path, "ch1\tv1\tNo header\tdownloads/ch1/v1.mp4\t5\tvideo\t\t\t\n")

    with LedgerStore.open(tmp_path) as store:
        assert store.get("v1").title == "No header"

    assert ledger_lines(tmp_path)[0] == HEADER


def test_duplicate_rows_keep_the_later_one(tmp_path):
    """Test duplicated item ids collapse to the last row."""
    write_ledger(
        tmp_path,
        f"{HEADER}\n"
        "ch1\tv1\tFirst\tdownloads/ch1/v1.mp4\t1\tvideo\t\t\t\n"
        "ch1\tv1\tSecond\tdownloads/ch1/v1.mp4\t2\tvideo\t\t\t\n",
    )

    with LedgerStore.open(tmp_path) as store:
        assert len(store) == 1
        assert store.get("v1").title == "Second"

    assert len(ledger_lines(tmp_path)) == 2


def test_append_after_unterminated_last_line(tmp_path, make_entry):
    """Test a record appended after a truncated write starts on its own line."""
    write_ledger(tmp_path, f"{HEADER}\nch1\tv1\tNo newline\tdownloads/ch1/v1.mp4\t1\tvideo\t\t\t")

    with LedgerStore.open(tmp_path) as store:
        store.record_entry(make_entry("v2"))

    with LedgerStore.open(tmp_path) as store:
        assert sorted(entry.item_id for entry in store.entries()) == ["v1", "v2"]
        assert store.malformed_count == 0


def test_entries_for_orders_newest_first(ledger, make_entry):
    """Test per-source views sort by date descending, then item id."""
    ledger.record_entry(make_entry("b", published_at="2024-01-01T00:00:00Z"))
    ledger.record_entry(make_entry("a", published_at="2024-01-01T00:00:00Z"))
    ledger.record_entry(make_entry("c", published_at="2024-03-01T00:00:00Z"))
    ledger.record_entry(make_entry("d", published_at=""))

    assert [entry.item_id for entry in ledger.entries_for("ch1")] == ["c", "a", "b", "d"]


def test_failed_rewrite_leaves_store_unchanged(ledger, make_entry, tmp_path, monkeypatch):
    """Test a failed update keeps memory and disk as they were."""
    ledger.record_entry(make_entry("v1", title="Original"))
    before = ledger_lines(tmp_path)

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(store_module.os, "replace", failing_replace)

    with pytest.raises(StorageWriteFailed):
        ledger.record_entry(make_entry("v1", title="Changed"))

    assert ledger.get("v1").title == "Original"
    assert ledger_lines(tmp_path) == before
    leftovers = [name for name in os.listdir(tmp_path / "data") if name.endswith(".tmp")]
    assert leftovers == []


def test_failed_append_does_not_record(ledger, make_entry, tmp_path, monkeypatch):
    """Test a failed append leaves the item unrecorded in memory and on disk."""
    before = ledger_lines(tmp_path)

    def failing_fsync(fd):
        raise OSError("I/O error")

    monkeypatch.setattr(store_module.os, "fsync", failing_fsync)

    with pytest.raises(StorageWriteFailed):
        ledger.record_entry(make_entry("v1"))

    assert not ledger.has("v1")
    assert ledger_lines(tmp_path) == before
    with LedgerStore.open(tmp_path) as reopened:
        assert not reopened.has("v1")

    monkeypatch.undo()
    ledger.record_entry(make_entry("v1"))

    assert len(ledger_lines(tmp_path)) == 2


def test_open_fails_when_ledger_cannot_be_created(tmp_path):
    """Test an unusable ledger location raises StorageUnavailable."""
    blocker = tmp_path / "data"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(StorageUnavailable):
        LedgerStore.open(tmp_path)


def test_update_and_remove(ledger, make_entry, tmp_path):
    """Test batch update and removal each rewrite the file once."""
    ledger.record_entry(make_entry("v1", source_id="Channel One"))
    ledger.record_entry(make_entry("v2"))

    changed = ledger.update_entries(
        [make_entry("v1", source_id="ch1", local_path="downloads/Channel One/v1.mp4"), make_entry("zz")]
    )
    assert changed == 1
    assert ledger.get("v1").source_id == "ch1"

    removed = ledger.remove(["v2", "missing"])
    assert [entry.item_id for entry in removed] == ["v2"]

    with LedgerStore.open(tmp_path) as reopened:
        assert [entry.item_id for entry in reopened.entries()] == ["v1"]
        assert reopened.get("v1").source_id == "ch1"


def test_closed_store_rejects_calls(tmp_path):
    """Test a closed store cannot be used."""
    store = LedgerStore.open(tmp_path)
    store.close()

    assert store.closed
    with pytest.raises(RuntimeError):
        store.has("v1")
