"""Tests for library export and import."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ai4paper.export import EXPORT_FORMAT, export_library, import_library
from ai4paper.models import ReadStatus
from ai4paper.persistence import write_json_atomic
from ai4paper.query import sort_items


@pytest.fixture
def populated(ledger, library):
    """A ledger/library pair with one folder tree and two annotated papers."""
    unsubscribe = ledger.subscribe(library.sync_saved_ids)
    ml = library.add_folder("ML")
    sub = library.add_folder("Graphs", ml.id)
    ledger.save("p1")
    ledger.save("p2")
    ledger.dislike("p3")
    library.update_folder("p1", sub.id)
    library.update_tags("p1", ["gnn"])
    library.update_status("p1", ReadStatus.READING)
    library.update_note("p2", "read later")
    yield ledger, library
    unsubscribe()


@pytest.fixture
def fresh(make_ledger, make_library, tmp_path):
    """An empty ledger/library pair in another directory."""
    other = tmp_path / "other"
    ledger = make_ledger(other / "settings.db")
    library = make_library(other / "library_store.json")
    unsubscribe = ledger.subscribe(library.sync_saved_ids)
    yield ledger, library
    unsubscribe()


class TestExport:
    def test_export_contents(self, populated):
        ledger, library = populated
        data = export_library(library, ledger)
        assert data["format"] == EXPORT_FORMAT
        assert data["version"] == 1
        assert data["saved_ids"] == ["p1", "p2"]
        assert data["disliked_ids"] == ["p3"]
        assert {f["name"] for f in data["folders"]} == {"ML", "Graphs"}
        assert {m["paperId"] for m in data["metas"]} == {"p1", "p2"}


class TestImport:
    """Tests for merging and replacing from an export."""

    def test_import_into_empty_library(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh

        saved, folders, metas = import_library(data, library, ledger)

        assert (saved, folders, metas) == (2, 2, 2)
        assert ledger.saved_ids == {"p1", "p2"}
        assert ledger.disliked_ids == {"p3"}
        meta = library.meta("p1")
        assert [f.name for f in library.folder_path(meta.folder_id)] == ["ML", "Graphs"]
        assert meta.tags == ["gnn"]
        assert meta.status == ReadStatus.READING
        assert library.meta("p2").note == "read later"

    def test_import_twice_does_not_duplicate_folders(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        import_library(data, library, ledger)
        _, folders, _ = import_library(data, library, ledger)
        assert folders == 0
        assert len(library.folders) == 2

    def test_merge_keeps_local_values(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        ledger.save("p1")
        library.update_tags("p1", ["local"])
        library.update_status("p1", ReadStatus.FINISHED)
        library.update_note("p1", "mine")

        import_library(data, library, ledger, merge=True)

        meta = library.meta("p1")
        assert meta.tags == ["local", "gnn"]
        assert meta.status == ReadStatus.FINISHED
        assert meta.note == "mine"

    def test_replace_overwrites_and_drops_local_folders(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        library.add_folder("Local only")
        ledger.save("p1")
        library.update_tags("p1", ["local"])

        import_library(data, library, ledger, merge=False)

        assert {f.name for f in library.folders} == {"ML", "Graphs"}
        assert library.meta("p1").tags == ["gnn"]

    def test_locally_saved_paper_is_not_disliked(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        ledger.save("p3")
        import_library(data, library, ledger)
        assert ledger.is_saved("p3")
        assert "p3" not in ledger.disliked_ids

    def test_metas_for_unsaved_papers_are_ignored(self, fresh):
        ledger, library = fresh
        data = {
            "format": EXPORT_FORMAT,
            "saved_ids": ["p1"],
            "metas": [{"paperId": "p9", "tags": ["x"]}, {"paperId": "p1", "folderId": ["bad"]}],
        }
        assert import_library(data, library, ledger) == (1, 0, 1)
        assert library.meta("p9") is None
        assert library.meta("p1").folder_id is None

    def test_import_batches_library_writes(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        with patch("ai4paper.library.write_json_atomic", wraps=write_json_atomic) as writer:
            import_library(data, library, ledger)
        assert writer.call_count == 1
        assert len(library.metas) == 2

    def test_import_keeps_saved_and_updated_times(self, populated, fresh, make_paper):
        source = populated[1]
        data = export_library(source, populated[0])
        ledger, library = fresh
        import_library(data, library, ledger)

        for paper_id in ("p1", "p2"):
            assert library.meta(paper_id).saved_at == source.meta(paper_id).saved_at
            assert library.meta(paper_id).updated_at == source.meta(paper_id).updated_at
        papers = [make_paper("p1"), make_paper("p2")]
        ordered = sort_items(library.items(papers), "saved")
        assert [item.id for item in ordered] == ["p2", "p1"]

    def test_import_leaves_existing_saved_times(self, populated, fresh):
        data = export_library(populated[1], populated[0])
        ledger, library = fresh
        ledger.save("p1")
        local_saved_at = library.meta("p1").saved_at
        import_library(data, library, ledger)
        assert library.meta("p1").saved_at == local_saved_at
        assert library.meta("p2").saved_at == populated[1].meta("p2").saved_at

    @pytest.mark.parametrize("data", [[], {"format": "other"}, {"saved_ids": ["p1"]}])
    def test_invalid_export_raises(self, fresh, data):
        ledger, library = fresh
        with pytest.raises(ValueError, match="Not a valid ai4paper library export"):
            import_library(data, library, ledger)
