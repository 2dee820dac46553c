"""Tests for AppState: feed, swipes and the ledger-to-library wiring."""

from __future__ import annotations

from ai4paper.app_state import AppState
from ai4paper.catalog import PaperCatalog
from ai4paper.models import LibraryQuery, ReadStatus, SwipeAction


class TestFeed:
    """Tests for feed membership and swiping."""

    def test_initial_feed_is_whole_catalog(self, app_state, sample_papers):
        assert app_state.feed_papers == sample_papers
        assert app_state.current_paper == sample_papers[0]

    def test_like_current_saves_and_advances(self, app_state, sample_papers):
        liked = app_state.like_current()
        assert liked == sample_papers[0]
        assert app_state.ledger.is_saved(liked.id)
        assert app_state.current_paper == sample_papers[1]
        assert app_state.ledger.events[-1].action == SwipeAction.LIKE

    def test_dislike_current(self, app_state, sample_papers):
        disliked = app_state.dislike_current()
        assert disliked.id in app_state.ledger.disliked_ids
        assert disliked not in app_state.feed_papers
        assert app_state.library.meta(disliked.id) is None

    def test_empty_feed(self, app_state):
        while app_state.like_current() is not None:
            pass
        assert app_state.feed_papers == []
        assert app_state.like_current() is None
        assert app_state.dislike_current() is None

    def test_remove_saved_returns_to_feed(self, app_state, sample_papers):
        paper = app_state.like_current()
        app_state.remove_saved(paper.id)
        assert app_state.current_paper == paper


class TestLibraryWiring:
    """Tests for metadata following the saved set."""

    def test_like_creates_meta(self, app_state):
        paper = app_state.like_current()
        meta = app_state.library.meta(paper.id)
        assert meta is not None
        assert meta.status == ReadStatus.UNREAD

    def test_like_files_into_active_folder(self, app_state):
        folder = app_state.library.add_folder("Inbox")
        app_state.library.active_folder_id = folder.id
        paper = app_state.like_current()
        assert app_state.library.meta(paper.id).folder_id == folder.id

    def test_unsave_deletes_meta(self, app_state):
        paper = app_state.like_current()
        app_state.library.update_tags(paper.id, ["keep?"])
        app_state.remove_saved(paper.id)
        assert app_state.library.meta(paper.id) is None

    def test_dislike_of_saved_paper_deletes_meta(self, app_state):
        paper = app_state.like_current()
        app_state.dislike(paper.id)
        assert app_state.library.meta(paper.id) is None

    def test_open_syncs_ledger_saved_earlier(self, sample_papers, make_ledger, make_library):
        ledger = make_ledger()
        ledger.save(sample_papers[2].id)

        state = AppState(PaperCatalog(sample_papers), make_ledger(), make_library())
        assert state.library.meta(sample_papers[2].id) is not None
        state.close()

    def test_close_unsubscribes(self, app_state, sample_papers):
        app_state.close()
        app_state.like(sample_papers[0].id)
        assert app_state.library.meta(sample_papers[0].id) is None

    def test_open_from_data_dir(self, tmp_path, sample_papers, clock):
        state = AppState.open(PaperCatalog(sample_papers), tmp_path / "data", clock=clock)
        state.like(sample_papers[0].id)
        state.close()

        reopened = AppState.open(PaperCatalog(sample_papers), tmp_path / "data", clock=clock)
        assert reopened.ledger.is_saved(sample_papers[0].id)
        assert reopened.library.meta(sample_papers[0].id) is not None
        assert (tmp_path / "data" / "library_store.json").exists()
        assert (tmp_path / "data" / "settings.db").exists()
        reopened.close()


class TestLibraryView:
    """Tests for the saved-paper views."""

    def test_saved_papers_in_catalog_order(self, app_state, sample_papers):
        app_state.like(sample_papers[3].id)
        app_state.like(sample_papers[1].id)
        assert app_state.saved_papers == [sample_papers[1], sample_papers[3]]

    def test_saved_ids_missing_from_catalog_are_hidden(self, app_state):
        app_state.like("not-in-corpus")
        assert app_state.saved_papers == []
        assert app_state.library.meta("not-in-corpus") is not None

    def test_library_view_applies_query(self, app_state, sample_papers):
        for paper in sample_papers:
            app_state.like(paper.id)
        app_state.library.update_status(sample_papers[0].id, ReadStatus.FINISHED)

        groups = app_state.library_view(LibraryQuery(status=ReadStatus.FINISHED))
        assert [item.id for item in groups[0].items] == [sample_papers[0].id]

    def test_library_view_default_is_newest_first(self, app_state, sample_papers):
        app_state.like(sample_papers[0].id)
        app_state.like(sample_papers[1].id)
        groups = app_state.library_view()
        assert [item.id for item in groups[0].items] == [
            sample_papers[1].id,
            sample_papers[0].id,
        ]

    def test_paper_lookup(self, app_state, sample_papers):
        assert app_state.paper(sample_papers[0].id) == sample_papers[0]
        assert app_state.paper("missing") is None
