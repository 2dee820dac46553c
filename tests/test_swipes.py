"""Tests for SwipeLedger saved/disliked sets, events and notifications."""

from __future__ import annotations

from unittest.mock import MagicMock

from ai4paper.models import SwipeAction
from ai4paper.persistence import SettingsStore
from ai4paper.swipes import DISLIKED_KEY, EVENTS_KEY, SAVED_KEY, SwipeLedger


class TestSaveAndDislike:
    """Tests for the mutually exclusive saved and disliked sets."""

    def test_save(self, ledger):
        ledger.save("p1")
        assert ledger.saved_ids == {"p1"}
        assert ledger.is_saved("p1")
        assert not ledger.is_in_feed("p1")

    def test_dislike_after_save_moves_paper(self, ledger):
        ledger.save("p1")
        ledger.dislike("p1")
        assert ledger.saved_ids == frozenset()
        assert ledger.disliked_ids == {"p1"}

    def test_save_after_dislike_moves_paper(self, ledger):
        ledger.dislike("p1")
        ledger.save("p1")
        assert ledger.saved_ids == {"p1"}
        assert ledger.disliked_ids == frozenset()

    def test_remove_saved_returns_paper_to_feed(self, ledger):
        ledger.save("p1")
        ledger.remove_saved("p1")
        assert ledger.is_in_feed("p1")
        assert ledger.disliked_ids == frozenset()

    def test_remove_saved_of_unsaved_id_is_noop(self, ledger):
        ledger.dislike("p1")
        ledger.remove_saved("p1")
        assert ledger.disliked_ids == {"p1"}

    def test_remove_saved_many(self, ledger):
        for pid in ("p1", "p2", "p3"):
            ledger.save(pid)
        assert ledger.remove_saved_many(["p1", "p3", "nope"]) == 2
        assert ledger.saved_ids == {"p2"}
        assert ledger.remove_saved_many(["nope"]) == 0

    def test_save_many(self, ledger):
        ledger.dislike("p2")
        ledger.save("p3")
        assert ledger.save_many(["p1", "p2", "p3"]) == 2
        assert ledger.saved_ids == {"p1", "p2", "p3"}
        assert ledger.disliked_ids == frozenset()
        assert ledger.save_many(["p1"]) == 0

    def test_dislike_many(self, ledger):
        ledger.save("p1")
        assert ledger.dislike_many(["p1", "p2"]) == 2
        assert ledger.disliked_ids == {"p1", "p2"}
        assert ledger.saved_ids == frozenset()
        assert ledger.dislike_many(["p2"]) == 0

    def test_saved_ids_is_a_snapshot(self, ledger):
        snapshot = ledger.saved_ids
        ledger.save("p1")
        assert snapshot == frozenset()


class TestEvents:
    """Tests for the append-only swipe log."""

    def test_record_event_uses_clock(self, ledger, clock):
        event = ledger.record_event("p1", SwipeAction.LIKE)
        assert event.timestamp == clock.now
        assert ledger.events == (event,)

    def test_record_event_accepts_raw_action(self, ledger):
        assert ledger.record_event("p1", "dislike").action == SwipeAction.DISLIKE

    def test_events_for(self, ledger):
        ledger.record_event("p1", SwipeAction.LIKE)
        ledger.record_event("p2", SwipeAction.DISLIKE)
        ledger.record_event("p1", SwipeAction.DISLIKE)
        assert [e.action for e in ledger.events_for("p1")] == [
            SwipeAction.LIKE,
            SwipeAction.DISLIKE,
        ]


class TestNotifications:
    """Tests for saved-set change notifications."""

    def test_listener_called_with_new_saved_set(self, ledger):
        listener = MagicMock()
        ledger.subscribe(listener)
        ledger.save("p1")
        listener.assert_called_once_with(frozenset({"p1"}))

    def test_listener_not_called_when_saved_set_unchanged(self, ledger):
        ledger.save("p1")
        listener = MagicMock()
        ledger.subscribe(listener)
        ledger.save("p1")
        ledger.dislike("p2")
        ledger.remove_saved("p3")
        listener.assert_not_called()

    def test_dislike_of_saved_paper_notifies(self, ledger):
        ledger.save("p1")
        listener = MagicMock()
        ledger.subscribe(listener)
        ledger.dislike("p1")
        listener.assert_called_once_with(frozenset())

    def test_save_many_notifies_once(self, ledger):
        listener = MagicMock()
        ledger.subscribe(listener)
        ledger.save_many(["p1", "p2", "p3"])
        listener.assert_called_once_with(frozenset({"p1", "p2", "p3"}))

    def test_unsubscribe(self, ledger):
        listener = MagicMock()
        unsubscribe = ledger.subscribe(listener)
        unsubscribe()
        unsubscribe()
        ledger.save("p1")
        listener.assert_not_called()


class TestPersistence:
    """Tests for reload from the settings database."""

    def test_state_survives_reload(self, ledger, make_ledger):
        ledger.save("p1")
        ledger.dislike("p2")
        ledger.record_event("p1", SwipeAction.LIKE)

        reloaded = make_ledger()
        assert reloaded.saved_ids == {"p1"}
        assert reloaded.disliked_ids == {"p2"}
        assert len(reloaded.events) == 1
        assert reloaded.events[0].paper_id == "p1"

    def test_sets_are_stored_under_separate_keys(self, ledger, tmp_path):
        ledger.save("b")
        ledger.save("a")
        ledger.dislike("c")
        ledger.record_event("a", SwipeAction.LIKE)
        settings = SettingsStore(tmp_path / "settings.db")
        assert settings.get(SAVED_KEY) == ["a", "b"]
        assert settings.get(DISLIKED_KEY) == ["c"]
        assert settings.get(EVENTS_KEY)[0]["paperId"] == "a"

    def test_invalid_stored_values_are_ignored(self, tmp_path, clock):
        settings = SettingsStore(tmp_path / "settings.db")
        settings.set(SAVED_KEY, ["p1", 3, "", "p2"])
        settings.set(DISLIKED_KEY, "not a list")
        settings.set(EVENTS_KEY, [{"paperId": "p1", "action": "meh", "timestamp": "x"}, 7])

        ledger = SwipeLedger(settings, clock=clock)
        assert ledger.saved_ids == {"p1", "p2"}
        assert ledger.disliked_ids == frozenset()
        assert ledger.events == ()

    def test_overlapping_stored_sets_favor_saved(self, tmp_path, clock):
        settings = SettingsStore(tmp_path / "settings.db")
        settings.set(SAVED_KEY, ["p1"])
        settings.set(DISLIKED_KEY, ["p1", "p2"])
        ledger = SwipeLedger(settings, clock=clock)
        assert ledger.saved_ids & ledger.disliked_ids == frozenset()
        assert ledger.disliked_ids == {"p2"}

    def test_failed_write_keeps_memory_state(self, tmp_path, clock):
        settings = MagicMock(spec=SettingsStore)
        settings.get.side_effect = lambda key, default=None: default
        settings.set.return_value = False
        ledger = SwipeLedger(settings, clock=clock)
        ledger.save("p1")
        assert ledger.saved_ids == {"p1"}
