"""Swipe ledger: saved and disliked paper ids plus the swipe event log."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from ai4paper.models import SwipeAction, SwipeEvent
from ai4paper.persistence import SettingsStore

logger = logging.getLogger(__name__)

SAVED_KEY = "saved_ids"
DISLIKED_KEY = "disliked_ids"
EVENTS_KEY = "swipe_events"

SavedListener = Callable[[frozenset[str]], None]


def _parse_id_list(raw: Any) -> set[str]:
    if not isinstance(raw, list):
        return set()
    return {item for item in raw if isinstance(item, str) and item}


def _event_to_dict(event: SwipeEvent) -> dict[str, str]:
    return {
        "paperId": event.paper_id,
        "action": event.action.value,
        "timestamp": event.timestamp.isoformat(),
    }


def _parse_events(raw: Any) -> list[SwipeEvent]:
    if not isinstance(raw, list):
        return []
    events = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            events.append(
                SwipeEvent(
                    paper_id=str(entry["paperId"]),
                    action=SwipeAction(entry["action"]),
                    timestamp=datetime.fromisoformat(entry["timestamp"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping invalid swipe event: %r", entry)
    return events


class SwipeLedger:
    """Owns which papers were saved or disliked, plus the swipe history.

    Saved and disliked are mutually exclusive. A paper is eligible for the
    feed while it is in neither set. The three collections are persisted
    under separate settings keys.

    Listeners registered with :meth:`subscribe` are called with the new
    saved set whenever it changes.
    """

    def __init__(
        self,
        settings: SettingsStore,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._saved = _parse_id_list(settings.get(SAVED_KEY, []))
        self._disliked = _parse_id_list(settings.get(DISLIKED_KEY, [])) - self._saved
        self._events = _parse_events(settings.get(EVENTS_KEY, []))
        self._listeners: list[SavedListener] = []

    # ── Accessors ──────────────────────────────────────────────────────

    @property
    def saved_ids(self) -> frozenset[str]:
        return frozenset(self._saved)

    @property
    def disliked_ids(self) -> frozenset[str]:
        return frozenset(self._disliked)

    @property
    def events(self) -> tuple[SwipeEvent, ...]:
        return tuple(self._events)

    def is_saved(self, paper_id: str) -> bool:
        return paper_id in self._saved

    def is_in_feed(self, paper_id: str) -> bool:
        return paper_id not in self._saved and paper_id not in self._disliked

    def events_for(self, paper_id: str) -> list[SwipeEvent]:
        return [event for event in self._events if event.paper_id == paper_id]

    # ── Notifications ──────────────────────────────────────────────────

    def subscribe(self, listener: SavedListener) -> Callable[[], None]:
        """Register a saved-set listener. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify_saved_changed(self) -> None:
        snapshot = self.saved_ids
        for listener in list(self._listeners):
            listener(snapshot)

    # ── Persistence ────────────────────────────────────────────────────

    def _persist_saved(self) -> bool:
        return self._settings.set(SAVED_KEY, sorted(self._saved))

    def _persist_disliked(self) -> bool:
        return self._settings.set(DISLIKED_KEY, sorted(self._disliked))

    def _persist_events(self) -> bool:
        return self._settings.set(EVENTS_KEY, [_event_to_dict(e) for e in self._events])

    # ── Mutations ──────────────────────────────────────────────────────

    def save(self, paper_id: str) -> None:
        was_saved = paper_id in self._saved
        self._saved.add(paper_id)
        self._disliked.discard(paper_id)
        self._persist_saved()
        self._persist_disliked()
        if not was_saved:
            self._notify_saved_changed()

    def dislike(self, paper_id: str) -> None:
        was_saved = paper_id in self._saved
        self._disliked.add(paper_id)
        self._saved.discard(paper_id)
        self._persist_saved()
        self._persist_disliked()
        if was_saved:
            self._notify_saved_changed()

    def save_many(self, paper_ids: Iterable[str]) -> int:
        """Save several papers with one write per set. Returns count newly saved."""
        added = set(paper_ids) - self._saved
        if not added:
            return 0
        self._saved |= added
        self._disliked -= added
        self._persist_saved()
        self._persist_disliked()
        self._notify_saved_changed()
        return len(added)

    def dislike_many(self, paper_ids: Iterable[str]) -> int:
        """Dislike several papers with one write per set. Returns count newly disliked."""
        added = set(paper_ids) - self._disliked
        if not added:
            return 0
        was_saved = bool(self._saved & added)
        self._disliked |= added
        self._saved -= added
        self._persist_saved()
        self._persist_disliked()
        if was_saved:
            self._notify_saved_changed()
        return len(added)

    def remove_saved(self, paper_id: str) -> None:
        """Unsave without disliking, so the paper can come back to the feed."""
        if paper_id not in self._saved:
            return
        self._saved.discard(paper_id)
        self._persist_saved()
        self._notify_saved_changed()

    def remove_saved_many(self, paper_ids: Iterable[str]) -> int:
        """Unsave several papers with one write. Returns count removed."""
        removed = self._saved.intersection(paper_ids)
        if not removed:
            return 0
        self._saved -= removed
        self._persist_saved()
        self._notify_saved_changed()
        return len(removed)

    def record_event(self, paper_id: str, action: SwipeAction) -> SwipeEvent:
        event = SwipeEvent(paper_id=paper_id, action=SwipeAction(action), timestamp=self._clock())
        self._events.append(event)
        self._persist_events()
        return event


__all__ = [
    "DISLIKED_KEY",
    "EVENTS_KEY",
    "SAVED_KEY",
    "SavedListener",
    "SwipeLedger",
]
