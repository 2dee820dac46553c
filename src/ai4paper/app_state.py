"""Application state wiring the catalog, swipe ledger and library store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ai4paper.catalog import PaperCatalog
from ai4paper.library import LibraryStore
from ai4paper.models import LibraryGroup, LibraryItemView, LibraryQuery, Paper, SwipeAction
from ai4paper.persistence import LIBRARY_FILENAME, SETTINGS_DB_FILENAME, SettingsStore
from ai4paper.query import apply_query
from ai4paper.swipes import SwipeLedger

logger = logging.getLogger(__name__)


class AppState:
    """Presentation-facing facade over the three stores.

    The stores are injected; the ledger's saved-set notifications keep the
    library metadata in step with what is saved.
    """

    def __init__(self, catalog: PaperCatalog, ledger: SwipeLedger, library: LibraryStore) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self.library = library
        self._unsubscribe = ledger.subscribe(library.sync_saved_ids)
        # Bring metadata up to date with a ledger that was persisted earlier
        library.sync_saved_ids(ledger.saved_ids)

    @classmethod
    def open(
        cls,
        catalog: PaperCatalog,
        data_dir: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> AppState:
        """Build the stores from the files in ``data_dir``."""
        ledger = SwipeLedger(SettingsStore(data_dir / SETTINGS_DB_FILENAME), clock=clock)
        library = LibraryStore(data_dir / LIBRARY_FILENAME, clock=clock)
        logger.debug("Opened app state in %s (%d papers)", data_dir, len(catalog))
        return cls(catalog, ledger, library)

    def close(self) -> None:
        self._unsubscribe()

    # ── Feed ───────────────────────────────────────────────────────────

    @property
    def feed_papers(self) -> list[Paper]:
        """Catalog papers that are neither saved nor disliked."""
        return [paper for paper in self.catalog if self.ledger.is_in_feed(paper.id)]

    @property
    def current_paper(self) -> Paper | None:
        return next((p for p in self.catalog if self.ledger.is_in_feed(p.id)), None)

    def like(self, paper_id: str) -> None:
        self.ledger.save(paper_id)
        self.ledger.record_event(paper_id, SwipeAction.LIKE)

    def dislike(self, paper_id: str) -> None:
        self.ledger.dislike(paper_id)
        self.ledger.record_event(paper_id, SwipeAction.DISLIKE)

    def like_current(self) -> Paper | None:
        """Save the paper on top of the feed. Returns it, or None if empty."""
        paper = self.current_paper
        if paper is not None:
            self.like(paper.id)
        return paper

    def dislike_current(self) -> Paper | None:
        paper = self.current_paper
        if paper is not None:
            self.dislike(paper.id)
        return paper

    def remove_saved(self, paper_id: str) -> None:
        self.ledger.remove_saved(paper_id)

    # ── Library ────────────────────────────────────────────────────────

    def paper(self, paper_id: str) -> Paper | None:
        return self.catalog.get(paper_id)

    @property
    def saved_papers(self) -> list[Paper]:
        """Saved papers known to the catalog, in catalog order."""
        return [paper for paper in self.catalog if self.ledger.is_saved(paper.id)]

    def library_items(self) -> list[LibraryItemView]:
        return self.library.items(self.saved_papers)

    def library_view(self, query: LibraryQuery | None = None) -> list[LibraryGroup]:
        return apply_query(self.library_items(), query or LibraryQuery(), self.library)


__all__ = [
    "AppState",
]
