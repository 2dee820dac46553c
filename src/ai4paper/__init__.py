"""ai4paper - swipe through paper summaries and organize a reading library."""

from __future__ import annotations

from ai4paper.app_state import AppState
from ai4paper.catalog import PaperCatalog, load_papers, parse_paper
from ai4paper.library import LibraryStore
from ai4paper.models import (
    FolderTreeEntry,
    LibraryFolder,
    LibraryGroup,
    LibraryItemMeta,
    LibraryItemView,
    LibraryQuery,
    Paper,
    PaperIntro,
    ReadStatus,
    SwipeAction,
    SwipeEvent,
)
from ai4paper.query import apply_query
from ai4paper.swipes import SwipeLedger

__version__ = "0.1.0"

__all__ = [
    "AppState",
    "FolderTreeEntry",
    "LibraryFolder",
    "LibraryGroup",
    "LibraryItemMeta",
    "LibraryItemView",
    "LibraryQuery",
    "LibraryStore",
    "Paper",
    "PaperCatalog",
    "PaperIntro",
    "ReadStatus",
    "SwipeAction",
    "SwipeEvent",
    "SwipeLedger",
    "__version__",
    "apply_query",
    "load_papers",
    "parse_paper",
]
