"""Library view derivation: search, filters, sort order and grouping."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from rapidfuzz import fuzz

from ai4paper.models import (
    UNFILED_LABEL,
    UNTAGGED_LABEL,
    LibraryGroup,
    LibraryItemView,
    LibraryQuery,
    ReadStatus,
)

if TYPE_CHECKING:
    from ai4paper.library import LibraryStore

FUZZY_SCORE_CUTOFF = 60  # Minimum score (0-100) to include in results

# ============================================================================
# Text Utilities
# ============================================================================

_DIGITS_RE = re.compile(r"(\d+)")


def natural_sort_key(text: str) -> tuple[tuple[tuple[int, int | str], ...], str]:
    """Case-insensitive ordering that compares digit runs numerically.

    ``"Folder 2"`` sorts before ``"Folder 10"``, a prefix before its longer
    forms (``"GPT"`` before ``"GPT4"``), and ``"alpha"`` next to
    ``"Alpha"``. Ties between case variants are broken by the raw text so
    the order is total.
    """
    parts: list[tuple[int, int | str]] = []
    for chunk in _DIGITS_RE.split(text.casefold()):
        if not chunk:
            continue
        if chunk.isdecimal():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts), text


def truncate_text(text: str, max_len: int, suffix: str = "...") -> str:
    """Truncate text to max_len characters, adding suffix if truncated."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + suffix


# ============================================================================
# Search
# ============================================================================


def item_search_text(item: LibraryItemView) -> str:
    """Text a library item is searched by: title, intro and tags."""
    return "\n".join(
        [item.paper.display_title, item.paper.summary_text, " ".join(item.meta.tags)]
    )


def matches_search(item: LibraryItemView, query: str) -> bool:
    """Case-insensitive substring match against title, intro and tags."""
    needle = query.strip().lower()
    if not needle:
        return True
    paper = item.paper
    return (
        needle in paper.display_title.lower()
        or needle in paper.summary_text.lower()
        or needle in " ".join(item.meta.tags).lower()
    )


def fuzzy_search(
    items: Iterable[LibraryItemView], query: str, cutoff: int = FUZZY_SCORE_CUTOFF
) -> list[tuple[LibraryItemView, float]]:
    """Score items with rapidfuzz WRatio, best match first."""
    query_lower = query.strip().lower()
    scored = []
    for item in items:
        score = fuzz.WRatio(query_lower, item_search_text(item).lower())
        if score >= cutoff:
            scored.append((item, score))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def search_items(
    items: Iterable[LibraryItemView], query: str, mode: str = "substring"
) -> list[LibraryItemView]:
    """Apply the free-text search step. Blank queries keep every item."""
    items = list(items)
    if not query.strip():
        return items
    if mode == "fuzzy":
        return [item for item, _ in fuzzy_search(items, query)]
    return [item for item in items if matches_search(item, query)]


# ============================================================================
# Filters
# ============================================================================


def filter_by_status(
    items: Iterable[LibraryItemView], status: ReadStatus | None
) -> list[LibraryItemView]:
    if status is None:
        return list(items)
    return [item for item in items if item.meta.status == status]


def filter_by_folder(
    items: Iterable[LibraryItemView],
    folder_id: str | None,
    descendant_ids: Iterable[str] = (),
) -> list[LibraryItemView]:
    """Keep items filed in ``folder_id`` (or in any of ``descendant_ids``).

    ``folder_id`` None means no folder filter; ``LibraryQuery.UNFILED``
    selects items at the root.
    """
    if folder_id is None:
        return list(items)
    if folder_id == LibraryQuery.UNFILED:
        return [item for item in items if item.meta.folder_id is None]
    scope = {folder_id, *descendant_ids}
    return [item for item in items if item.meta.folder_id in scope]


def filter_by_tag(items: Iterable[LibraryItemView], tag: str | None) -> list[LibraryItemView]:
    if tag is None:
        return list(items)
    return [item for item in items if tag in item.meta.tags]


# ============================================================================
# Sorting & Grouping
# ============================================================================


def sort_items(items: Iterable[LibraryItemView], sort_key: str) -> list[LibraryItemView]:
    """Sort items by the given key, returning a new list.

    Args:
        items: Library items to sort.
        sort_key: One of "saved", "updated" (newest first), "title",
            "source" (natural ascending). Unknown keys keep input order.
    """
    if sort_key == "saved":
        return sorted(items, key=lambda i: i.meta.saved_at, reverse=True)
    elif sort_key == "updated":
        return sorted(items, key=lambda i: i.meta.updated_at, reverse=True)
    elif sort_key == "title":
        return sorted(items, key=lambda i: natural_sort_key(i.paper.display_title))
    elif sort_key == "source":
        return sorted(items, key=lambda i: natural_sort_key(i.paper.source))
    return list(items)


def group_items(
    items: Iterable[LibraryItemView],
    group_by: str,
    folder_name: Callable[[str | None], str | None] | None = None,
) -> list[LibraryGroup]:
    """Split items into labelled groups sorted by label.

    ``group_by`` "folder" labels by folder name (unfiled or unresolvable →
    "Unfiled"); "tag" puts an item into one group per tag (no tags →
    "Untagged"). Anything else yields a single unlabelled group. Items keep
    their relative order inside each group.
    """
    items = list(items)
    if group_by not in ("folder", "tag"):
        return [LibraryGroup(label="", items=items)]

    groups: dict[str, LibraryGroup] = {}

    def _add(label: str, item: LibraryItemView) -> None:
        groups.setdefault(label, LibraryGroup(label=label)).items.append(item)

    for item in items:
        if group_by == "folder":
            name = folder_name(item.meta.folder_id) if folder_name else None
            _add(name or UNFILED_LABEL, item)
        elif item.meta.tags:
            for tag in item.meta.tags:
                _add(tag, item)
        else:
            _add(UNTAGGED_LABEL, item)

    return [groups[label] for label in sorted(groups, key=natural_sort_key)]


# ============================================================================
# Full pipeline
# ============================================================================


def apply_query(
    items: Iterable[LibraryItemView],
    query: LibraryQuery,
    store: LibraryStore | None = None,
) -> list[LibraryGroup]:
    """Run search → status → folder/tag → sort → group over library items.

    ``store`` resolves folder names and subfolders; without it folder groups
    fall back to "Unfiled" and ``include_subfolders`` has no effect.
    """
    result = search_items(items, query.search, query.search_mode)
    result = filter_by_status(result, query.status)

    descendants: set[str] = set()
    if (
        store is not None
        and query.include_subfolders
        and query.folder_id not in (None, LibraryQuery.UNFILED)
    ):
        descendants = store.descendant_ids(query.folder_id)
    result = filter_by_folder(result, query.folder_id, descendants)
    result = filter_by_tag(result, query.tag)

    # fuzzy results are already ranked; keep that order unless sorting by text
    if not (query.search_mode == "fuzzy" and query.search.strip() and query.sort == "saved"):
        result = sort_items(result, query.sort)

    return group_items(result, query.group_by, store.folder_name if store else None)


__all__ = [
    "FUZZY_SCORE_CUTOFF",
    "apply_query",
    "filter_by_folder",
    "filter_by_status",
    "filter_by_tag",
    "fuzzy_search",
    "group_items",
    "item_search_text",
    "matches_search",
    "natural_sort_key",
    "search_items",
    "sort_items",
    "truncate_text",
]
