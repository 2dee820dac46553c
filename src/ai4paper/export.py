"""Portable export and import of the library (folders, metadata, swipes)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ai4paper.library import (
    LibraryStore,
    _folder_to_dict,
    _meta_to_dict,
    _parse_timestamp,
    normalize_tags,
)
from ai4paper.models import ReadStatus
from ai4paper.swipes import SwipeLedger

logger = logging.getLogger(__name__)

EXPORT_FORMAT = "ai4paper-library"
EXPORT_VERSION = 1

_STATUS_RANK = {ReadStatus.UNREAD: 0, ReadStatus.READING: 1, ReadStatus.FINISHED: 2}


def export_library(library: LibraryStore, ledger: SwipeLedger) -> dict[str, Any]:
    """Export saved/disliked ids, folders and metadata as a portable dict.

    The exported data can be loaded elsewhere via import_library().
    """
    return {
        "format": EXPORT_FORMAT,
        "version": EXPORT_VERSION,
        "exported_at": datetime.now().isoformat(),
        "saved_ids": sorted(ledger.saved_ids),
        "disliked_ids": sorted(ledger.disliked_ids),
        "folders": [_folder_to_dict(folder) for folder in library.folders],
        "metas": [_meta_to_dict(meta) for meta in library.metas.values()],
    }


def _folder_depths(raw_folders: dict[str, dict[str, Any]]) -> dict[str, int]:
    """Depth of each exported folder; cyclic or orphaned chains count as roots."""
    depths: dict[str, int] = {}
    for folder_id in raw_folders:
        depth = 0
        seen = {folder_id}
        parent = raw_folders[folder_id].get("parentId")
        while isinstance(parent, str) and parent in raw_folders and parent not in seen:
            seen.add(parent)
            depth += 1
            parent = raw_folders[parent].get("parentId")
        depths[folder_id] = depth
    return depths


def _import_folders(raw: Any, library: LibraryStore) -> tuple[dict[str, str], int]:
    """Create exported folders, parents first. Returns (id map, count).

    Folders are matched by case-insensitive name under the same parent, so
    importing twice does not duplicate them.
    """
    if not isinstance(raw, list):
        return {}, 0
    raw_folders = {
        entry["id"]: entry
        for entry in raw
        if isinstance(entry, dict) and isinstance(entry.get("id"), str)
    }
    depths = _folder_depths(raw_folders)
    id_map: dict[str, str] = {}
    count = 0
    for old_id in sorted(raw_folders, key=lambda fid: depths[fid]):
        entry = raw_folders[old_id]
        name = entry.get("name")
        if not isinstance(name, str):
            continue
        parent = entry.get("parentId")
        new_parent = id_map.get(parent) if isinstance(parent, str) else None
        before = len(library.folders)
        folder = library.add_folder(name, new_parent)
        if folder is None:
            continue
        id_map[old_id] = folder.id
        if len(library.folders) > before:
            count += 1
    return id_map, count


def _local_time(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _import_metas(
    raw: Any,
    library: LibraryStore,
    saved: frozenset[str],
    id_map: dict[str, str],
    merge: bool,
    newly_saved: frozenset[str] = frozenset(),
) -> int:
    """Apply exported metadata to saved papers. Returns count applied.

    Papers first saved by this import keep their exported savedAt and
    updatedAt so the "saved" ordering survives the round trip.
    """
    if not isinstance(raw, list):
        return 0
    count = 0
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        paper_id = entry.get("paperId")
        if not isinstance(paper_id, str) or paper_id not in saved:
            continue
        existing = library.meta(paper_id)
        tags = normalize_tags(entry.get("tags") if isinstance(entry.get("tags"), list) else [])
        note = entry.get("note") if isinstance(entry.get("note"), str) else ""
        status = ReadStatus.parse(entry.get("status")) or ReadStatus.UNREAD
        raw_folder = entry.get("folderId")
        folder_id = id_map.get(raw_folder) if isinstance(raw_folder, str) else None

        if merge and existing is not None:
            tags = [*existing.tags, *tags]
            note = existing.note or note
            if _STATUS_RANK[existing.status] > _STATUS_RANK[status]:
                status = existing.status
            folder_id = existing.folder_id or folder_id

        library.update_tags(paper_id, tags)
        library.update_note(paper_id, note)
        library.update_status(paper_id, status)
        library.update_folder(paper_id, folder_id)
        if paper_id in newly_saved:
            library.restore_dates(
                paper_id,
                _local_time(_parse_timestamp(entry.get("savedAt"), None)),
                _local_time(_parse_timestamp(entry.get("updatedAt"), None)),
            )
        count += 1
    return count


def import_library(
    data: dict[str, Any], library: LibraryStore, ledger: SwipeLedger, merge: bool = True
) -> tuple[int, int, int]:
    """Import a previously exported library.

    Exported saved ids are saved in ``ledger`` first (disliked ids only
    when the paper is not saved locally). When merge=True (default) tags
    are unioned, an existing note wins, the further read status wins, and
    an existing folder assignment is kept. When merge=False the existing
    folder tree is dropped and imported metadata overwrites local values.

    Returns (papers_saved, folders_created, metas_imported).
    """
    if not isinstance(data, dict) or data.get("format") != EXPORT_FORMAT:
        raise ValueError("Not a valid ai4paper library export")

    saved_before = ledger.saved_ids
    with library.batch():
        ledger.save_many(
            paper_id
            for paper_id in data.get("saved_ids") or []
            if isinstance(paper_id, str) and paper_id
        )
        ledger.dislike_many(
            paper_id
            for paper_id in data.get("disliked_ids") or []
            if isinstance(paper_id, str) and paper_id and ledger.is_in_feed(paper_id)
        )
        newly_saved = ledger.saved_ids - saved_before
        papers_saved = len(newly_saved)

        library.sync_saved_ids(ledger.saved_ids)
        if not merge:
            for folder in library.child_folders(None):
                library.remove_folder(folder.id)
        id_map, folders_created = _import_folders(data.get("folders"), library)
        metas = _import_metas(
            data.get("metas"), library, ledger.saved_ids, id_map, merge, newly_saved
        )

    logger.debug(
        "Imported library: %d papers saved, %d folders, %d metas",
        papers_saved,
        folders_created,
        metas,
    )
    return papers_saved, folders_created, metas


__all__ = [
    "EXPORT_FORMAT",
    "EXPORT_VERSION",
    "export_library",
    "import_library",
]
