"""Library metadata store for saved-paper annotations and the folder forest."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from ai4paper.config import _safe_get
from ai4paper.models import (
    FolderTreeEntry,
    LibraryFolder,
    LibraryItemMeta,
    LibraryItemView,
    Paper,
    ReadStatus,
)
from ai4paper.persistence import read_json, write_json_atomic
from ai4paper.query import natural_sort_key

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# ============================================================================
# Snapshot (de)serialization
# ============================================================================
#
# Layout of library_store.json:
#
#   {"version": 1,
#    "metas":   [{"paperId", "tags", "folderId", "status", "note",
#                 "savedAt", "updatedAt"}, ...],
#    "folders": [{"id", "name", "parentId", "createdAt"}, ...]}
#
# _parse_snapshot() accepts any JSON value and always returns usable
# collections; damaged records are skipped, dangling references repaired.
#


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Trim, drop blanks, and dedupe (case-sensitive) keeping first occurrence."""
    cleaned = (tag.strip() for tag in tags if isinstance(tag, str))
    return list(dict.fromkeys(tag for tag in cleaned if tag))


def _copy_meta(meta: LibraryItemMeta) -> LibraryItemMeta:
    return replace(meta, tags=list(meta.tags))


def _copy_folder(folder: LibraryFolder) -> LibraryFolder:
    return replace(folder)


def _parse_timestamp(value: Any, fallback: datetime) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return fallback


def _meta_to_dict(meta: LibraryItemMeta) -> dict[str, Any]:
    return {
        "paperId": meta.paper_id,
        "tags": list(meta.tags),
        "folderId": meta.folder_id,
        "status": meta.status.value,
        "note": meta.note,
        "savedAt": meta.saved_at.isoformat(),
        "updatedAt": meta.updated_at.isoformat(),
    }


def _folder_to_dict(folder: LibraryFolder) -> dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "parentId": folder.parent_id,
        "createdAt": folder.created_at.isoformat(),
    }


def _parse_meta(raw: Any, now: datetime) -> LibraryItemMeta | None:
    if not isinstance(raw, dict):
        return None
    paper_id = _safe_get(raw, "paperId", "", str)
    if not paper_id:
        return None
    saved_at = _parse_timestamp(raw.get("savedAt"), now)
    return LibraryItemMeta(
        paper_id=paper_id,
        tags=normalize_tags(_safe_get(raw, "tags", [], list)),
        folder_id=_safe_get(raw, "folderId", None, str) or None,
        status=ReadStatus.parse(raw.get("status")) or ReadStatus.UNREAD,
        note=_safe_get(raw, "note", "", str),
        saved_at=saved_at,
        updated_at=_parse_timestamp(raw.get("updatedAt"), saved_at),
    )


def _parse_folder(raw: Any, now: datetime) -> LibraryFolder | None:
    if not isinstance(raw, dict):
        return None
    folder_id = _safe_get(raw, "id", "", str)
    name = _safe_get(raw, "name", "", str).strip()
    if not folder_id or not name:
        return None
    return LibraryFolder(
        id=folder_id,
        name=name,
        parent_id=_safe_get(raw, "parentId", None, str) or None,
        created_at=_parse_timestamp(raw.get("createdAt"), now),
    )


def _repair_folders(folders: dict[str, LibraryFolder]) -> int:
    """Promote orphans and break parent cycles in place. Returns repair count."""
    repaired = 0
    for folder in folders.values():
        if folder.parent_id is not None and folder.parent_id not in folders:
            folder.parent_id = None
            repaired += 1
    for folder in folders.values():
        seen: set[str] = set()
        cursor = folder.parent_id
        while cursor is not None:
            if cursor == folder.id:
                folder.parent_id = None
                repaired += 1
                break
            if cursor in seen:
                # cycle above us; broken when one of its members is visited
                break
            seen.add(cursor)
            cursor = folders[cursor].parent_id
    return repaired


def _parse_snapshot(
    data: Any, now: datetime
) -> tuple[dict[str, LibraryItemMeta], dict[str, LibraryFolder]]:
    """Deserialize a snapshot document into id-keyed metas and folders."""
    if not isinstance(data, dict):
        if data is not None:
            logger.warning("Library snapshot has invalid structure, starting empty")
        return {}, {}

    folders: dict[str, LibraryFolder] = {}
    for raw in _safe_get(data, "folders", [], list):
        folder = _parse_folder(raw, now)
        if folder is None:
            logger.warning("Skipping invalid folder record: %r", raw)
            continue
        folders.setdefault(folder.id, folder)

    metas: dict[str, LibraryItemMeta] = {}
    for raw in _safe_get(data, "metas", [], list):
        meta = _parse_meta(raw, now)
        if meta is None:
            logger.warning("Skipping invalid library record: %r", raw)
            continue
        metas.setdefault(meta.paper_id, meta)

    repaired = _repair_folders(folders)
    for meta in metas.values():
        if meta.folder_id is not None and meta.folder_id not in folders:
            meta.folder_id = None
            repaired += 1
    if repaired:
        logger.warning("Repaired %d dangling folder references in library snapshot", repaired)
    return metas, folders


# ============================================================================
# LibraryStore
# ============================================================================


class LibraryStore:
    """Owns per-paper library metadata and the folder hierarchy.

    Folders are kept as a flat id-keyed arena with parent pointers; the tree
    is rebuilt on demand by filtering on ``parent_id``. Every successful
    mutation writes the whole snapshot atomically. A failed write is logged
    and leaves the in-memory state as the source of truth.

    Accessors return copies; records change only through the store methods,
    which keep the folder forest acyclic and sibling names unique.

    All methods are meant to be called from a single owner thread.
    """

    def __init__(
        self,
        storage_path: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._storage_path = storage_path
        self._clock = clock
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._active_folder_id: str | None = None
        self.last_persist_ok = True
        self._batch_depth = 0
        self._dirty = False
        self._metas, self._folders = _parse_snapshot(read_json(storage_path), clock())

    # ── Persistence ────────────────────────────────────────────────────

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def snapshot(self) -> dict[str, Any]:
        """Return the JSON-compatible snapshot of the current state."""
        return {
            "version": SNAPSHOT_VERSION,
            "metas": [_meta_to_dict(meta) for meta in self._metas.values()],
            "folders": [_folder_to_dict(folder) for folder in self._folders.values()],
        }

    @contextmanager
    def batch(self) -> Iterator[LibraryStore]:
        """Coalesce the writes of several mutations into one at exit.

        Nested batches write once, when the outermost one exits.
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self.persist()

    def persist(self) -> bool:
        """Write the full snapshot to disk. Returns True on success.

        Inside :meth:`batch` the write is postponed until the batch ends.
        """
        if self._batch_depth:
            self._dirty = True
            return True
        self._dirty = False
        try:
            write_json_atomic(self._storage_path, self.snapshot())
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to save library to %s: %s", self._storage_path, e)
            self.last_persist_ok = False
            return False
        self.last_persist_ok = True
        return True

    # ── Metadata accessors ─────────────────────────────────────────────

    @property
    def metas(self) -> dict[str, LibraryItemMeta]:
        """Read-only copy of the id-keyed metadata map."""
        return {paper_id: _copy_meta(meta) for paper_id, meta in self._metas.items()}

    def meta(self, paper_id: str) -> LibraryItemMeta | None:
        meta = self._metas.get(paper_id)
        return _copy_meta(meta) if meta is not None else None

    def items(self, papers: Iterable[Paper]) -> list[LibraryItemView]:
        """Join papers with their metadata.

        Papers without metadata get a default meta that is not stored.
        """
        views = []
        for paper in papers:
            meta = self._metas.get(paper.id)
            if meta is None:
                now = self._clock()
                meta = LibraryItemMeta(paper_id=paper.id, saved_at=now, updated_at=now)
            else:
                meta = _copy_meta(meta)
            views.append(LibraryItemView(paper=paper, meta=meta))
        return views

    @property
    def all_tags(self) -> list[str]:
        tags = {tag for meta in self._metas.values() for tag in meta.tags}
        return sorted(tags, key=natural_sort_key)

    def tag_counts(self) -> dict[str, int]:
        """Number of saved papers carrying each tag, in tag order."""
        counts: dict[str, int] = {}
        for meta in self._metas.values():
            for tag in meta.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return {tag: counts[tag] for tag in sorted(counts, key=natural_sort_key)}

    # ── Saved-set reconciliation ───────────────────────────────────────

    def sync_saved_ids(self, saved_ids: Iterable[str]) -> bool:
        """Reconcile metadata with the authoritative saved-id set.

        New ids get a fresh meta filed under the active folder; ids no
        longer saved lose their meta. Returns True if anything changed.
        """
        saved = set(saved_ids)
        current = set(self._metas)
        added = saved - current
        removed = current - saved
        if not added and not removed:
            return False

        now = self._clock()
        folder_id = self.active_folder_id
        for paper_id in sorted(added):
            self._metas[paper_id] = LibraryItemMeta(
                paper_id=paper_id, folder_id=folder_id, saved_at=now, updated_at=now
            )
        for paper_id in removed:
            del self._metas[paper_id]
        logger.debug("Synced saved ids: +%d -%d", len(added), len(removed))
        self.persist()
        return True

    # ── Per-paper mutations ────────────────────────────────────────────

    def _upsert(self, paper_id: str) -> LibraryItemMeta:
        meta = self._metas.get(paper_id)
        if meta is None:
            now = self._clock()
            meta = LibraryItemMeta(paper_id=paper_id, saved_at=now, updated_at=now)
            self._metas[paper_id] = meta
        return meta

    def update_tags(self, paper_id: str, tags: Iterable[str]) -> LibraryItemMeta:
        meta = self._upsert(paper_id)
        meta.tags = normalize_tags(tags)
        meta.updated_at = self._clock()
        self.persist()
        return _copy_meta(meta)

    def update_status(self, paper_id: str, status: ReadStatus) -> LibraryItemMeta:
        meta = self._upsert(paper_id)
        meta.status = ReadStatus(status)
        meta.updated_at = self._clock()
        self.persist()
        return _copy_meta(meta)

    def update_note(self, paper_id: str, note: str) -> LibraryItemMeta:
        meta = self._upsert(paper_id)
        meta.note = note
        meta.updated_at = self._clock()
        self.persist()
        return _copy_meta(meta)

    def update_folder(self, paper_id: str, folder_id: str | None) -> LibraryItemMeta | None:
        """File a paper under ``folder_id`` (None = unfiled).

        An unknown folder id is ignored and returns None.
        """
        if folder_id is not None and folder_id not in self._folders:
            logger.debug("update_folder: unknown folder %s for %s", folder_id, paper_id)
            return None
        meta = self._upsert(paper_id)
        meta.folder_id = folder_id
        meta.updated_at = self._clock()
        self.persist()
        return _copy_meta(meta)

    def restore_dates(
        self,
        paper_id: str,
        saved_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> LibraryItemMeta | None:
        """Set the timestamps of an existing meta, e.g. when importing.

        None leaves a timestamp unchanged. Unknown ids are ignored.
        """
        meta = self._metas.get(paper_id)
        if meta is None:
            return None
        if saved_at is not None:
            meta.saved_at = saved_at
        if updated_at is not None:
            meta.updated_at = updated_at
        meta.updated_at = max(meta.updated_at, meta.saved_at)
        self.persist()
        return _copy_meta(meta)

    def move_papers(self, paper_ids: Iterable[str], folder_id: str | None) -> int:
        """Batch version of update_folder with a single write. Returns count moved."""
        if folder_id is not None and folder_id not in self._folders:
            return 0
        now = self._clock()
        count = 0
        for paper_id in dict.fromkeys(paper_ids):
            meta = self._upsert(paper_id)
            meta.folder_id = folder_id
            meta.updated_at = now
            count += 1
        if count:
            self.persist()
        return count

    def update_status_many(self, paper_ids: Iterable[str], status: ReadStatus) -> int:
        """Batch version of update_status with a single write. Returns count updated."""
        status = ReadStatus(status)
        now = self._clock()
        count = 0
        for paper_id in dict.fromkeys(paper_ids):
            meta = self._upsert(paper_id)
            meta.status = status
            meta.updated_at = now
            count += 1
        if count:
            self.persist()
        return count

    # ── Folder context ─────────────────────────────────────────────────

    @property
    def active_folder_id(self) -> str | None:
        """Folder that newly saved papers are filed under, if any."""
        if self._active_folder_id not in self._folders:
            return None
        return self._active_folder_id

    @active_folder_id.setter
    def active_folder_id(self, folder_id: str | None) -> None:
        self._active_folder_id = folder_id if folder_id in self._folders else None

    # ── Folder accessors ───────────────────────────────────────────────

    @property
    def folders(self) -> list[LibraryFolder]:
        return [_copy_folder(folder) for folder in self._folders.values()]

    def folder(self, folder_id: str | None) -> LibraryFolder | None:
        if folder_id is None:
            return None
        folder = self._folders.get(folder_id)
        return _copy_folder(folder) if folder is not None else None

    def folder_name(self, folder_id: str | None) -> str | None:
        folder = self.folder(folder_id)
        return folder.name if folder else None

    def child_folders(self, parent_id: str | None = None) -> list[LibraryFolder]:
        """Direct children of ``parent_id`` (None = top level), sorted by name."""
        children = [f for f in self._folders.values() if f.parent_id == parent_id]
        children.sort(key=lambda f: natural_sort_key(f.name))
        return [_copy_folder(f) for f in children]

    def child_folder_count(self, parent_id: str | None = None) -> int:
        return sum(1 for f in self._folders.values() if f.parent_id == parent_id)

    def descendant_ids(self, folder_id: str) -> set[str]:
        """All folders below ``folder_id`` (not including itself).

        Iterative breadth-first walk over parent pointers; the visited set
        guarantees termination.
        """
        children_of: dict[str, list[str]] = {}
        for folder in self._folders.values():
            if folder.parent_id is not None:
                children_of.setdefault(folder.parent_id, []).append(folder.id)

        result: set[str] = set()
        queue = deque(children_of.get(folder_id, ()))
        while queue:
            current = queue.popleft()
            if current in result or current == folder_id:
                continue
            result.add(current)
            queue.extend(children_of.get(current, ()))
        return result

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        return candidate_id in self.descendant_ids(ancestor_id)

    def direct_paper_count(self, folder_id: str | None) -> int:
        return sum(1 for meta in self._metas.values() if meta.folder_id == folder_id)

    def total_paper_count(self, folder_id: str) -> int:
        """Papers in ``folder_id`` and all of its descendants."""
        scope = self.descendant_ids(folder_id) | {folder_id}
        return sum(1 for meta in self._metas.values() if meta.folder_id in scope)

    def flat_folder_tree(self, excluding: str | None = None) -> list[FolderTreeEntry]:
        """Pre-order ``(folder, depth)`` list of the whole forest.

        The ``excluding`` folder and its subtree are skipped, which is what
        a "move to" picker needs.
        """
        entries: list[FolderTreeEntry] = []
        stack = [(folder, 0) for folder in reversed(self.child_folders(None))]
        visited: set[str] = set()
        while stack:
            folder, depth = stack.pop()
            if folder.id == excluding or folder.id in visited:
                continue
            visited.add(folder.id)
            entries.append(FolderTreeEntry(folder=folder, depth=depth))
            for child in reversed(self.child_folders(folder.id)):
                stack.append((child, depth + 1))
        return entries

    def folder_path(self, folder_id: str | None) -> list[LibraryFolder]:
        """Breadcrumb from the top-level ancestor down to ``folder_id``."""
        path: list[LibraryFolder] = []
        seen: set[str] = set()
        cursor = self.folder(folder_id)
        while cursor is not None and cursor.id not in seen:
            seen.add(cursor.id)
            path.append(cursor)
            cursor = self.folder(cursor.parent_id)
        path.reverse()
        return path

    def _find_sibling(
        self, name: str, parent_id: str | None, ignore_id: str | None = None
    ) -> LibraryFolder | None:
        key = name.casefold()
        for folder in self._folders.values():
            if folder.id == ignore_id or folder.parent_id != parent_id:
                continue
            if folder.name.casefold() == key:
                return folder
        return None

    # ── Folder mutations ───────────────────────────────────────────────

    def add_folder(self, name: str, parent_id: str | None = None) -> LibraryFolder | None:
        """Create a folder, or return the existing same-named sibling.

        Returns None for a blank name or an unknown parent.
        """
        trimmed = name.strip()
        if not trimmed:
            return None
        if parent_id is not None and parent_id not in self._folders:
            logger.debug("add_folder: unknown parent %s", parent_id)
            return None
        existing = self._find_sibling(trimmed, parent_id)
        if existing is not None:
            return _copy_folder(existing)
        folder = LibraryFolder(
            id=self._id_factory(), name=trimmed, parent_id=parent_id, created_at=self._clock()
        )
        self._folders[folder.id] = folder
        self.persist()
        return _copy_folder(folder)

    def rename_folder(self, folder_id: str, name: str) -> bool:
        """Rename a folder unless the name is blank or taken by a sibling."""
        folder = self._folders.get(folder_id)
        trimmed = name.strip()
        if folder is None or not trimmed:
            return False
        if self._find_sibling(trimmed, folder.parent_id, ignore_id=folder_id) is not None:
            return False
        if folder.name == trimmed:
            return True
        folder.name = trimmed
        self.persist()
        return True

    def move_folder(self, folder_id: str, new_parent_id: str | None) -> bool:
        """Reparent a folder. Refuses moves that would create a cycle.

        Also refuses when the new parent already has a child with the same
        name, keeping sibling names unique.
        """
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        if new_parent_id is not None:
            if new_parent_id not in self._folders:
                return False
            if new_parent_id == folder_id or self.is_descendant(new_parent_id, folder_id):
                logger.debug("move_folder: %s cannot move into its own subtree", folder_id)
                return False
        if folder.parent_id == new_parent_id:
            return True
        if self._find_sibling(folder.name, new_parent_id, ignore_id=folder_id) is not None:
            return False
        folder.parent_id = new_parent_id
        self.persist()
        return True

    def remove_folder(self, folder_id: str) -> bool:
        """Delete a folder and its whole subtree.

        Papers filed anywhere in the subtree move to the removed folder's
        parent, and so does the active folder context.
        """
        folder = self._folders.get(folder_id)
        if folder is None:
            return False
        target = folder.parent_id
        doomed = self.descendant_ids(folder_id) | {folder_id}

        for doomed_id in doomed:
            del self._folders[doomed_id]
        now = self._clock()
        moved = 0
        for meta in self._metas.values():
            if meta.folder_id in doomed:
                meta.folder_id = target
                meta.updated_at = now
                moved += 1
        if self._active_folder_id in doomed:
            self._active_folder_id = target
        logger.debug(
            "Removed %d folders under %s, refiled %d papers", len(doomed), folder_id, moved
        )
        self.persist()
        return True


__all__ = [
    "SNAPSHOT_VERSION",
    "LibraryStore",
    "normalize_tags",
]
