"""Data models and constants for the ai4paper library."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Application identity, used for platformdirs paths
APP_NAME = "ai4paper"

# Sort order options (see query.sort_items)
SORT_OPTIONS = ["saved", "updated", "title", "source"]

# Grouping options (see query.group_items)
GROUP_OPTIONS = ["none", "folder", "tag"]

# Search modes (see query.search_items)
SEARCH_MODES = ("substring", "fuzzy")

# Sentinel group labels
UNFILED_LABEL = "Unfiled"
UNTAGGED_LABEL = "Untagged"


class ReadStatus(str, Enum):
    """Reading progress of a saved paper."""

    UNREAD = "unread"
    READING = "reading"
    FINISHED = "finished"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: object) -> ReadStatus | None:
        """Return the status for a raw value, or None when unrecognized."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None


_STATUS_DISPLAY_NAMES = {
    ReadStatus.UNREAD: "Unread",
    ReadStatus.READING: "Reading",
    ReadStatus.FINISHED: "Finished",
}


class SwipeAction(str, Enum):
    """Direction of a feed swipe."""

    LIKE = "like"
    DISLIKE = "dislike"


@dataclass(frozen=True, slots=True)
class PaperIntro:
    """Short introduction block of a paper summary."""

    problem: str = ""
    contributions: str = ""


@dataclass(frozen=True, slots=True)
class Paper:
    """A summarized paper from the bundled corpus. Never mutated."""

    id: str
    title: str = ""
    short_title: str = ""
    source: str = ""
    institution: str = ""
    intro: PaperIntro | None = None
    key_points: tuple[str, ...] = ()
    analysis: tuple[str, ...] = ()
    personal_view: str = ""

    @property
    def display_title(self) -> str:
        return self.title or self.short_title

    @property
    def subtitle(self) -> str | None:
        if not self.short_title or self.short_title == self.title:
            return None
        return self.short_title

    @property
    def summary_text(self) -> str:
        """Problem and contributions joined by newlines, blanks skipped."""
        if self.intro is None:
            return ""
        parts = [self.intro.problem, self.intro.contributions]
        return "\n".join(part for part in parts if part)

    @property
    def display_tags(self) -> list[str]:
        return [value for value in (self.source, self.institution) if value]

    @property
    def header_line(self) -> str:
        """Card header, e.g. ``BMW：Threat modeling``."""
        if self.institution and self.short_title:
            return f"{self.institution}：{self.short_title}"
        if self.institution:
            return self.institution
        if self.short_title:
            return self.short_title
        return self.display_title

    @property
    def source_line(self) -> str:
        """e.g. ``arxiv, 2602.05877``."""
        return ", ".join(value for value in (self.source, self.id) if value)

    @property
    def link_url(self) -> str | None:
        if not self.id or self.source.lower() != "arxiv":
            return None
        return f"https://arxiv.org/abs/{self.id}"


@dataclass(slots=True)
class LibraryItemMeta:
    """User annotations for a saved paper (tags, folder, status, note)."""

    paper_id: str
    tags: list[str] = field(default_factory=list)
    folder_id: str | None = None
    status: ReadStatus = ReadStatus.UNREAD
    note: str = ""
    saved_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass(slots=True)
class LibraryFolder:
    """A node of the folder forest; ``parent_id`` None means top level."""

    id: str
    name: str
    parent_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True, slots=True)
class SwipeEvent:
    """One entry of the append-only swipe log."""

    paper_id: str
    action: SwipeAction
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class LibraryItemView:
    """A saved paper joined with its metadata."""

    paper: Paper
    meta: LibraryItemMeta

    @property
    def id(self) -> str:
        return self.paper.id


@dataclass(slots=True)
class LibraryGroup:
    """A labelled section of a grouped library view."""

    label: str
    items: list[LibraryItemView] = field(default_factory=list)


@dataclass(slots=True)
class LibraryQuery:
    """Parameters of a library view: search, filters, sort and grouping.

    ``folder_id`` filters on folder equality; ``UNFILED`` selects papers at
    the root. ``tag`` filters on tag membership and is applied in addition.
    """

    UNFILED = ""

    search: str = ""
    search_mode: str = "substring"
    status: ReadStatus | None = None
    folder_id: str | None = None
    include_subfolders: bool = False
    tag: str | None = None
    sort: str = "saved"
    group_by: str = "none"

    def __post_init__(self) -> None:
        """Fall back to defaults for unknown option names."""
        if self.sort not in SORT_OPTIONS:
            self.sort = "saved"
        if self.group_by not in GROUP_OPTIONS:
            self.group_by = "none"
        if self.search_mode not in SEARCH_MODES:
            self.search_mode = "substring"


@dataclass(frozen=True, slots=True)
class FolderTreeEntry:
    """A folder with its depth in a flattened pre-order tree."""

    folder: LibraryFolder
    depth: int


__all__ = [
    "APP_NAME",
    "GROUP_OPTIONS",
    "SEARCH_MODES",
    "SORT_OPTIONS",
    "UNFILED_LABEL",
    "UNTAGGED_LABEL",
    "FolderTreeEntry",
    "LibraryFolder",
    "LibraryGroup",
    "LibraryItemMeta",
    "LibraryItemView",
    "LibraryQuery",
    "Paper",
    "PaperIntro",
    "ReadStatus",
    "SwipeAction",
    "SwipeEvent",
]
