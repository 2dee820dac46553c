"""Rich renderables for the command-line front end."""

from __future__ import annotations

from rich.markup import escape as escape_markup
from rich.table import Table
from rich.tree import Tree

from ai4paper.library import LibraryStore
from ai4paper.models import LibraryGroup, LibraryItemMeta, Paper, ReadStatus
from ai4paper.query import truncate_text

STATUS_COLORS = {
    ReadStatus.UNREAD: "dark_orange",
    ReadStatus.READING: "dodger_blue1",
    ReadStatus.FINISHED: "green",
}

TITLE_MAX_LEN = 80


def escape_rich_text(text: str) -> str:
    """Escape text for safe Rich markup rendering."""
    return escape_markup(text) if text else ""


def format_status(status: ReadStatus) -> str:
    return f"[{STATUS_COLORS[status]}]{status.display_name}[/]"


def format_tags(tags: list[str]) -> str:
    return " ".join(f"[cyan]#{escape_rich_text(tag)}[/]" for tag in tags)


def feed_table(papers: list[Paper], limit: int | None = None) -> Table:
    """Table of feed papers, top card first."""
    shown = papers if limit is None else papers[:limit]
    table = Table(title=f"Feed ({len(papers)} remaining)")
    table.add_column("#", justify="right")
    table.add_column("ID", overflow="fold")
    table.add_column("Source")
    table.add_column("Title", overflow="fold")
    for index, paper in enumerate(shown, start=1):
        table.add_row(
            str(index),
            escape_rich_text(paper.id),
            escape_rich_text(paper.source) or "-",
            escape_rich_text(truncate_text(paper.header_line, TITLE_MAX_LEN)),
        )
    return table


def library_tables(groups: list[LibraryGroup], library: LibraryStore) -> list[Table]:
    """One table per group; an ungrouped view yields a single table."""
    tables = []
    for group in groups:
        title = escape_rich_text(group.label) if group.label else "Library"
        table = Table(title=f"{title} ({len(group.items)})")
        table.add_column("ID", overflow="fold")
        table.add_column("Title", overflow="fold")
        table.add_column("Status")
        table.add_column("Folder", overflow="fold")
        table.add_column("Tags", overflow="fold")
        for item in group.items:
            path = " / ".join(f.name for f in library.folder_path(item.meta.folder_id))
            table.add_row(
                escape_rich_text(item.paper.id),
                escape_rich_text(truncate_text(item.paper.display_title, TITLE_MAX_LEN)),
                format_status(item.meta.status),
                escape_rich_text(path) or "-",
                format_tags(item.meta.tags),
            )
        tables.append(table)
    return tables


def folder_tree(library: LibraryStore, root_label: str = "Library") -> Tree:
    """Tree of all folders with direct/total paper counts."""
    root = Tree(f"[bold]{escape_rich_text(root_label)}[/] ({library.direct_paper_count(None)})")
    nodes: list[Tree] = [root]
    for entry in library.flat_folder_tree():
        # pre-order: the parent of depth d is the last node at depth d
        del nodes[entry.depth + 1 :]
        folder = entry.folder
        label = (
            f"{escape_rich_text(folder.name)} "
            f"[dim]({library.direct_paper_count(folder.id)}"
            f"/{library.total_paper_count(folder.id)}) {folder.id}[/]"
        )
        nodes.append(nodes[-1].add(label))
    return root


def paper_detail(paper: Paper, meta: LibraryItemMeta | None, library: LibraryStore) -> Table:
    """Two-column key/value view of one paper."""
    table = Table(show_header=False, box=None, title=escape_rich_text(paper.header_line))
    table.add_column("Field", style="bold")
    table.add_column("Value", overflow="fold")
    table.add_row("Title", escape_rich_text(paper.display_title))
    if paper.subtitle:
        table.add_row("Short title", escape_rich_text(paper.subtitle))
    table.add_row("Source", escape_rich_text(paper.source_line))
    if paper.link_url:
        table.add_row("Link", paper.link_url)
    if paper.summary_text:
        table.add_row("Summary", escape_rich_text(paper.summary_text))
    for point in paper.key_points:
        table.add_row("Key point", escape_rich_text(point))
    for line in paper.analysis:
        table.add_row("Analysis", escape_rich_text(line))
    if paper.personal_view:
        table.add_row("View", escape_rich_text(paper.personal_view))
    if meta is not None:
        path = " / ".join(f.name for f in library.folder_path(meta.folder_id))
        table.add_row("Status", format_status(meta.status))
        table.add_row("Folder", escape_rich_text(path) or "-")
        table.add_row("Tags", format_tags(meta.tags) or "-")
        if meta.note:
            table.add_row("Note", escape_rich_text(meta.note))
        table.add_row("Saved", meta.saved_at.strftime("%Y-%m-%d %H:%M"))
    return table


__all__ = [
    "STATUS_COLORS",
    "escape_rich_text",
    "feed_table",
    "folder_tree",
    "format_status",
    "format_tags",
    "library_tables",
    "paper_detail",
]
