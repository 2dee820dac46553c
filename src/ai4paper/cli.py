"""Command-line front end for the ai4paper library."""

from __future__ import annotations

import argparse
import json
import logging
import logging.handlers
import sys
from collections.abc import Callable
from pathlib import Path

from rich.console import Console

from ai4paper.app_state import AppState
from ai4paper.catalog import PaperCatalog
from ai4paper.config import UserConfig, load_config
from ai4paper.export import export_library, import_library
from ai4paper.models import (
    GROUP_OPTIONS,
    SORT_OPTIONS,
    LibraryQuery,
    ReadStatus,
)
from ai4paper.persistence import get_config_dir, write_json_atomic
from ai4paper.render import (
    escape_rich_text,
    feed_table,
    folder_tree,
    library_tables,
    paper_detail,
)

logger = logging.getLogger(__name__)

DEBUG_LOG_FILENAME = "debug.log"
ROOT_FOLDER_ARG = "-"


def build_actionable_error(action: str, *, next_step: str, why: str | None = None) -> str:
    """Build a 2-3 line actionable error message."""
    lines = [f"Could not {action.strip()}."]
    if why:
        lines.append(f"Why: {why.rstrip('.')}.")
    lines.append(f"Next step: {next_step.rstrip('.')}.")
    return "\n".join(lines)


def _configure_logging(debug: bool) -> None:
    """Configure logging. When debug=True, logs to file at DEBUG level.

    Otherwise warnings (e.g. failed writes) are reported on stderr.
    """
    if not debug:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logging.root.addHandler(handler)
        logging.root.setLevel(logging.WARNING)
        return

    log_dir = get_config_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / DEBUG_LOG_FILENAME,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)


# ============================================================================
# Argument parsing
# ============================================================================


def _folder_arg(value: str) -> str | None:
    return None if value == ROOT_FOLDER_ARG else value


def _status_arg(value: str) -> ReadStatus:
    status = ReadStatus.parse(value)
    if status is None:
        choices = ", ".join(s.value for s in ReadStatus)
        raise argparse.ArgumentTypeError(f"invalid status {value!r} (choose from {choices})")
    return status


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai4paper", description="Swipe through paper summaries and organize a reading library"
    )
    parser.add_argument(
        "--corpus",
        type=Path,
        default=None,
        help="Directory of paper JSON files, or one JSON file with a list (default: config)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for library_store.json and settings.db (default: user data dir)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/ai4paper/debug.log)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    feed = sub.add_parser("feed", help="List papers still waiting in the feed")
    feed.add_argument("--limit", type=int, default=20, help="Rows to show (default: 20)")

    for name, help_text in (("like", "Save a paper"), ("dislike", "Dismiss a paper")):
        swipe = sub.add_parser(name, help=f"{help_text} (default: top of the feed)")
        swipe.add_argument("paper_id", nargs="?", default=None)
        if name == "like":
            swipe.add_argument(
                "--folder", default=None, help="File the saved paper under this folder id"
            )

    unsave = sub.add_parser("unsave", help="Remove papers from the library")
    unsave.add_argument("paper_ids", nargs="+")

    show = sub.add_parser("show", help="Show one paper with its library metadata")
    show.add_argument("paper_id")

    library = sub.add_parser("library", help="List saved papers")
    library.add_argument("-s", "--search", default="", help="Search title, intro and tags")
    library.add_argument("--fuzzy", action="store_true", help="Use fuzzy matching for --search")
    library.add_argument("--status", type=_status_arg, default=None)
    scope = library.add_mutually_exclusive_group()
    scope.add_argument("--folder", default=None, help="Only papers in this folder id")
    scope.add_argument("--unfiled", action="store_true", help="Only papers outside folders")
    library.add_argument(
        "--subfolders", action="store_true", help="With --folder, include subfolders"
    )
    library.add_argument("--tag", default=None, help="Only papers carrying this tag")
    library.add_argument("--sort", choices=SORT_OPTIONS, default=None)
    library.add_argument("--group", choices=GROUP_OPTIONS, default=None)

    sub.add_parser("folders", help="Show the folder tree with paper counts")
    sub.add_parser("tags", help="List tags with paper counts")

    folder = sub.add_parser("folder", help="Create, rename, move or remove folders")
    folder_sub = folder.add_subparsers(dest="folder_command", required=True)
    f_add = folder_sub.add_parser("add", help="Create a folder")
    f_add.add_argument("name")
    f_add.add_argument("--parent", default=None, help="Parent folder id")
    f_rm = folder_sub.add_parser("rm", help="Remove a folder and its subfolders")
    f_rm.add_argument("folder_id")
    f_mv = folder_sub.add_parser("mv", help="Move a folder under another ('-' = top level)")
    f_mv.add_argument("folder_id")
    f_mv.add_argument("parent_id", type=_folder_arg)
    f_rename = folder_sub.add_parser("rename", help="Rename a folder")
    f_rename.add_argument("folder_id")
    f_rename.add_argument("name")

    move = sub.add_parser("move", help="File papers under a folder ('-' = unfiled)")
    move.add_argument("folder_id", type=_folder_arg)
    move.add_argument("paper_ids", nargs="+")

    tag = sub.add_parser("tag", help="Set the tags of a paper")
    tag.add_argument("paper_id")
    tag.add_argument("tags", nargs="*", help="Tags; commas also separate tags")
    tag.add_argument("--add", action="store_true", help="Append instead of replacing")

    status = sub.add_parser("status", help="Set the read status of papers")
    status.add_argument("status", type=_status_arg)
    status.add_argument("paper_ids", nargs="+")

    note = sub.add_parser("note", help="Set the note of a paper")
    note.add_argument("paper_id")
    note.add_argument("text")

    export = sub.add_parser("export", help="Write the library to a JSON file")
    export.add_argument("path", type=Path)

    imp = sub.add_parser("import", help="Load a library exported with 'export'")
    imp.add_argument("path", type=Path)
    imp.add_argument("--replace", action="store_true", help="Replace folders instead of merging")
    return parser


# ============================================================================
# Commands
# ============================================================================


def _require_saved(state: AppState, paper_ids: list[str]) -> str | None:
    """Return an error message if any id is not a saved paper."""
    missing = [pid for pid in paper_ids if not state.ledger.is_saved(pid)]
    if not missing:
        return None
    return build_actionable_error(
        "update the library",
        why=f"not in the library: {', '.join(missing)}",
        next_step="save the paper with 'ai4paper like <id>' first",
    )


def _require_folder(state: AppState, folder_id: str | None) -> str | None:
    if folder_id is None or state.library.folder(folder_id) is not None:
        return None
    return build_actionable_error(
        "find the folder",
        why=f"no folder has id {folder_id}",
        next_step="run 'ai4paper folders' to list folder ids",
    )


def _cmd_swipe(state: AppState, args: argparse.Namespace, console: Console) -> int:
    liking = args.command == "like"
    paper_id = args.paper_id
    if paper_id is None:
        paper = state.current_paper
        if paper is None:
            console.print("The feed is empty.")
            return 0
        paper_id = paper.id
    elif state.paper(paper_id) is None:
        print(
            build_actionable_error(
                f"{args.command} {paper_id}",
                why="the paper is not in the corpus",
                next_step="run 'ai4paper feed' to list paper ids",
            ),
            file=sys.stderr,
        )
        return 1

    if liking:
        error = _require_folder(state, args.folder)
        if error:
            print(error, file=sys.stderr)
            return 1
        already_saved = state.ledger.is_saved(paper_id)
        state.library.active_folder_id = args.folder
        state.like(paper_id)
        if already_saved and args.folder is not None:
            state.library.update_folder(paper_id, args.folder)
        console.print(f"[green]Saved[/] {escape_rich_text(paper_id)}")
    else:
        state.dislike(paper_id)
        console.print(f"[yellow]Dismissed[/] {escape_rich_text(paper_id)}")
    return 0


def _cmd_library(
    state: AppState, args: argparse.Namespace, config: UserConfig, console: Console
) -> int:
    folder_id = LibraryQuery.UNFILED if args.unfiled else args.folder
    error = _require_folder(state, args.folder)
    if error:
        print(error, file=sys.stderr)
        return 1
    query = LibraryQuery(
        search=args.search,
        search_mode="fuzzy" if args.fuzzy else config.search_mode,
        status=args.status,
        folder_id=folder_id,
        include_subfolders=args.subfolders,
        tag=args.tag,
        sort=args.sort or config.default_sort,
        group_by=args.group or config.default_group_by,
    )
    groups = state.library_view(query)
    if not any(group.items for group in groups):
        console.print("No papers found.")
        return 0
    for table in library_tables(groups, state.library):
        console.print(table)
    return 0


def _cmd_folder(state: AppState, args: argparse.Namespace, console: Console) -> int:
    library = state.library
    action = args.folder_command
    if action == "add":
        error = _require_folder(state, args.parent)
        if error:
            print(error, file=sys.stderr)
            return 1
        folder = library.add_folder(args.name, args.parent)
        if folder is None:
            print(
                build_actionable_error("create folder", next_step="give the folder a name"),
                file=sys.stderr,
            )
            return 1
        console.print(f"{escape_rich_text(folder.name)} [dim]{folder.id}[/]")
        return 0

    error = _require_folder(state, args.folder_id)
    if error:
        print(error, file=sys.stderr)
        return 1
    if action == "rm":
        library.remove_folder(args.folder_id)
        return 0
    if action == "mv":
        error = _require_folder(state, args.parent_id)
        if error:
            print(error, file=sys.stderr)
            return 1
        if not library.move_folder(args.folder_id, args.parent_id):
            print(
                build_actionable_error(
                    "move folder",
                    why="the target is the folder itself, one of its subfolders, "
                    "or already holds a folder with that name",
                    next_step="pick another parent",
                ),
                file=sys.stderr,
            )
            return 1
        return 0
    if not library.rename_folder(args.folder_id, args.name):
        print(
            build_actionable_error(
                "rename folder",
                why="the name is blank or used by a sibling folder",
                next_step="pick another name",
            ),
            file=sys.stderr,
        )
        return 1
    return 0


def _cmd_tag(state: AppState, args: argparse.Namespace) -> int:
    error = _require_saved(state, [args.paper_id])
    if error:
        print(error, file=sys.stderr)
        return 1
    tags = [part for raw in args.tags for part in raw.split(",")]
    if args.add:
        meta = state.library.meta(args.paper_id)
        tags = [*(meta.tags if meta else []), *tags]
    state.library.update_tags(args.paper_id, tags)
    return 0


def _cmd_import(state: AppState, args: argparse.Namespace, console: Console) -> int:
    try:
        data = json.loads(args.path.read_text(encoding="utf-8"))
        saved, folders, metas = import_library(
            data, state.library, state.ledger, merge=not args.replace
        )
    except (OSError, json.JSONDecodeError, ValueError) as e:
        print(
            build_actionable_error(
                f"import {args.path}", why=str(e), next_step="pass a file written by 'export'"
            ),
            file=sys.stderr,
        )
        return 1
    console.print(f"Imported {saved} papers, {folders} folders, {metas} annotations.")
    return 0


def run_command(
    state: AppState, args: argparse.Namespace, config: UserConfig, console: Console
) -> int:
    """Dispatch a parsed command against the app state. Returns exit code."""
    command = args.command
    library = state.library
    if command == "feed":
        console.print(feed_table(state.feed_papers, args.limit))
    elif command in ("like", "dislike"):
        return _cmd_swipe(state, args, console)
    elif command == "unsave":
        state.ledger.remove_saved_many(args.paper_ids)
    elif command == "show":
        paper = state.paper(args.paper_id)
        if paper is None:
            print(f"Error: unknown paper {args.paper_id}", file=sys.stderr)
            return 1
        console.print(paper_detail(paper, library.meta(paper.id), library))
    elif command == "library":
        return _cmd_library(state, args, config, console)
    elif command == "folders":
        console.print(folder_tree(library))
    elif command == "tags":
        for tag, count in library.tag_counts().items():
            console.print(f"{escape_rich_text(tag)} ({count})")
    elif command == "folder":
        return _cmd_folder(state, args, console)
    elif command == "move":
        error = _require_folder(state, args.folder_id) or _require_saved(state, args.paper_ids)
        if error:
            print(error, file=sys.stderr)
            return 1
        library.move_papers(args.paper_ids, args.folder_id)
    elif command == "tag":
        return _cmd_tag(state, args)
    elif command == "status":
        error = _require_saved(state, args.paper_ids)
        if error:
            print(error, file=sys.stderr)
            return 1
        library.update_status_many(args.paper_ids, args.status)
    elif command == "note":
        error = _require_saved(state, [args.paper_id])
        if error:
            print(error, file=sys.stderr)
            return 1
        library.update_note(args.paper_id, args.text)
    elif command == "export":
        try:
            write_json_atomic(args.path, export_library(library, state.ledger))
        except OSError as e:
            print(f"Error: Failed to write {args.path}: {e}", file=sys.stderr)
            return 1
        console.print(f"Exported library to {escape_rich_text(str(args.path))}")
    elif command == "import":
        return _cmd_import(state, args, console)
    if not library.last_persist_ok:
        return 1
    return 0


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[], UserConfig] = load_config,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    console: Console | None = None,
) -> int:
    """Main entry point. Returns exit code."""
    args = build_parser().parse_args(argv)
    configure_logging_fn(args.debug)
    config = load_config_fn()

    corpus_path = args.corpus or (Path(config.corpus_path) if config.corpus_path else None)
    if corpus_path is None:
        print(
            build_actionable_error(
                "load papers",
                why="no corpus is configured",
                next_step="pass --corpus DIR or set corpus_path in config.json",
            ),
            file=sys.stderr,
        )
        return 1
    catalog = PaperCatalog.from_path(corpus_path.expanduser())
    data_dir = args.data_dir or config.resolved_data_dir()
    logger.debug("ai4paper %s: corpus=%s data=%s", args.command, corpus_path, data_dir)

    state = AppState.open(catalog, data_dir)
    try:
        return run_command(state, args, config, console or Console())
    finally:
        state.close()


__all__ = [
    "build_actionable_error",
    "build_parser",
    "main",
    "run_command",
]
