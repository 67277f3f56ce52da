"""Command-line interface for VoxShop.

Provides subcommands for viewing the active list, applying spoken-style
commands, adding items, exporting, suggestions, list and staple
management, item history, and running the JSON API server. Every
subcommand opens a ShoppingSession on the configured database, performs
one action and flushes state before exiting.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from voxshop.category_mapper import CATEGORY_LABELS
from voxshop.config import ConfigError, load_config
from voxshop.exporter import ExportFormat
from voxshop.history import frequent_items, recent_items
from voxshop.models import Severity, TodoFilter, normalize_text
from voxshop.quantity_parser import build_item_label
from voxshop.session import ShoppingSession
from voxshop.storage import SqliteStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from voxshop.config import Config
    from voxshop.models import (
        Feedback,
        GroceryList,
        HistoryEntry,
        Item,
        Staple,
        SuggestionMatch,
    )


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s: %(message)s"


# ------------------------------------------------------------------
# Config + session bootstrap
# ------------------------------------------------------------------


def _configure_logging(level_name: str, verbose: bool = False) -> None:
    """Apply the configured log level; ``--verbose`` forces DEBUG."""
    logging.basicConfig(format=LOG_FORMAT)
    level = logging.DEBUG if verbose else logging.getLevelNamesMapping()[level_name]
    logging.getLogger().setLevel(level)


def _load_config_safe(args: argparse.Namespace) -> Config | None:
    """Load application config, applying the ``--db`` override.

    Also applies the configured log level.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Config instance or None if the configuration is invalid.
    """
    try:
        cfg = load_config()
    except ConfigError as err:
        print(f"Error: {err}", file=sys.stderr)
        return None
    _configure_logging(cfg.log_level, getattr(args, "verbose", False))
    db_path: str | None = getattr(args, "db", None)
    if db_path:
        cfg = dataclasses.replace(cfg, database_path=db_path)
    return cfg


def _open_session(cfg: Config) -> ShoppingSession:
    """Open a session on the configured SQLite database.

    Storage warnings raised while loading are printed to stderr.

    Args:
        cfg: Application configuration.

    Returns:
        A loaded ShoppingSession.
    """
    session = ShoppingSession(SqliteStore(cfg.database_path), cfg)
    if session.storage_error is not None:
        print(f"Storage: {session.storage_error.message}", file=sys.stderr)
    return session


# ------------------------------------------------------------------
# Output formatting
# ------------------------------------------------------------------


def _print_feedback(feedback: Feedback | None) -> int:
    """Print a feedback message and map its severity to an exit code.

    Args:
        feedback: Outcome message, or None.

    Returns:
        0 for success and info, 1 for warnings and errors.
    """
    if feedback is None:
        return 0
    message = feedback.message
    if feedback.title:
        message = f"{feedback.title}: {message}"
    if feedback.severity in (Severity.WARNING, Severity.ERROR):
        print(message, file=sys.stderr)
        return 1
    print(message)
    return 0


def _format_item(item: Item) -> str:
    """Format one item as a checklist row."""
    mark = "x" if item.completed else " "
    return f"  [{mark}] {build_item_label(item.text, item.quantity, item.unit)}"


def _format_grouped_items(groups: dict[str, list[Item]]) -> str:
    """Format items grouped by category with display-label headers.

    Args:
        groups: Category value to items, in display order.

    Returns:
        Formatted list string.
    """
    if not groups:
        return "Your list is empty."

    lines: list[str] = []
    for category, items in groups.items():
        lines.append(f"[{CATEGORY_LABELS.get(category, category.title())}]")
        lines.extend(_format_item(item) for item in items)
        lines.append("")
    return "\n".join(lines).rstrip()


def _format_lists(lists: Sequence[GroceryList], active_list_id: str) -> str:
    """Format the list collection as a table, marking the active list.

    Args:
        lists: All grocery lists.
        active_list_id: Id of the active list.

    Returns:
        Formatted table string.
    """
    header = f"  {'Name':<30s} {'Items':>6s}"
    sep = "  " + "-" * 37
    lines: list[str] = [header, sep]
    for grocery_list in lists:
        marker = "*" if grocery_list.id == active_list_id else " "
        count = str(len(grocery_list.items))
        lines.append(f"{marker} {grocery_list.name:<30s} {count:>6s}")
    return "\n".join(lines)


def _format_staples(staples: Sequence[Staple]) -> str:
    """Format saved staples as a table with label and category.

    Args:
        staples: Saved staples.

    Returns:
        Formatted table string.
    """
    if not staples:
        return "No staples saved."

    header = f"  {'Staple':<30s} {'Category':<15s}"
    sep = "  " + "-" * 46
    lines: list[str] = [header, sep]
    for staple in staples:
        label = build_item_label(staple.name, staple.quantity, staple.unit)
        category = CATEGORY_LABELS.get(staple.category, "") if staple.category else ""
        lines.append(f"  {label:<30s} {category:<15s}")
    return "\n".join(lines)


def _format_history(entries: Sequence[HistoryEntry]) -> str:
    """Format item history with add counts.

    Args:
        entries: History entries in display order.

    Returns:
        Formatted table string.
    """
    if not entries:
        return "No item history yet."

    header = f"  {'Item':<30s} {'Added':>6s}"
    sep = "  " + "-" * 37
    lines: list[str] = [header, sep]
    for entry in entries:
        label = build_item_label(entry.name, entry.quantity, entry.unit)
        lines.append(f"  {label:<30s} {entry.count:>6d}")
    return "\n".join(lines)


def _format_matches(matches: Sequence[SuggestionMatch]) -> str:
    """Format suggestion matches with score and reason."""
    lines: list[str] = []
    for match in matches:
        candidate = match.candidate
        label = build_item_label(candidate.name, candidate.quantity, candidate.unit)
        lines.append(f"  {label:<30s} {match.score:>5.2f}  {match.reason}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Subcommand handlers
# ------------------------------------------------------------------


def _handle_show(args: argparse.Namespace) -> int:
    """Handle the ``show`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    with _open_session(cfg) as session:
        if args.filter is not None:
            session.set_filter(TodoFilter(args.filter))
        active = session.state.active_list
        counts = session.counts
        name = active.name if active is not None else ""
        print(f"{name} ({counts.active} left of {counts.total})")
        print()
        print(_format_grouped_items(session.grouped_items()))
    return 0


def _handle_say(args: argparse.Namespace) -> int:
    """Handle the ``say`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for a warning or error).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    transcript = " ".join(args.transcript)
    with _open_session(cfg) as session:
        return _print_feedback(session.handle_transcript(transcript))


def _handle_add(args: argparse.Namespace) -> int:
    """Handle the ``add`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for a warning or error).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    text = " ".join(args.text)
    with _open_session(cfg) as session:
        return _print_feedback(session.add_text(text))


def _handle_export(args: argparse.Namespace) -> int:
    """Handle the ``export`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    with _open_session(cfg) as session:
        output = session.export(ExportFormat(args.format), not args.no_checked)
    if output:
        print(output)
    return 0


def _handle_suggest(args: argparse.Namespace) -> int:
    """Handle the ``suggest`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 when something matched, 1 otherwise).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    query = " ".join(args.query)
    with _open_session(cfg) as session:
        matches = session.suggestions(query)
        correction = session.did_you_mean(query)

    if correction is not None:
        print(f"Did you mean: {correction.candidate.name}?")
    if matches:
        print(_format_matches(matches))
    if not matches and correction is None:
        print(f"No suggestions for '{query}'.", file=sys.stderr)
        return 1
    return 0


def _find_list(lists: Sequence[GroceryList], name: str) -> GroceryList | None:
    """Find a list by case-insensitive name."""
    wanted = normalize_text(name)
    for grocery_list in lists:
        if normalize_text(grocery_list.name) == wanted:
            return grocery_list
    return None


def _handle_lists(args: argparse.Namespace) -> int:
    """Handle the ``lists`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    action: str | None = args.action
    with _open_session(cfg) as session:
        if action is None:
            print(_format_lists(session.state.lists, session.state.active_list_id))
            return 0

        if action == "create":
            return _print_feedback(session.create_list(args.name))

        target = _find_list(session.state.lists, args.name)
        if target is None:
            print(f"Error: List '{args.name}' not found.", file=sys.stderr)
            return 1

        if action == "rename":
            return _print_feedback(session.rename_list(target.id, args.new_name))
        if action == "delete":
            return _print_feedback(session.delete_list(target.id))
        if action == "switch":
            return _print_feedback(session.switch_list(target.id))

    print(f"Error: Unknown action '{action}'.", file=sys.stderr)
    return 1


def _handle_staples(args: argparse.Namespace) -> int:
    """Handle the ``staples`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    action: str | None = args.action
    text = " ".join(args.text)
    with _open_session(cfg) as session:
        if action is None:
            print(_format_staples(session.state.staples))
            return 0
        if action == "add":
            return _print_feedback(session.save_staple(text))
        if action == "use":
            return _print_feedback(session.add_all_staples())
        if action == "remove":
            return _remove_staple(session, text)

    print(f"Error: Unknown action '{action}'.", file=sys.stderr)
    return 1


def _remove_staple(session: ShoppingSession, name: str) -> int:
    """Remove a staple by name.

    Args:
        session: Open shopping session.
        name: Name of the staple to remove.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    target = normalize_text(name)
    for staple in session.state.staples:
        if normalize_text(staple.name) == target:
            return _print_feedback(session.remove_staple(staple.id))
    print(f"Staple '{name}' not found.", file=sys.stderr)
    return 1


def _handle_history(args: argparse.Namespace) -> int:
    """Handle the ``history`` subcommand.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    with _open_session(cfg) as session:
        history = session.state.history
    entries = frequent_items(history) if args.frequent else recent_items(history)
    print(_format_history(entries))
    return 0


def _handle_serve(args: argparse.Namespace) -> int:
    """Handle the ``serve`` subcommand.

    Starts the Flask JSON API on the configured port.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cfg = _load_config_safe(args)
    if cfg is None:
        return 1

    from voxshop.app import create_app

    app = create_app(db_path=cfg.database_path, config=cfg)
    port: int = args.port if args.port is not None else cfg.flask_port
    try:
        app.run(port=port, debug=cfg.flask_debug)
    finally:
        app.extensions["voxshop"].close()
    return 0


# ------------------------------------------------------------------
# Argument parser
# ------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="voxshop",
        description="VoxShop: voice and text driven shopping lists.",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (default from VOXSHOP_DATABASE_PATH).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    subparsers = parser.add_subparsers(dest="command")

    _add_show_parser(subparsers)
    _add_say_parser(subparsers)
    _add_add_parser(subparsers)
    _add_export_parser(subparsers)
    _add_suggest_parser(subparsers)
    _add_lists_parser(subparsers)
    _add_staples_parser(subparsers)
    _add_history_parser(subparsers)
    _add_serve_parser(subparsers)

    return parser


def _add_show_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``show`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    show_parser = subparsers.add_parser(
        "show",
        help="Show the active list grouped by category.",
    )
    show_parser.add_argument(
        "--filter",
        default=None,
        choices=[f.value for f in TodoFilter],
        help="Set and apply the list filter.",
    )


def _add_say_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``say`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    say_parser = subparsers.add_parser(
        "say",
        help="Apply a voice command, e.g. 'move apples up'.",
    )
    say_parser.add_argument(
        "transcript",
        nargs="+",
        help="Command words as they would be spoken.",
    )


def _add_add_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``add`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    add_parser = subparsers.add_parser(
        "add",
        help="Add an item, e.g. '2 gallons of milk'.",
    )
    add_parser.add_argument(
        "text",
        nargs="+",
        help="Item text with an optional leading quantity.",
    )


def _add_export_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``export`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    export_parser = subparsers.add_parser(
        "export",
        help="Export the active list.",
    )
    export_parser.add_argument(
        "--format",
        default=ExportFormat.PLAIN.value,
        choices=[f.value for f in ExportFormat],
        help="Output format (default: plain).",
    )
    export_parser.add_argument(
        "--no-checked",
        action="store_true",
        help="Leave out picked-up items.",
    )


def _add_suggest_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``suggest`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    suggest_parser = subparsers.add_parser(
        "suggest",
        help="Suggest item names for partial or misspelled input.",
    )
    suggest_parser.add_argument(
        "query",
        nargs="+",
        help="Partial item name.",
    )


def _add_lists_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``lists`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    lists_parser = subparsers.add_parser(
        "lists",
        help="Manage grocery lists.",
    )
    lists_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["create", "rename", "delete", "switch"],
        help="Action: create, rename, delete, or switch.",
    )
    lists_parser.add_argument(
        "name",
        nargs="?",
        default="",
        help="List name.",
    )
    lists_parser.add_argument(
        "new_name",
        nargs="?",
        default="",
        help="New name (for 'rename' action only).",
    )


def _add_staples_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``staples`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    staples_parser = subparsers.add_parser(
        "staples",
        help="Manage staples and add them to the active list.",
    )
    staples_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["add", "remove", "use"],
        help="Action: add, remove, or use (add all to the list).",
    )
    staples_parser.add_argument(
        "text",
        nargs="*",
        default=[],
        help="Staple text, e.g. '2 lbs rice'.",
    )


def _add_history_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``history`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    history_parser = subparsers.add_parser(
        "history",
        help="Show previously added items.",
    )
    history_parser.add_argument(
        "--frequent",
        action="store_true",
        help="Order by how often items were added.",
    )


def _add_serve_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``serve`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the JSON API server.",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default from FLASK_PORT).",
    )


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Run the CLI application.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    exit_code = _dispatch(args)
    sys.exit(exit_code)


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch a parsed command to the appropriate handler.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code from the handler.
    """
    command: str = args.command
    if command == "show":
        return _handle_show(args)
    if command == "say":
        return _handle_say(args)
    if command == "add":
        return _handle_add(args)
    if command == "export":
        return _handle_export(args)
    if command == "suggest":
        return _handle_suggest(args)
    if command == "lists":
        return _handle_lists(args)
    if command == "staples":
        return _handle_staples(args)
    if command == "history":
        return _handle_history(args)
    if command == "serve":
        return _handle_serve(args)
    return 1  # pragma: no cover
