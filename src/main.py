"""Command-line entry point for playing and managing dialogue trees."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Sequence

from dialoguetree import (
    ChoiceNode,
    DialogueRuntime,
    DialogueSettings,
    DialogueStore,
    DialogueTree,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    validate_tree,
)
from dialoguetree.models import DialogueHistoryEntry
from dialoguetree.persistence import load_tree

_QUIT_COMMANDS = frozenset({"quit", "exit", "q"})


def _format_line(speaker: str | None, text: str) -> str:
    if speaker:
        return f"{speaker}: {text}"
    return text


def run_dialogue(
    runtime: DialogueRuntime,
    tree_id: str,
    *,
    input_func: Callable[[str], str] = input,
    output_func: Callable[[str], None] = print,
) -> list[DialogueHistoryEntry]:
    """Play ``tree_id`` interactively and return the conversation log.

    Text lines wait for Enter. Choices are listed with numbers and read as
    a number. ``quit`` ends the conversation at any prompt.
    """

    runtime.start_dialogue(tree_id)

    while runtime.is_active:
        runtime.skip_typewriter()
        state = runtime.state
        node = runtime.current_node

        if isinstance(node, ChoiceNode):
            if state.displayed_text:
                output_func(_format_line(node.speaker, state.displayed_text))
            if not state.current_choices:
                output_func("(No choices are available.)")
                break
            for index, choice in enumerate(state.current_choices, start=1):
                output_func(f"  [{index}] {choice.text}")

            try:
                raw = input_func("> ").strip().lower()
            except EOFError:
                break
            if raw in _QUIT_COMMANDS:
                break
            try:
                number = int(raw)
            except ValueError:
                number = 0
            if not 1 <= number <= len(state.current_choices):
                output_func(f"Enter a number between 1 and {len(state.current_choices)}.")
                continue
            runtime.select_choice(state.current_choices[number - 1].id)
            continue

        speaker = state.history[-1].speaker if state.history else None
        output_func(_format_line(speaker, state.displayed_text))
        try:
            raw = input_func("")
        except EOFError:
            break
        if raw.strip().lower() in _QUIT_COMMANDS:
            break
        runtime.advance_dialogue()

    history = runtime.state.history
    runtime.end_dialogue()
    return history


def _print_report(tree: DialogueTree) -> bool:
    report = validate_tree(tree)
    print(
        f"Tree '{tree.name}': {len(tree.nodes)} nodes, "
        f"{len(report.reachable_nodes)} reachable from the start node."
    )
    for message in report.errors:
        print(f"ERROR: {message}")
    for message in report.warnings:
        print(f"WARNING: {message}")
    if report.is_valid:
        print("No structural errors found.")
    return report.is_valid


def _read_document(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Failed to read '{path}': {exc}")
        raise SystemExit(2) from exc


def _load_exported_tree(path: Path, settings: DialogueSettings) -> tuple[DialogueStore, str]:
    document = _read_document(path)
    store = DialogueStore(InMemoryKeyValueStore(), settings=settings)
    tree_id = store.import_tree(document)
    if tree_id is None:
        print(f"'{path}' does not contain a valid dialogue tree.")
        raise SystemExit(2)
    return store, tree_id


def _open_storage(args: argparse.Namespace, settings: DialogueSettings) -> DialogueStore:
    storage_dir: Path | None = args.storage_dir or settings.storage_dir
    if storage_dir is None:
        print("--storage-dir is required (or set DIALOGUETREE_STORAGE_DIR).")
        raise SystemExit(2)

    store = DialogueStore(FileKeyValueStore(storage_dir), settings=settings)
    store.load_from_store()
    return store


def _command_play(args: argparse.Namespace, settings: DialogueSettings) -> int:
    if args.tree_id is not None:
        store = _open_storage(args, settings)
        tree_id = args.tree_id
        if store.get_tree(tree_id) is None:
            print(f"Tree '{tree_id}' does not exist.")
            return 2
    elif args.path is not None:
        store, tree_id = _load_exported_tree(args.path, settings)
    else:
        print("Provide a tree file or --tree-id.")
        return 2

    runtime = DialogueRuntime(store)
    history = run_dialogue(runtime, tree_id, input_func=input)

    print("")
    print("Conversation log:")
    for entry in history:
        print(f"- {_format_line(entry.speaker, entry.text)}")
    return 0


def _command_validate(args: argparse.Namespace, settings: DialogueSettings) -> int:
    # Checked as written; importing would already repair dangling references.
    try:
        tree = load_tree(_read_document(args.path))
    except ValueError:
        print(f"'{args.path}' does not contain a valid dialogue tree.")
        return 2
    return 0 if _print_report(tree) else 1


def _command_list(args: argparse.Namespace, settings: DialogueSettings) -> int:
    store = _open_storage(args, settings)
    if not store.trees:
        print("No dialogue trees stored.")
        return 0
    for tree in store.trees.values():
        print(f"{tree.id}\t{tree.name}\t{len(tree.nodes)} nodes")
    return 0


def _command_export(args: argparse.Namespace, settings: DialogueSettings) -> int:
    store = _open_storage(args, settings)
    content = store.export_tree(args.tree_id)
    if content is None:
        print(f"Tree '{args.tree_id}' does not exist.")
        return 2
    if args.output is None:
        print(content)
    else:
        args.output.write_text(content, encoding="utf-8")
        print(f"Exported '{args.tree_id}' to '{args.output}'.")
    return 0


def _command_import(args: argparse.Namespace, settings: DialogueSettings) -> int:
    store = _open_storage(args, settings)
    try:
        document = args.path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Failed to read '{args.path}': {exc}")
        return 2
    tree_id = store.import_tree(document)
    if tree_id is None:
        print(f"'{args.path}' does not contain a valid dialogue tree.")
        return 2
    print(f"Imported '{args.path}' as {tree_id}.")
    return 0


def _parse_args(
    argv: Sequence[str] | None = None, *, settings: DialogueSettings
) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dialogue tree player and tools")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"),
        type=str.upper,
        help="Logging verbosity (default: DIALOGUETREE_LOG_LEVEL or WARNING).",
    )
    parser.add_argument(
        "--storage-dir",
        type=Path,
        help=(
            "Directory of the file-backed tree store. "
            "Defaults to DIALOGUETREE_STORAGE_DIR when unset."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    play = subparsers.add_parser("play", help="Play a dialogue tree in the terminal.")
    play.add_argument("path", type=Path, nargs="?", help="Exported tree JSON file.")
    play.add_argument(
        "--tree-id",
        help="Play a tree from the file-backed store instead of a file.",
    )
    play.set_defaults(handler=_command_play)

    validate = subparsers.add_parser(
        "validate", help="Report structural problems in an exported tree."
    )
    validate.add_argument("path", type=Path, help="Exported tree JSON file.")
    validate.set_defaults(handler=_command_validate)

    listing = subparsers.add_parser("list", help="List trees in the file-backed store.")
    listing.set_defaults(handler=_command_list)

    export = subparsers.add_parser("export", help="Export a stored tree as JSON.")
    export.add_argument("tree_id", help="Identifier of the tree to export.")
    export.add_argument("--output", type=Path, help="Write to this file instead of stdout.")
    export.set_defaults(handler=_command_export)

    importer = subparsers.add_parser("import", help="Import an exported tree into the store.")
    importer.add_argument("path", type=Path, help="Exported tree JSON file.")
    importer.set_defaults(handler=_command_import)

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Run the dialogue tree command-line tools."""

    try:
        settings = DialogueSettings.from_env()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}")
        raise SystemExit(2) from exc

    args = _parse_args(argv, settings=settings)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    status = args.handler(args, settings)
    if status:
        raise SystemExit(status)


if __name__ == "__main__":
    main()
