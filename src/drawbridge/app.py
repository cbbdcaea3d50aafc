"""Command-line entry point for the Drawbridge diagram engine."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_type_hints

from .diagram.document_model import parse_document
from .diagram.extractor import extract_node_by_id, extract_nodes
from .diagram.merge import delete_node, replace_nodes
from .diagram.sanitizer import convert_to_legal_xml
from .errors import DrawbridgeError
from .services.settings import Settings, SettingsStore
from .session import DiagramSession
from .utils import logging as logging_utils
from .utils.file_io import safe_filename, write_text

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure file logging, echoing to stderr only when debugging."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``drawbridge`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = _env_flag("DRAWBRIDGE_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("DRAWBRIDGE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    handler: Callable[[argparse.Namespace, Settings], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2
    try:
        return handler(args, settings)
    except DrawbridgeError as exc:
        _LOGGER.warning("Command %s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drawbridge",
        description="Merge, inspect, and store draw.io diagram markup.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.drawbridge/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    merge = commands.add_parser("merge", help="Merge a fragment into a document by cell id.")
    merge.add_argument("base", help="Document file ('-' for stdin).")
    merge.add_argument("fragment", help="Fragment file ('-' for stdin).")
    merge.add_argument("-o", "--output", metavar="PATH", help="Write the result here instead of stdout.")
    merge.set_defaults(handler=_cmd_merge)

    delete = commands.add_parser("delete", help="Delete a cell with its children and attached edges.")
    delete.add_argument("document", help="Document file ('-' for stdin).")
    delete.add_argument("node_id")
    delete.add_argument("-o", "--output", metavar="PATH", help="Write the result here instead of stdout.")
    delete.set_defaults(handler=_cmd_delete)

    extract = commands.add_parser("extract", help="Print the serialized subtree of one cell.")
    extract.add_argument("document", help="Document file ('-' for stdin).")
    extract.add_argument("node_id")
    extract.set_defaults(handler=_cmd_extract)

    nodes = commands.add_parser("nodes", help="List the non-structural cells of a document.")
    nodes.add_argument("document", help="Document file ('-' for stdin).")
    nodes.add_argument("--json", action="store_true", help="Emit JSON instead of a table.")
    nodes.set_defaults(handler=_cmd_nodes)

    sanitize = commands.add_parser("sanitize", help="Wrap a fragment in a single <root> container.")
    sanitize.add_argument("fragment", help="Fragment file ('-' for stdin).")
    sanitize.set_defaults(handler=_cmd_sanitize)

    history = commands.add_parser("history", help="Inspect the stored version history.")
    history.add_argument("action", choices=("list", "show", "delete", "clear"), nargs="?", default="list")
    history.add_argument("index", type=int, nargs="?")
    history.set_defaults(handler=_cmd_history)

    library = commands.add_parser("library", help="Manage saved nodes.")
    library.add_argument("action", choices=("list", "save", "delete", "export", "clear"), nargs="?", default="list")
    library.add_argument("target", nargs="?", help="Document file for 'save', node id for 'delete'/'export'.")
    library.add_argument("--dir", metavar="PATH", help="Directory for 'export' (defaults to export_dir).")
    library.set_defaults(handler=_cmd_library)
    return parser


def _cmd_merge(args: argparse.Namespace, settings: Settings) -> int:
    base = _read_input(args.base)
    fragment = convert_to_legal_xml(_read_input(args.fragment))
    _write_output(replace_nodes(base, fragment), args.output)
    return 0


def _cmd_delete(args: argparse.Namespace, settings: Settings) -> int:
    _write_output(delete_node(_read_input(args.document), args.node_id), args.output)
    return 0


def _cmd_extract(args: argparse.Namespace, settings: Settings) -> int:
    node_xml = extract_node_by_id(_read_input(args.document), args.node_id)
    if node_xml is None:
        print(f"error: node {args.node_id!r} not found", file=sys.stderr)
        return 1
    print(node_xml)
    return 0


def _cmd_nodes(args: argparse.Namespace, settings: Settings) -> int:
    document = parse_document(_read_input(args.document))
    found = extract_nodes(document)
    if args.json:
        json.dump([{"id": node.id, "label": node.label} for node in found], sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0
    for node in found:
        print(f"{node.id}\t{node.label}")
    return 0


def _cmd_sanitize(args: argparse.Namespace, settings: Settings) -> int:
    print(convert_to_legal_xml(_read_input(args.fragment)))
    return 0


def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    history = DiagramSession.from_settings(settings).history
    if args.action == "clear":
        history.clear()
        return 0
    if args.action in {"show", "delete"}:
        if args.index is None:
            print(f"error: history {args.action} needs an index", file=sys.stderr)
            return 2
        try:
            version = history.delete(args.index) if args.action == "delete" else history.get(args.index)
        except IndexError:
            print(f"error: no version at index {args.index}", file=sys.stderr)
            return 1
        if args.action == "show":
            print(version.document_text)
        return 0
    for index, version in enumerate(history):
        print(f"{index}\t#{version.sequence_number}\t{len(version.document_text)} chars")
    return 0


def _cmd_library(args: argparse.Namespace, settings: Settings) -> int:
    library = DiagramSession.from_settings(settings).library
    if args.action == "clear":
        library.clear()
        return 0
    if args.action == "list":
        for cell in library:
            print(f"{cell.id}\t{cell.display_name}\t{cell.saved_at.isoformat()}")
        return 0
    if not args.target:
        print(f"error: library {args.action} needs a target", file=sys.stderr)
        return 2
    if args.action == "save":
        added = library.add_many(extract_nodes(parse_document(_read_input(args.target))))
        print(f"Saved {len(added)} node(s)")
        return 0
    if args.action == "delete":
        if not library.delete(args.target):
            print(f"error: no saved node {args.target!r}", file=sys.stderr)
            return 1
        return 0
    saved = library.get(args.target)
    if saved is None:
        print(f"error: no saved node {args.target!r}", file=sys.stderr)
        return 1
    directory = Path(args.dir or settings.export_dir).expanduser()
    path = write_text(directory / safe_filename(saved.display_name, ".xml"), saved.document_text)
    print(path)
    return 0


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).expanduser().read_text(encoding="utf-8")


def _write_output(text: str, destination: str | None) -> None:
    if destination:
        write_text(Path(destination).expanduser(), text)
        return
    print(text)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


_FIELD_PARSERS: Dict[type, Callable[[str], Any]] = {
    str: str,
    int: lambda raw: int(raw, 10),
    float: float,
    bool: _parse_bool,
}


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    field_types = get_type_hints(Settings)
    overrides: Dict[str, Any] = {}
    for entry in items or ():
        key, separator, raw_value = entry.partition("=")
        key = key.strip()
        if not separator:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in field_types:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(field_types[key], raw_value.strip())
    return overrides


def _coerce_value(field_type: type, raw_value: str) -> Any:
    parser = _FIELD_PARSERS.get(field_type, str)
    try:
        return parser(raw_value)
    except ValueError as exc:
        raise ValueError(f"Setting expects {field_type.__name__}, got '{raw_value}'.") from exc


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": asdict(settings), "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("DRAWBRIDGE_"))
