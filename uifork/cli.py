"""CLI entrypoints for uifork commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Sequence

from . import __version__
from .codegen import IndexGenerator
from .config import ConfigError, load_config
from .errors import UIForkError
from .locator import locate_component
from .logging import configure_logging
from .processor import Command, CommandProcessor
from .scanner import DirectoryScanner

_COMMANDS = {
    "init",
    "watch",
    "new",
    "create",
    "fork",
    "duplicate",
    "rename",
    "delete",
    "promote",
}

_SUCCESS_MESSAGES = {
    "new_version": "Created {component}.{version}",
    "duplicate_version": "Duplicated {component} {source} -> {version}",
    "rename_version": "Renamed {component} {version} -> {newVersion}",
    "delete_version": "Deleted {component} {version}",
    "promote_version": "Promoted {component} {version}; versioning removed",
    "init_component": "Initialized {component} with v1",
}


class _Parser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS if suppress_default else False,
        help="Increase log verbosity for troubleshooting.",
    )


def _add_serve_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the watch server (defaults to $PORT or 3030).",
    )
    parser.add_argument(
        "--lazy",
        action="store_true",
        help="Generate React.lazy imports in the versions file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="uifork",
        description="Keep versioned UI component files and their generated index in sync.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"uifork {__version__}")
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Convert a component file into a versioned component.",
    )
    _add_verbose_option(init_parser, suppress_default=True)
    init_parser.add_argument("path", help="Path to the component file, e.g. src/Button.tsx.")
    init_parser.add_argument(
        "-W",
        "--W",
        "--no-watch",
        dest="no_watch",
        action="store_true",
        help="Do not start the watch server after initializing.",
    )
    _add_serve_options(init_parser)

    watch_parser = subparsers.add_parser(
        "watch",
        help="Watch a directory and serve the websocket API.",
    )
    _add_verbose_option(watch_parser, suppress_default=True)
    watch_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory to watch (defaults to current directory).",
    )
    _add_serve_options(watch_parser)

    new_parser = subparsers.add_parser(
        "new",
        aliases=["create"],
        help="Create a new empty version of a component.",
    )
    _add_verbose_option(new_parser, suppress_default=True)
    new_parser.add_argument("component", help="Component name or path.")
    new_parser.add_argument("version", nargs="?", default=None, help="Explicit version id, e.g. v3.")
    new_parser.set_defaults(command_type="new_version")

    fork_parser = subparsers.add_parser(
        "fork",
        aliases=["duplicate"],
        help="Copy an existing version into a new one.",
    )
    _add_verbose_option(fork_parser, suppress_default=True)
    fork_parser.add_argument("component", help="Component name or path.")
    fork_parser.add_argument("version", help="Version to copy, e.g. v1.")
    fork_parser.add_argument("target", nargs="?", default=None, help="Target version id.")
    fork_parser.set_defaults(command_type="duplicate_version")

    rename_parser = subparsers.add_parser("rename", help="Rename a version.")
    _add_verbose_option(rename_parser, suppress_default=True)
    rename_parser.add_argument("component", help="Component name or path.")
    rename_parser.add_argument("version", help="Version to rename.")
    rename_parser.add_argument("new_version", help="New version id.")
    rename_parser.set_defaults(command_type="rename_version")

    delete_parser = subparsers.add_parser("delete", help="Delete a version.")
    _add_verbose_option(delete_parser, suppress_default=True)
    delete_parser.add_argument("component", help="Component name or path.")
    delete_parser.add_argument("version", help="Version to delete.")
    delete_parser.set_defaults(command_type="delete_version")

    promote_parser = subparsers.add_parser(
        "promote",
        help="Make one version the component and remove versioning.",
    )
    _add_verbose_option(promote_parser, suppress_default=True)
    promote_parser.add_argument("component", help="Component name or path.")
    promote_parser.add_argument("version", help="Version to keep.")
    promote_parser.set_defaults(command_type="promote_version")

    return parser


def _expand_shorthand(argv: Sequence[str]) -> List[str]:
    """Turn ``uifork <path>`` into ``uifork init <path>``."""
    for index, arg in enumerate(argv):
        if arg.startswith("-"):
            continue
        if arg not in _COMMANDS:
            return [*argv[:index], "init", *argv[index:]]
        break
    return list(argv)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for uifork commands."""
    parser = _build_parser()
    raw = sys.argv[1:] if argv is None else argv
    args = parser.parse_args(_expand_shorthand(raw))

    configure_logging(verbose=bool(args.verbose))

    try:
        if args.command == "watch":
            _run_watch(Path(args.path), port=args.port, lazy=args.lazy)
        elif args.command == "init":
            source = Path(args.path).expanduser().resolve()
            result = _execute(source.parent, Command("init_component", {"path": str(source)}), lazy=args.lazy)
            print(_SUCCESS_MESSAGES["init_component"].format_map(result))
            if not args.no_watch:
                _run_watch(source.parent, port=args.port, lazy=args.lazy)
        else:
            directory, name = locate_component(args.component)
            command = Command(args.command_type, _payload(args, name))
            result = _execute(directory, command)
            print(_SUCCESS_MESSAGES[command.type].format_map(result))
    except (UIForkError, ConfigError, NotADirectoryError) as exc:
        parser.exit(1, f"Error: {exc}\n")
    except KeyboardInterrupt:  # pragma: no cover - interactive stop
        print("Stopped watching")


def _payload(args: argparse.Namespace, name: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"component": name, "version": args.version}
    if args.command_type == "duplicate_version" and args.target:
        payload["newVersion"] = args.target
    elif args.command_type == "rename_version":
        payload["newVersion"] = args.new_version
    return payload


def _execute(directory: Path, command: Command, *, lazy: bool = False) -> Dict[str, Any]:
    config = load_config(Path.cwd())
    scanner = DirectoryScanner()
    processor = CommandProcessor(
        scanner.scan(directory),
        scanner=scanner,
        generator=IndexGenerator(lazy=lazy or config.generate.lazy),
        root=Path.cwd(),
    )
    result = asyncio.run(processor.execute(command))
    return {
        **result.ack,
        "component": result.component,
        "source": command.payload.get("version"),
    }


def _run_watch(path: Path, *, port: int | None, lazy: bool) -> None:
    from .engine import VersionSync
    from .service import run_service

    root = path.expanduser().resolve()
    config = load_config(root)
    if port is not None:
        config.server.port = port
    if lazy:
        config.generate.lazy = True
    run_service(VersionSync(root, config))


if __name__ == "__main__":
    main(sys.argv[1:])
