# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Command-line interface: scan a project for macro definitions and expand,
check or explain the macros it uses.
"""

import argparse
import logging
import os
import sys

from macrolens import __version__, finder
from macrolens.config import ExpansionConfig, ExpansionMode, load_config
from macrolens.diagnostics import Severity, check_file
from macrolens.expander import MacroExpander
from macrolens.hover import hover_text
from macrolens.store import InMemoryStore, MacroStore, SqliteStore
from macrolens.tree import ExpansionNode

log = logging.getLogger("macrolens")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="macrolens",
        description="Expand and check C/C++ preprocessor macros.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"macrolens {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        action="count",
        default=0,
        help="Increase verbosity level.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        dest="quiet",
        action="store_true",
        help="Only report errors.",
    )
    parser.add_argument(
        "--config",
        metavar="<file>",
        help="Read options from the [macrolens] table of a TOML file.",
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in ExpansionMode],
        help="Which invocations each rescan pass expands.",
    )
    parser.add_argument(
        "--max-depth",
        dest="max_depth",
        type=int,
        metavar="<n>",
        help="Maximum expansion depth.",
    )
    parser.add_argument(
        "--no-strip",
        dest="strip",
        action="store_false",
        default=None,
        help="Keep redundant parentheses in expansion results.",
    )
    parser.add_argument(
        "--database",
        metavar="<file>",
        help="Store definitions in an SQLite database.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show progress while scanning.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="List the definitions found.")
    scan.add_argument("root", metavar="<root>")

    for name, text in (
        ("expand", "Expand an invocation."),
        ("hover", "Explain an invocation as Markdown."),
        ("tree", "Show an expansion one pass at a time."),
    ):
        command = commands.add_parser(name, help=text)
        command.add_argument("root", metavar="<root>")
        command.add_argument("name", metavar="<name>")
        command.add_argument(
            "args",
            metavar="<arg>",
            nargs="*",
            help="Arguments of the call. Use --call for a call "
            + "without arguments.",
        )
        command.add_argument(
            "--call",
            action="store_true",
            help="Treat <name> as a call even without arguments.",
        )

    check = commands.add_parser("check", help="Check the macros of files.")
    check.add_argument("root", metavar="<root>")
    check.add_argument("files", metavar="<file>", nargs="+")

    return parser


def _configure_logging(verbose: int, quiet: bool) -> None:
    if quiet:
        level = logging.ERROR
    else:
        level = max(logging.DEBUG, logging.WARNING - 10 * verbose)
    logging.basicConfig(format="%(levelname)s: %(message)s", level=level)


def _resolve_config(args: argparse.Namespace) -> ExpansionConfig:
    config = ExpansionConfig()
    if args.config:
        config = load_config(args.config)
    return config.with_overrides(
        expansion_mode=args.mode,
        max_expansion_depth=args.max_depth,
        strip_extra_parentheses=args.strip,
    )


def _invocation_args(args: argparse.Namespace) -> list[str] | None:
    if args.args or args.call:
        return list(args.args)
    return None


def _scan(args: argparse.Namespace, store: MacroStore) -> int:
    for name in store.names():
        for record in store.lookup(name):
            location = f"{record.source_file}:{record.source_line}"
            print(f"{location}: {record.spelling()}")
    return 0


def _expand(
    args: argparse.Namespace,
    store: MacroStore,
    config: ExpansionConfig,
) -> int:
    result = MacroExpander(store, config).expand(
        args.name,
        _invocation_args(args),
    )
    for step in result.steps:
        print(f"[{step.level}] {step.from_text} -> {step.to_text}")
    if result.has_errors:
        log.error(result.error_message)
        return 1
    print(result.final_text)
    for name in sorted(result.undefined_macros):
        log.warning(f"Undefined macro '{name}' in expansion")
    return 0


def _hover(
    args: argparse.Namespace,
    store: MacroStore,
    config: ExpansionConfig,
) -> int:
    text = hover_text(args.name, _invocation_args(args), store, config)
    if text is None:
        log.warning(f"Nothing to show for '{args.name}'")
        return 1
    print(text)
    return 0


def _tree(
    args: argparse.Namespace,
    store: MacroStore,
    config: ExpansionConfig,
) -> int:
    root = ExpansionNode.root(args.name, _invocation_args(args), store, config)
    if root.error:
        log.error(root.error)
    for node in root.walk():
        print("  " * node.level + node.label)
    return 1 if root.error else 0


def _check(
    args: argparse.Namespace,
    store: MacroStore,
    config: ExpansionConfig,
) -> int:
    status = 0
    for path in args.files:
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()
        relative = os.path.relpath(path, args.root)
        for diagnostic in check_file(text, relative, store, config):
            print(diagnostic)
            if diagnostic.severity is Severity.ERROR:
                status = 1
    return status


def _run(
    args: argparse.Namespace,
    store: MacroStore,
    config: ExpansionConfig,
) -> int:
    finder.find(
        args.root,
        store,
        show_progress=args.progress,
        detect_types=config.detect_type_declarations,
    )

    if args.command == "scan":
        return _scan(args, store)
    if args.command == "expand":
        return _expand(args, store, config)
    if args.command == "hover":
        return _hover(args, store, config)
    if args.command == "tree":
        return _tree(args, store, config)
    return _check(args, store, config)


def _main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose, args.quiet)
    config = _resolve_config(args)

    if not args.database:
        return _run(args, InMemoryStore(), config)

    with SqliteStore(args.database) as store:
        store.clear()
        return _run(args, store, config)


def main(argv: list[str] | None = None) -> None:
    try:
        sys.exit(_main(argv))
    except (OSError, TypeError, ValueError) as e:
        log.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    sys.argv[0] = "macrolens"
    main()
