#!/usr/bin/env python3
"""Main CLI entry point for parts."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .. import __version__
from ..config import Settings, load_config, split_path_and_keys
from ..detector import ChangeDetector
from ..exceptions import EnumerationError, PartsError
from ..git import GitClient
from ..logging import configure_logging
from ..matcher import compile_part, compile_parts
from ..models.report import ChangeReport, PartStatus
from ..resolver import PartResolver
from ..sources import LiveTree, RevisionTree
from ..storage import StateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CHANGED = 1
EXIT_ERROR = 2

STATUS_SYMBOLS = {
    PartStatus.UNCHANGED: " ",
    PartStatus.CHANGED: "M",
    PartStatus.ADDED: "A",
    PartStatus.REMOVED: "D",
    PartStatus.FAILED: "!",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parts",
        description="Monitor changes of user-defined sections of a project",
    )
    parser.add_argument("--version", action="version", version=f"parts {__version__}")
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH[:KEYS]",
        help="Config file, optionally followed by dotted keys (e.g. pyproject.toml:tool.parts)",
    )
    parser.add_argument(
        "-C", "--root", type=Path, help="Project root (default: current directory)"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase logging verbosity (repeatable)"
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument(
        "--log-format", choices=["console", "json"], help="Log output format (default: console)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # List command
    subparsers.add_parser("list", help="List the parts declared in the config file")

    # Walk command
    walk_parser = subparsers.add_parser("walk", help="Print the files that belong to a part")
    walk_parser.add_argument("part", nargs="?", help="Part name (default: the default part)")
    walk_parser.add_argument(
        "-s", "--sorted", action="store_true", help="Sort paths before printing"
    )

    # Status command
    status_parser = subparsers.add_parser(
        "status", help="Compare every part with the last committed snapshot"
    )
    status_parser.add_argument(
        "--rev", help="Evaluate a git revision instead of the working tree"
    )
    status_parser.add_argument(
        "--base",
        help="Revision of the last snapshot; unchanged paths since then are not re-read (requires --rev)",
    )
    status_parser.add_argument(
        "--dry-run", action="store_true", help="Report changes without committing the snapshot"
    )
    status_parser.add_argument("--json", action="store_true", help="Output the report as JSON")
    status_parser.add_argument("--state-file", type=Path, help="State file location")
    status_parser.add_argument(
        "-j", "--jobs", type=int, help="Number of parts fingerprinted concurrently"
    )
    status_parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Compare as on a first run (every part is reported as added); the snapshot is replaced on commit",
    )
    status_parser.add_argument(
        "--reset-invalid-state",
        action="store_true",
        help="Treat a corrupt or incompatible state file as a first run and overwrite it",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    try:
        settings = Settings()
        if args.quiet:
            log_level = "ERROR"
        elif args.verbose >= 2:
            log_level = "DEBUG"
        elif args.verbose == 1:
            log_level = "INFO"
        else:
            log_level = settings.log_level
        configure_logging(log_level, args.log_format or settings.log_format)

        root = (args.root or Path(os.getcwd())).resolve()

        if args.command == "list":
            return list_parts(args, root)
        elif args.command == "walk":
            return walk_part(args, root, settings)
        elif args.command == "status":
            return status(args, root, settings)
    except PartsError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except ValidationError as e:
        # Invalid PARTS_* environment values or flags
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    parser.print_help()
    return EXIT_ERROR


def list_parts(args, root: Path) -> int:
    """Print the declared parts, marking the default one."""
    config = load_config(root, args.config)

    count = len(config.parts)
    if count == 0:
        header = "Found no part in file: "
    elif count == 1:
        header = "Found 1 part in file: "
    else:
        header = f"Found {count} parts in file: "
    path, keys = split_path_and_keys(config.source)
    print(header + path + (f" -> {'.'.join(keys)}" if keys else ""))

    for name in config.parts:
        suffix = " (default)" if config.is_default(name) else ""
        print(f"- {name}{suffix}")
    return EXIT_OK


def walk_part(args, root: Path, settings: Settings) -> int:
    """Print the member files of one part."""
    config = load_config(root, args.config)
    part_config = config.get(args.part)
    name = args.part if args.part is not None else config.default
    store = StateStore(settings.state_path(root))
    part = compile_part(name, part_config, store.ignore_patterns(root))

    paths = [record.path for record in PartResolver([part]).members_of(part, LiveTree(root))]
    if args.sorted:
        paths.sort()
    for path in paths:
        print(path)
    return EXIT_OK


def status(args, root: Path, settings: Settings) -> int:
    """Classify every part and commit the new snapshot unless told otherwise."""
    if args.base and not args.rev:
        print("Error: --base requires --rev", file=sys.stderr)
        return EXIT_ERROR

    overrides = {}
    if args.state_file is not None:
        overrides["state_file"] = args.state_file
    if args.jobs is not None:
        overrides["jobs"] = args.jobs
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})

    config = load_config(root, args.config)
    store = StateStore(settings.state_path(root))
    parts = compile_parts(config, store.ignore_patterns(root))

    git = None
    if args.rev:
        git = GitClient(root)
        if not git.is_repository():
            raise EnumerationError(f"--rev needs a git repository, {root} is not one")
        source = RevisionTree(git, args.rev)
    else:
        source = LiveTree(root)

    detector = ChangeDetector(
        parts,
        source,
        store,
        jobs=settings.jobs,
        git=git,
        base_revision=args.base,
    )
    report = detector.run(
        commit=not args.dry_run,
        ignore_invalid_state=args.reset_invalid_state,
        ignore_prior=args.reset_state,
    )

    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        print_report(report)

    if report.failed:
        return EXIT_ERROR
    return EXIT_CHANGED if report.has_changes else EXIT_OK


def print_report(report: ChangeReport) -> None:
    for outcome in report.outcomes:
        line = f"{STATUS_SYMBOLS[outcome.status]} {outcome.name}"
        if outcome.status == PartStatus.FAILED:
            line += f": {outcome.error}"
        elif outcome.files is not None:
            line += f" ({outcome.files} files)"
        elif outcome.reused:
            line += " (untouched)"
        print(line)

    summary = ", ".join(
        f"{len(report.names(status))} {status.value}"
        for status in PartStatus
        if report.names(status)
    )
    print(f"\n{summary or 'no parts'}" + ("" if report.committed else " (not committed)"))


if __name__ == "__main__":
    sys.exit(main())
