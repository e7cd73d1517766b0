"""Main CLI entry point for nodedeps.

Provides commands: extract
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

from nodedeps import __version__
from nodedeps.cli.extract import extract_command
from nodedeps.resolvers import RESOLVERS

logger = logging.getLogger("nodedeps.cli")


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Setup logging configuration with Rich integration.

    Args:
        verbose: Enable verbose logging.
        console: Rich Console instance for coordinated output (optional).
    """
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        log_time_format="[%H:%M:%S]",
    )

    logging.basicConfig(
        level=level,
        format="[%(name)s] [%(levelname)s] %(message)s",
        handlers=[handler],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodedeps",
        description="nodedeps - checksum-verified dependency extraction for Node projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Arguments after a bare '--' are passed to the package manager's list "
            "command, e.g. nodedeps extract npm . -- --omit=dev"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    extract_parser = subparsers.add_parser(
        "extract",
        help="Resolve a project's dependencies and their tarball checksums",
    )
    extract_parser.add_argument(
        "tool",
        choices=sorted(RESOLVERS),
        help="Package manager that installed the project",
    )
    extract_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Project directory containing package.json (default: current directory)",
    )
    extract_parser.add_argument(
        "-c",
        "--config",
        help=(
            "Optional extraction configuration. Can be a path to a TOML/JSON "
            "file or an inline TOML/JSON string. When omitted, built-in "
            "defaults are used."
        ),
    )
    extract_parser.add_argument(
        "-o",
        "--output",
        help="Write the dependency list to this JSON file",
    )
    extract_parser.add_argument(
        "--graph",
        help="Write the dependency graph (node-link JSON) to this file",
    )
    extract_parser.add_argument(
        "-j",
        "--threads",
        type=int,
        help="Number of workers used to calculate checksums (default: 3)",
    )
    extract_parser.add_argument(
        "--skip-install",
        action="store_true",
        help="Never install; exit with status 2 if the project is not installed",
    )
    extract_parser.add_argument(
        "--allow-partial",
        action="store_true",
        help="Use partial tool output instead of failing",
    )
    extract_parser.add_argument(
        "--overwrite-lock",
        action="store_true",
        help="Refresh the lockfile when package.json is newer",
    )
    extract_parser.add_argument(
        "--ignore-node-modules",
        action="store_true",
        help="List dependencies from the lockfile even if node_modules exists",
    )
    extract_parser.add_argument(
        "--type",
        dest="type_restriction",
        choices=["all", "dev", "prod"],
        help="Dependency scopes to collect (npm only)",
    )
    extract_parser.add_argument(
        "--install-args",
        dest="install_args",
        metavar="ARGS",
        help=(
            "Extra arguments for the install command as one whitespace-separated "
            "string, e.g. --install-args='--prefer-offline --no-audit'"
        ),
    )
    extract_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Don't print the summary table",
    )
    return parser


def split_tool_args(argv: List[str]) -> Tuple[List[str], List[str]]:
    """Split argv at the first bare ``--``; the tail goes to the list command."""
    if "--" not in argv:
        return list(argv), []
    index = argv.index("--")
    return argv[:index], argv[index + 1:]


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        int: Exit code.
    """
    parser = build_parser()
    own_args, tool_args = split_tool_args(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(own_args)
    args.tool_args = tool_args

    setup_logging(args.verbose)

    if args.command == "extract":
        return extract_command(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
