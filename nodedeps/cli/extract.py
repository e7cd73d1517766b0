"""Extract command implementation."""

import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from nodedeps.config.schema import ExtractConfig
from nodedeps.errors import RECOVERABLE_ERRORS, ProjectNotInstalledError
from nodedeps.export.graph import build_dependency_graph, export_graph_json
from nodedeps.export.json import export_json
from nodedeps.resolvers import get_resolver_class
from nodedeps.resolvers.base import ResolutionResult
from nodedeps.runtime.config_loader import load_extract_config

logger = logging.getLogger("nodedeps.cli.extract")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_INSTALLED = 2


def build_config(args) -> ExtractConfig:
    """Merge the config file (if any) with command-line overrides."""
    config = load_extract_config(getattr(args, "config", None))
    overrides = {}
    if getattr(args, "threads", None) is not None:
        overrides["threads"] = args.threads
    for flag, field in (
        ("skip_install", "skip_install"),
        ("allow_partial", "allow_partial_results"),
        ("overwrite_lock", "overwrite_package_lock"),
        ("ignore_node_modules", "ignore_node_modules"),
    ):
        if getattr(args, flag, False):
            overrides[field] = True
    if getattr(args, "tool_args", None):
        overrides["args"] = args.tool_args
    if getattr(args, "install_args", None):
        overrides["install_args"] = args.install_args
    if getattr(args, "type_restriction", None):
        overrides["type_restriction"] = args.type_restriction
    if not overrides:
        return config
    return ExtractConfig.from_dict({**config.to_dict(), **overrides})


def print_summary(result: ResolutionResult, console: Optional[Console] = None) -> None:
    """Print a table of resolved dependencies and what was left out."""
    console = console or Console()
    table = Table(title=f"{result.root_id} ({result.tool} {result.tool_version})")
    table.add_column("Dependency")
    table.add_column("Scopes")
    table.add_column("Paths", justify="right")
    table.add_column("sha1")
    for dep in result.dependencies:
        table.add_row(
            dep.id,
            ",".join(dep.scopes),
            str(len(dep.requested_by)),
            dep.checksums.get("sha1", "-"),
        )
    console.print(table)

    left_out = (
        ("bundled", result.missing_bundled),
        ("peer", result.missing_peer),
        ("optional", result.missing_optional),
        ("not cached", result.missing_in_cache),
    )
    for label, ids in left_out:
        if ids:
            console.print(f"Skipped {len(ids)} {label} dependencies")


def extract_command(args) -> int:
    """Execute extract command.

    Args:
        args: Parsed command-line arguments.

    Returns:
        int: Exit code.
    """
    try:
        return _extract_command_impl(args)
    except ProjectNotInstalledError as e:
        logger.warning("%s", e)
        return EXIT_NOT_INSTALLED
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_ERROR
    except RECOVERABLE_ERRORS as e:
        print(f"Extraction failed: {e}", file=sys.stderr)
        logger.debug("Extraction failure details", exc_info=True)
        return EXIT_ERROR


def _extract_command_impl(args) -> int:
    project_dir = Path(args.path).expanduser().resolve()
    logger.debug("=== nodedeps extract ===")
    logger.debug("Tool: %s", args.tool)
    logger.debug("Project: %s", project_dir)

    config = build_config(args)
    resolver_cls = get_resolver_class(args.tool)
    resolver = resolver_cls(project_dir, config)
    result = resolver.resolve()

    if not getattr(args, "quiet", False):
        print_summary(result)

    output = getattr(args, "output", None)
    if output:
        export_json(result, Path(output))

    graph_output = getattr(args, "graph", None)
    if graph_output:
        export_graph_json(build_dependency_graph(result), Path(graph_output))

    return EXIT_OK
