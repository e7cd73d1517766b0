"""Decoder for ``pnpm ls --json --long --depth Infinity`` output."""

import logging
from typing import Any, Dict, List, Optional, Union

from nodedeps.errors import ParseError
from nodedeps.parsers.base import DEV_SCOPE, PROD_SCOPE, DependencyRecord, LsEntry, walk_dependencies
from nodedeps.parsers.npm import decode_modern_entry, load_json_output

logger = logging.getLogger("nodedeps.parsers.pnpm")

# Top-level sections of the project object: (section, scope, entries are optional)
_SECTIONS = (
    ("dependencies", PROD_SCOPE, False),
    ("optionalDependencies", PROD_SCOPE, True),
    ("devDependencies", DEV_SCOPE, False),
)


def decode_optional_entry(name: str, value: Dict[str, Any]) -> LsEntry:
    """Decode an entry of the optionalDependencies subtree, flagging it optional."""
    entry = decode_modern_entry(name, value)
    entry.optional = True
    return entry


def extract_project(data: Any) -> Optional[Dict[str, Any]]:
    """Return the project object from ``pnpm ls`` output.

    pnpm wraps the project in an array; older releases emit a bare object.
    An empty array means there is nothing to parse.
    """
    if isinstance(data, list):
        if not data:
            return None
        first = data[0]
        if not isinstance(first, dict):
            raise ParseError("expected the first element of 'pnpm ls' output to be an object")
        return first
    if isinstance(data, dict):
        logger.debug("pnpm ls output is not an array, treating it as a project object")
        return data or None
    raise ParseError(f"unexpected 'pnpm ls' output type: {type(data).__name__}")


def parse_pnpm_ls(
    data: Union[str, bytes, Dict[str, Any], List[Any]],
    root_id: str,
    records: Optional[Dict[str, DependencyRecord]] = None,
) -> Dict[str, DependencyRecord]:
    """Parse ``pnpm ls`` output into records keyed by id."""
    if records is None:
        records = {}
    project = extract_project(load_json_output(data, "pnpm"))
    if project is None:
        return records
    for section, scope, optional in _SECTIONS:
        tree = project.get(section)
        if tree:
            decode = decode_optional_entry if optional else decode_modern_entry
            walk_dependencies(tree, decode, (root_id,), records, default_scope=scope)
    logger.debug("Parsed %d dependencies from pnpm ls", len(records))
    return records
