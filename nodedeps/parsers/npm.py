"""Decoders for ``npm ls --json`` output.

npm 6 reports per-package metadata through underscore-prefixed fields
(``_integrity``, ``_inBundle``, ...); npm 7 and later report flat fields.
Both share the walker in :mod:`nodedeps.parsers.base`.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from nodedeps.errors import ParseError
from nodedeps.parsers.base import DependencyRecord, LsEntry, walk_dependencies
from nodedeps.parsers.versions import SchemaVariant

logger = logging.getLogger("nodedeps.parsers.npm")


def _problems(value: Dict[str, Any]) -> List[str]:
    problems = value.get("problems") or []
    if isinstance(problems, str):
        return [problems]
    return [str(p) for p in problems]


def _children(value: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    deps = value.get("dependencies")
    return deps if isinstance(deps, dict) and deps else None


def decode_legacy_entry(name: str, value: Dict[str, Any]) -> LsEntry:
    """Decode an npm 6 entry."""
    return LsEntry(
        name=name,
        version=str(value.get("version") or ""),
        integrity=str(value.get("_integrity") or ""),
        resolved=str(value.get("resolved") or value.get("_resolved") or ""),
        in_bundle=bool(value.get("_inBundle")),
        dev=bool(value.get("_development")),
        optional=bool(value.get("_optional")),
        missing=bool(value.get("missing")),
        problems=_problems(value),
        peer_missing=value.get("peerMissing"),
        dependencies=_children(value),
    )


def decode_modern_entry(name: str, value: Dict[str, Any]) -> LsEntry:
    """Decode an npm 7+ (and pnpm) entry."""
    return LsEntry(
        name=name,
        version=str(value.get("version") or ""),
        integrity=str(value.get("integrity") or ""),
        resolved=str(value.get("resolved") or ""),
        path=str(value.get("path") or ""),
        in_bundle=bool(value.get("inBundle")),
        dev=bool(value.get("dev")),
        optional=bool(value.get("optional")),
        missing=bool(value.get("missing")),
        problems=_problems(value),
        peer_missing=value.get("peerMissing"),
        dependencies=_children(value),
    )


def load_json_output(data: Union[str, bytes, Dict[str, Any], list], tool: str) -> Any:
    """Decode raw tool output, passing already-decoded values through."""
    if isinstance(data, (dict, list)):
        return data
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if not data.strip():
        return {}
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise ParseError(f"couldn't parse '{tool} ls' output as JSON: {exc}") from exc


def parse_npm_ls(
    data: Union[str, bytes, Dict[str, Any]],
    root_id: str,
    scope: str,
    variant: SchemaVariant = SchemaVariant.NPM_MODERN,
    records: Optional[Dict[str, DependencyRecord]] = None,
) -> Dict[str, DependencyRecord]:
    """Parse one ``npm ls --json --all --<scope>`` run into records.

    Args:
        data: Raw stdout or decoded JSON.
        root_id: Id of the project, last element of every request path.
        scope: "dev" or "prod", the restriction the command ran with.
        variant: NPM_LEGACY for npm 6 output, NPM_MODERN otherwise.
        records: Existing map to merge into.

    Returns:
        Dict[str, DependencyRecord]: Records keyed by id.
    """
    if records is None:
        records = {}
    tree = load_json_output(data, "npm")
    if not isinstance(tree, dict):
        raise ParseError("expected 'npm ls' output to be a JSON object")
    dependencies = tree.get("dependencies") or {}
    decoder = decode_legacy_entry if variant is SchemaVariant.NPM_LEGACY else decode_modern_entry
    walk_dependencies(dependencies, decoder, (root_id,), records, default_scope=scope)
    logger.debug("Parsed %d %s dependencies from npm ls", len(records), scope)
    return records
