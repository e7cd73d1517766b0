"""Normalized dependency records and the shared `ls` tree walker.

Every Node package manager reports its tree as nested ``name -> entry``
objects. The walker in this module turns such a tree into a map of
``DependencyRecord`` keyed by ``name:version``, carrying the current
path-to-root explicitly through the recursion.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from nodedeps.errors import ParseError

logger = logging.getLogger("nodedeps.parsers.base")

PROD_SCOPE = "prod"
DEV_SCOPE = "dev"

_GIT_PREFIXES = ("git+", "git://", "git@", "github:", "gitlab:", "bitbucket:")
_GIT_HASH_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")


def dependency_scopes(name: str, dev: bool = False, default_scope: Optional[str] = None) -> Set[str]:
    """Scope labels for a dependency name.

    Returns "dev" when flagged dev, otherwise ``default_scope`` or "prod".
    Scoped names with more than two path segments also get their ``@org``
    label.
    """
    scopes = {DEV_SCOPE} if dev else {default_scope or PROD_SCOPE}
    if name.startswith("@"):
        parts = name.split("/")
        if len(parts) > 2:
            scopes.add(parts[0])
    return scopes


@dataclass
class LsEntry:
    """One decoded entry of an ``ls`` tree, independent of the schema variant."""

    name: str
    version: str = ""
    integrity: str = ""
    resolved: str = ""
    path: str = ""
    in_bundle: bool = False
    dev: bool = False
    optional: bool = False
    missing: bool = False
    problems: List[str] = field(default_factory=list)
    peer_missing: Any = None
    dependencies: Optional[Dict[str, Any]] = None

    @property
    def id(self) -> str:
        return f"{self.name}:{self.version}"

    def scopes(self, default_scope: Optional[str] = None) -> Set[str]:
        """Scopes of this entry.

        Args:
            default_scope: Scope used when the entry itself is not flagged dev.

        Returns:
            Set[str]: "dev" or "prod", plus the ``@org`` label for names
            with more than two path segments.
        """
        return dependency_scopes(self.name, self.dev, default_scope)


@dataclass
class DependencyRecord:
    """A dependency merged across every place it appears in the tree.

    Attributes:
        name: Package name.
        version: Installed (or synthesized) version.
        scopes: Deduplicated scope labels.
        requested_by: Distinct paths to root, each ordered child to root.
        integrity: ``<algo>-<base64>`` string, empty when unknown.
        checksums: md5/sha1/sha256 hex digests, filled in after cache resolution.
    """

    name: str
    version: str
    scopes: Set[str] = field(default_factory=set)
    requested_by: List[List[str]] = field(default_factory=list)
    integrity: str = ""
    checksums: Dict[str, str] = field(default_factory=dict)
    in_bundle: bool = False
    dev: bool = False
    optional: bool = False
    missing: bool = False
    problems: List[str] = field(default_factory=list)
    peer_missing: Any = None

    @property
    def id(self) -> str:
        return f"{self.name}:{self.version}"

    @property
    def has_peer_markers(self) -> bool:
        return bool(self.peer_missing) or bool(self.problems) or self.missing

    def add_path(self, path: Sequence[str]) -> bool:
        """Append a request path unless an equal one is present."""
        path = list(path)
        if path in self.requested_by:
            return False
        self.requested_by.append(path)
        return True

    def merge(self, scopes: Set[str], path: Sequence[str], integrity: str = "") -> None:
        """Fold one more sighting of this dependency into the record."""
        self.scopes |= {s for s in scopes if s}
        self.add_path(path)
        if not self.integrity and integrity:
            self.integrity = integrity


def is_git_reference(value: str) -> bool:
    return value.startswith(_GIT_PREFIXES)


def git_hash_from_url(url: str) -> str:
    """Return the commit-ish after the last ``#`` when it looks like a hash."""
    if "#" not in url:
        return ""
    candidate = url.rsplit("#", 1)[1]
    if _GIT_HASH_RE.match(candidate):
        return candidate.lower()
    return ""


def synthesize_version(reference: str) -> str:
    """Derive a stable version for a git or path reference.

    The commit hash of a git URL is used when present, otherwise the sha1
    hex digest of the reference itself.
    """
    commit = git_hash_from_url(reference)
    if commit:
        return commit
    return hashlib.sha1(reference.encode("utf-8")).hexdigest()


def add_record(
    records: Dict[str, DependencyRecord],
    entry: LsEntry,
    path_to_root: Sequence[str],
    default_scope: Optional[str] = None,
) -> DependencyRecord:
    """Insert or merge an entry into the record map."""
    record = records.get(entry.id)
    if record is None:
        record = DependencyRecord(
            name=entry.name,
            version=entry.version,
            in_bundle=entry.in_bundle,
            dev=entry.dev,
            optional=entry.optional,
            missing=entry.missing,
            problems=list(entry.problems),
            peer_missing=entry.peer_missing,
        )
        records[entry.id] = record
    record.merge(entry.scopes(default_scope), path_to_root, entry.integrity)
    return record


EntryDecoder = Callable[[str, Dict[str, Any]], LsEntry]


def walk_dependencies(
    tree: Dict[str, Any],
    decode: EntryDecoder,
    path_to_root: Tuple[str, ...],
    records: Dict[str, DependencyRecord],
    default_scope: Optional[str] = None,
) -> Dict[str, DependencyRecord]:
    """Walk a ``name -> entry`` tree and merge every entry into ``records``.

    Args:
        tree: Mapping of dependency name to the tool's entry object.
        decode: Schema-variant decoder for a single entry.
        path_to_root: Ids from the current parent up to the root, root last.
        records: Map to fill in; returned for convenience.
        default_scope: Scope for entries not flagged dev.

    Returns:
        Dict[str, DependencyRecord]: ``records``.

    Raises:
        ParseError: If an entry has no version and is not a recognizable
            missing peer or a git/path reference.
    """
    if not isinstance(tree, dict):
        raise ParseError(f"expected a dependency object, got {type(tree).__name__}")

    for name, value in tree.items():
        if value == {}:
            logger.debug("%s is missing. This may be the result of an optional dependency.", name)
            continue
        if not isinstance(value, dict):
            raise ParseError(f"failed to parse '{name}': expected an object, got {value!r}")

        entry = decode(name, value)

        if entry.version and is_git_reference(entry.version):
            entry.version = synthesize_version(entry.version)

        if not entry.version:
            if entry.missing or entry.problems or entry.peer_missing:
                logger.debug("%s is missing, this may be the result of a peer dependency.", name)
                continue
            reference = entry.resolved or entry.path
            if not reference:
                raise ParseError(f"failed to parse '{name}' from ls output: {value!r}")
            entry.version = synthesize_version(reference)

        add_record(records, entry, path_to_root, default_scope)

        if entry.dependencies:
            walk_dependencies(
                entry.dependencies,
                decode,
                (entry.id,) + tuple(path_to_root),
                records,
                default_scope,
            )
    return records
