"""Yarn dependency maps for classic (v1) and berry (v2+) output.

Classic yarn is queried with ``yarn list --json --flat --no-progress`` which
omits the project itself, so the root is rebuilt from package.json. Berry
is queried with ``yarn info --all --recursive --json`` which prints one
self-describing locator per line.

Both are normalized into a ``value -> YarnDependency`` map plus a root, and
``collect_yarn_records`` walks that map into ``DependencyRecord`` objects.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from nodedeps.errors import ParseError
from nodedeps.package_info import PackageInfo
from nodedeps.parsers.base import DEV_SCOPE, PROD_SCOPE, DependencyRecord, dependency_scopes

logger = logging.getLogger("nodedeps.parsers.yarn")

ROOT_PLACEHOLDER_VERSION = "0.0.0-use.local"
LOCKFILE_MISMATCH_MARKER = "present in your lockfile"

YarnDependencyMap = Dict[str, "YarnDependency"]


@dataclass
class YarnDependencyPointer:
    """Reference from a package to one of its dependencies."""

    descriptor: str = ""
    locator: str = ""


@dataclass
class YarnDependency:
    """One installed package.

    Attributes:
        value: Yarn's identifier, e.g. ``@scope/name@npm:1.0.0`` (berry) or
            ``@scope/name@1.0.0`` (classic).
        version: Installed version.
        dependencies: Pointers to the package's own dependencies.
    """

    value: str
    version: str = ""
    dependencies: List[YarnDependencyPointer] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "YarnDependency":
        children = data.get("children") or {}
        pointers = [
            YarnDependencyPointer(
                descriptor=str(p.get("descriptor") or ""),
                locator=str(p.get("locator") or ""),
            )
            for p in children.get("Dependencies") or []
            if isinstance(p, dict)
        ]
        return cls(
            value=str(data.get("value") or ""),
            version=str(children.get("Version") or ""),
            dependencies=pointers,
        )

    def name(self) -> str:
        """Package name without version or protocol.

        The search for ``@`` starts at index 1 so a scope prefix is kept.
        A value without a version (the classic root) is returned whole.
        """
        at = self.value.find("@", 1)
        if at == -1:
            return self.value
        return self.value[:at]


def remove_virtual_indication(locator: str) -> str:
    """Map a virtual locator to the key of the real package.

    ``name@virtual:<id>#npm:1.2.3`` becomes ``name@npm:1.2.3``; other
    locators are returned unchanged.
    """
    virtual_index = locator.find("@virtual:")
    if virtual_index == -1:
        return locator
    hash_index = locator.rfind("#")
    return locator[: virtual_index + 1] + locator[hash_index + 1:]


def remove_aliasing_from_package_name(name: str) -> str:
    """Strip an alias suffix: ``@scope/a@b`` -> ``@scope/a``, ``a@b`` -> ``a``."""
    at = name.find("@", 1)
    if at == -1:
        return name
    return name[:at]


def split_name_and_version(full_name: str) -> Tuple[str, str]:
    """Split ``name@version`` or ``name@npm:version``.

    Raises:
        ParseError: If there is no ``@`` separator.
    """
    full_name = full_name.replace("npm:", "", 1)
    at = full_name.rfind("@")
    if at == -1:
        raise ParseError(
            f"received package name of incorrect format {full_name!r} "
            "(expected: package-name@version)"
        )
    name, version = full_name[:at], full_name[at + 1:]
    if "@" in name:
        name = remove_aliasing_from_package_name(name)
    return name, version


def build_yarn_v1_dependency_map(
    package_info: PackageInfo,
    output: str,
    allow_partial: bool = False,
) -> Tuple[YarnDependencyMap, YarnDependency]:
    """Build the dependency map from classic ``yarn list`` output.

    Args:
        package_info: Project manifest, used to rebuild the root.
        output: Raw JSON output of ``yarn list``.
        allow_partial: Drop children whose version can't be resolved
            instead of failing.

    Returns:
        Tuple[YarnDependencyMap, YarnDependency]: The map and its root.

    Raises:
        ParseError: On malformed output or an unresolvable child.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"couldn't parse 'yarn list' results in order to create the dependency map: {exc}"
        ) from exc

    trees = (data.get("data") or {}).get("trees") if isinstance(data, dict) else None
    if trees is None:
        raise ParseError("received an empty tree field while parsing 'yarn list' results")

    dependency_map: YarnDependencyMap = {}
    name_to_full_name: Dict[str, str] = {}

    # First pass: register every package and remember its exact locator
    for tree in trees:
        full_name = str(tree.get("name") or "")
        clean_name, version = split_name_and_version(full_name)
        dependency_map[full_name] = YarnDependency(value=full_name, version=version)
        name_to_full_name[clean_name] = full_name

    # Second pass: resolve child ranges to installed versions
    for tree in trees:
        dependency = dependency_map[str(tree.get("name") or "")]
        for child in tree.get("children") or []:
            child_name = str(child.get("name") or "")
            clean_name, _ = split_name_and_version(child_name)
            resolved = name_to_full_name.get(clean_name)
            if resolved is None:
                message = f"couldn't find resolved version for '{child_name}' in 'yarn list' output"
                if allow_partial:
                    logger.warning("%s; skipping it", message)
                    continue
                raise ParseError(message)
            dependency.dependencies.append(YarnDependencyPointer(child_name, resolved))

    root = YarnDependency(value=package_info.name, version=package_info.version)
    for direct_name in package_info.direct_dependency_names():
        full_name = name_to_full_name.get(direct_name)
        if full_name is not None:
            root.dependencies.append(YarnDependencyPointer(locator=full_name))
    dependency_map[root.value] = root
    return dependency_map, root


def build_yarn_v2_dependency_map(
    package_info: PackageInfo,
    output: str,
) -> Tuple[YarnDependencyMap, Optional[YarnDependency]]:
    """Build the dependency map from berry ``yarn info`` NDJSON output.

    The root is the locator named ``<full name>@...``. Some yarn releases
    report its version as ``0.0.0-use.local``; it is replaced by the
    package.json version.
    """
    dependency_map: YarnDependencyMap = {}
    root: Optional[YarnDependency] = None
    root_prefix = package_info.full_name() + "@"

    for line_no, line in enumerate(output.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ParseError(f"couldn't parse line {line_no} of 'yarn info' output: {exc}") from exc
        dependency = YarnDependency.from_json(data)
        if dependency.value.startswith(root_prefix):
            if dependency.version == ROOT_PLACEHOLDER_VERSION:
                dependency.version = package_info.version
            root = dependency
        dependency_map[dependency.value] = dependency
    return dependency_map, root


def _lookup(
    pointer: YarnDependencyPointer,
    dependency_map: YarnDependencyMap,
    allow_partial: bool,
) -> Optional[YarnDependency]:
    dependency = dependency_map.get(remove_virtual_indication(pointer.locator))
    if dependency is None:
        message = f"dependency {pointer.locator} was not found in the yarn dependency tree"
        if not allow_partial:
            raise ParseError(message)
        logger.warning("%s; skipping it", message)
    return dependency


def _append_recursively(
    dependency: YarnDependency,
    path_to_root: Tuple[str, ...],
    scope: str,
    dependency_map: YarnDependencyMap,
    records: Dict[str, DependencyRecord],
    allow_partial: bool,
) -> None:
    name = dependency.name()
    dep_id = f"{name}:{dependency.version}"
    # Circular dependency
    if dep_id in path_to_root:
        return

    for pointer in dependency.dependencies:
        child = _lookup(pointer, dependency_map, allow_partial)
        if child is not None:
            _append_recursively(
                child, (dep_id,) + path_to_root, scope, dependency_map, records, allow_partial
            )

    record = records.get(dep_id)
    if record is None:
        record = DependencyRecord(name=name, version=dependency.version, dev=scope == DEV_SCOPE)
        records[dep_id] = record
    record.merge(dependency_scopes(name, default_scope=scope), path_to_root)


def collect_yarn_records(
    root: YarnDependency,
    dependency_map: YarnDependencyMap,
    root_id: str,
    package_info: Optional[PackageInfo] = None,
    allow_partial: bool = False,
) -> Dict[str, DependencyRecord]:
    """Walk the yarn dependency map from the root into records.

    The root itself is not recorded. A direct dependency declared only in
    devDependencies gives its whole subtree the "dev" scope.

    Raises:
        ParseError: If a locator can't be found and partial results are
            not allowed.
    """
    records: Dict[str, DependencyRecord] = {}
    for pointer in root.dependencies:
        child = _lookup(pointer, dependency_map, allow_partial)
        if child is None:
            continue
        scope = PROD_SCOPE
        if package_info is not None and package_info.is_dev_only(child.name()):
            scope = DEV_SCOPE
        _append_recursively(child, (root_id,), scope, dependency_map, records, allow_partial)
    logger.debug("Collected %d yarn dependencies", len(records))
    return records
