"""Shared flow for resolving a project's dependencies with one package manager.

A resolver reads package.json, detects the tool version once, makes sure a
lockfile is in place, parses the tool's tree output into dependency records,
and finally resolves tarball checksums for every record on a worker pool.
Records that legitimately have no tarball (bundled, unresolved peers,
optional or cache misses) are left out and reported in one warning per
category.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from packaging.version import Version

from nodedeps.cache.cacache import CacacheResolver
from nodedeps.config.schema import ExtractConfig
from nodedeps.errors import (
    CacheError,
    ChecksumError,
    ConfigurationError,
    ProjectNotInstalledError,
)
from nodedeps.package_info import PACKAGE_JSON, PackageInfo
from nodedeps.parsers.base import DependencyRecord
from nodedeps.parsers.versions import SchemaVariant, select_variant
from nodedeps.runtime.process import ToolRunner
from nodedeps.runtime.traversal import traverse
from nodedeps.utils.checksum import calc_checksums

logger = logging.getLogger("nodedeps.resolvers.base")

NODE_MODULES = "node_modules"

DependencyFilter = Callable[["Dependency"], bool]


@dataclass
class Dependency:
    """A resolved dependency as handed to the build-info aggregator."""

    id: str
    scopes: List[str] = field(default_factory=list)
    requested_by: List[List[str]] = field(default_factory=list)
    checksums: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: DependencyRecord) -> "Dependency":
        return cls(
            id=record.id,
            scopes=sorted(record.scopes),
            requested_by=[list(p) for p in record.requested_by],
            checksums=dict(record.checksums),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "scopes": list(self.scopes),
            "requestedBy": [list(p) for p in self.requested_by],
        }
        data.update(self.checksums)
        return data


@dataclass
class ResolutionResult:
    """Final dependency list of one project plus what was left out.

    Attributes:
        tool: Package manager used.
        tool_version: Detected tool version.
        root_id: Module id of the project, last element of every request path.
        dependencies: Dependencies that made it into the list.
        missing_bundled: Bundled dependencies without integrity.
        missing_peer: Unresolved peer dependencies without integrity.
        missing_optional: Optional dependencies whose tarball is not cached.
        missing_in_cache: Other dependencies whose tarball is not cached.
    """

    tool: str
    tool_version: str
    root_id: str
    dependencies: List[Dependency] = field(default_factory=list)
    missing_bundled: List[str] = field(default_factory=list)
    missing_peer: List[str] = field(default_factory=list)
    missing_optional: List[str] = field(default_factory=list)
    missing_in_cache: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "toolVersion": self.tool_version,
            "id": self.root_id,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "missing": {
                "bundled": list(self.missing_bundled),
                "peer": list(self.missing_peer),
                "optional": list(self.missing_optional),
                "cache": list(self.missing_in_cache),
            },
        }


def filter_unique_args(args_to_filter: List[str], existing_args: List[str], command: str = "install") -> List[str]:
    """Drop ``command`` itself and any argument already in ``existing_args``."""
    return [a for a in args_to_filter if a != command and a not in existing_args]


class BaseResolver(ABC):
    """Resolves the dependencies of one project with one package manager.

    Subclasses set the class attributes and implement ``collect_records``
    and ``install``.

    Args:
        project_dir: Directory holding package.json.
        config: Extraction options; defaults are used when omitted.
        runner: Tool runner; one for ``TOOL`` in ``project_dir`` is created
            when omitted.
    """

    TOOL: str = ""
    LOCKFILE: str = ""
    MIN_VERSION: str = ""
    # Whether tarball checksums are read from a cacache directory
    USES_CACACHE: bool = True

    def __init__(
        self,
        project_dir: Union[str, Path],
        config: Optional[ExtractConfig] = None,
        runner: Optional[ToolRunner] = None,
    ):
        self.project_dir = Path(project_dir)
        self.config = config or ExtractConfig()
        self.runner = runner or ToolRunner(self.TOOL, self.project_dir)
        self.package_info: Optional[PackageInfo] = None
        self.tool_version: Optional[Version] = None
        self.variant: Optional[SchemaVariant] = None
        self._cache: Optional[CacacheResolver] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve(self, dependency_filter: Optional[DependencyFilter] = None) -> ResolutionResult:
        """Run the whole resolution for the project.

        Args:
            dependency_filter: Optional caller filter, applied to every
                dependency whose checksums were resolved. Returns True to keep.

        Returns:
            ResolutionResult: Dependencies and classifications.

        Raises:
            ProjectNotInstalledError: If an install is needed but forbidden.
            ToolExecutionError: If the tool is missing or fails without output.
            ParseError: If the tool output can't be parsed.
            TraversalError: If ``dependency_filter`` raised for any dependency.
        """
        self.package_info = PackageInfo.from_directory(self.project_dir)
        self.tool_version = self.runner.version()
        self.validate_version(self.tool_version)
        self.variant = select_variant(self.TOOL, self.tool_version)
        logger.info(
            "Resolving %s dependencies of %s with %s %s",
            self.TOOL,
            self.project_dir,
            self.TOOL,
            self.tool_version,
        )

        self.prepare_project()
        root_id = self.root_id()
        records = self.collect_records(root_id)
        logger.info("Found %d unique %s dependencies", len(records), self.TOOL)
        return self.build_result(root_id, records, dependency_filter)

    def root_id(self) -> str:
        assert self.package_info is not None
        return self.package_info.build_info_module_id()

    def validate_version(self, version: Version) -> None:
        """Raise ConfigurationError if the tool is older than ``MIN_VERSION``."""
        if self.MIN_VERSION and version < Version(self.MIN_VERSION):
            raise ConfigurationError(
                f"it looks like you're using version {version} of the {self.TOOL} client. "
                f"Versions below {self.MIN_VERSION} are not supported"
            )

    # ------------------------------------------------------------------
    # Install policy
    # ------------------------------------------------------------------

    @property
    def lockfile_path(self) -> Path:
        return self.project_dir / self.LOCKFILE

    def node_modules_exist(self) -> bool:
        return (self.project_dir / NODE_MODULES).is_dir()

    def lockfile_outdated(self) -> bool:
        """Whether package.json was modified after the lockfile."""
        try:
            manifest_mtime = (self.project_dir / PACKAGE_JSON).stat().st_mtime
            lock_mtime = self.lockfile_path.stat().st_mtime
        except OSError as exc:
            logger.warning("Failed to compare %s and %s: %s", PACKAGE_JSON, self.LOCKFILE, exc)
            return False
        return manifest_mtime > lock_mtime

    def install_required(self) -> bool:
        """Decide whether the lockfile has to be created or refreshed."""
        if self.config.install_args:
            return True
        if not self.lockfile_path.is_file():
            return True
        return self.config.overwrite_package_lock and self.lockfile_outdated()

    def prepare_project(self) -> None:
        """Apply the install policy before the tree is listed.

        An installed project (node_modules present) is listed as is unless
        node_modules should be ignored or installation is forbidden.

        Raises:
            ProjectNotInstalledError: If an install is needed and
                ``skip_install`` is set.
        """
        if (
            self.node_modules_exist()
            and not self.config.ignore_node_modules
            and not self.config.skip_install
            and not self.config.install_args
        ):
            return
        if not self.install_required():
            return
        if self.config.skip_install:
            raise ProjectNotInstalledError(
                f"Directory '{self.project_dir}' is not installed. "
                "Skipping SCA scan in this directory..."
            )
        logger.info("Refreshing %s in %s", self.LOCKFILE, self.project_dir)
        self.install()

    @abstractmethod
    def install(self) -> None:
        """Create or refresh the lockfile."""

    # ------------------------------------------------------------------
    # Tree parsing
    # ------------------------------------------------------------------

    @abstractmethod
    def collect_records(self, root_id: str) -> Dict[str, DependencyRecord]:
        """Run the tool and parse its tree into records keyed by id."""

    # ------------------------------------------------------------------
    # Checksums and classification
    # ------------------------------------------------------------------

    def cache_root(self) -> Path:
        """Locate the cacache directory used by the tool."""
        raise NotImplementedError(f"{self.TOOL} does not use a cacache directory")

    def get_cache(self) -> CacacheResolver:
        """Cache resolver for this run, created on first use."""
        with self._lock:
            if self._cache is None:
                self._cache = CacacheResolver(self.cache_root())
                logger.debug("Using %r", self._cache)
            return self._cache

    def lookup_integrity(self, record: DependencyRecord) -> str:
        """Integrity for a record the tool reported without one."""
        return self.get_cache().resolve_integrity(record.name, record.version)

    def calculate_checksums(self, record: DependencyRecord) -> None:
        """Fill in ``record.checksums`` from the cached tarball.

        Raises:
            CacheError: If the tarball can't be located.
            ChecksumError: If hashing fails.
        """
        integrity = record.integrity or self.lookup_integrity(record)
        path = self.get_cache().resolve_tarball_path(integrity)
        record.checksums = {algo.value: digest for algo, digest in calc_checksums(path).items()}

    def build_result(
        self,
        root_id: str,
        records: Dict[str, DependencyRecord],
        dependency_filter: Optional[DependencyFilter] = None,
    ) -> ResolutionResult:
        """Classify records, resolve checksums and apply the caller filter."""
        result = ResolutionResult(
            tool=self.TOOL,
            tool_version=str(self.tool_version or ""),
            root_id=root_id,
        )
        if self.USES_CACACHE and records:
            # Fail early if the cache directory itself is missing
            self.get_cache()

        def _process(record: DependencyRecord) -> bool:
            if not self._resolve_record(record, result):
                return False
            if dependency_filter is None:
                return True
            return dependency_filter(Dependency.from_record(record))

        kept = traverse(records, _process, self.config.threads)
        result.dependencies = sorted((Dependency.from_record(r) for r in kept), key=lambda d: d.id)
        for name in ("missing_bundled", "missing_peer", "missing_optional", "missing_in_cache"):
            getattr(result, name).sort()
        self._warn_missing(result)
        return result

    def _classify(self, bucket: List[str], dep_id: str) -> bool:
        with self._lock:
            bucket.append(dep_id)
        return False

    def _resolve_record(self, record: DependencyRecord, result: ResolutionResult) -> bool:
        if not record.integrity and record.in_bundle:
            return self._classify(result.missing_bundled, record.id)
        if not record.integrity and record.has_peer_markers:
            return self._classify(result.missing_peer, record.id)
        if not self.USES_CACACHE:
            return True
        try:
            self.calculate_checksums(record)
        except (CacheError, ChecksumError, OSError) as exc:
            logger.debug("Couldn't calculate checksum for %s: %s", record.id, exc)
            if record.optional:
                return self._classify(result.missing_optional, record.id)
            return self._classify(result.missing_in_cache, record.id)
        return True

    def _warn_missing(self, result: ResolutionResult) -> None:
        reasons = (
            (result.missing_peer, "peerDependency"),
            (result.missing_bundled, "bundleDependencies"),
            (result.missing_optional, "optionalDependencies"),
        )
        for ids, kind in reasons:
            if ids:
                logger.warning(
                    "The following dependencies will not be included in the build-info, because "
                    "'%s ls' did not return their integrity. They may be '%s' that were not "
                    "installed, so it is okay to skip them: %s",
                    self.TOOL,
                    kind,
                    ",".join(ids),
                )
        if result.missing_in_cache:
            logger.warning(
                "The following dependencies will not be included in the build-info, because they "
                "are missing in the %s cache: '%s'.\nHint: Try deleting '%s' and/or '%s'.",
                self.TOOL,
                ",".join(result.missing_in_cache),
                NODE_MODULES,
                self.LOCKFILE,
            )
