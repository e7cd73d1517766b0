"""npm dependency resolution (npm 5.4.0 and later)."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from nodedeps.errors import CacheError
from nodedeps.parsers.base import DependencyRecord
from nodedeps.parsers.npm import parse_npm_ls
from nodedeps.parsers.versions import SchemaVariant
from nodedeps.resolvers.base import BaseResolver, filter_unique_args

logger = logging.getLogger("nodedeps.resolvers.npm")

CACACHE_DIR = "_cacache"
_NODE_MODULES_PREFIX = "node_modules/"


def read_lockfile_integrities(lockfile: Path) -> Dict[str, str]:
    """Map ``name:version`` to integrity from package-lock.json.

    Lockfile v2/v3 list packages under ``packages`` keyed by their
    node_modules location; v1 lists them under ``dependencies``.
    A missing or unreadable lockfile yields an empty map.
    """
    try:
        data = json.loads(lockfile.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("Couldn't read integrities from %s: %s", lockfile, exc)
        return {}

    integrities: Dict[str, str] = {}
    packages = data.get("packages")
    if isinstance(packages, dict) and packages:
        for location, info in packages.items():
            idx = location.rfind(_NODE_MODULES_PREFIX)
            if idx == -1 or not isinstance(info, dict):
                continue
            name = location[idx + len(_NODE_MODULES_PREFIX):]
            if info.get("integrity"):
                integrities[f"{name}:{info.get('version', '')}"] = info["integrity"]
        return integrities

    def _walk(deps: Dict[str, dict]) -> None:
        for name, info in deps.items():
            if not isinstance(info, dict):
                continue
            if info.get("integrity"):
                integrities[f"{name}:{info.get('version', '')}"] = info["integrity"]
            nested = info.get("dependencies")
            if isinstance(nested, dict):
                _walk(nested)

    legacy = data.get("dependencies")
    if isinstance(legacy, dict):
        _walk(legacy)
    return integrities


class NpmResolver(BaseResolver):
    """Resolves dependencies with ``npm ls``.

    npm is asked once per scope (``--dev`` and/or ``--prod``, depending on
    the type restriction) and both runs are merged into one map.
    """

    TOOL = "npm"
    LOCKFILE = "package-lock.json"
    MIN_VERSION = "5.4.0"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lock_integrities: Optional[Dict[str, str]] = None

    def install(self) -> None:
        args: List[str] = ["install", *self.config.args, "--package-lock-only", "--ignore-scripts"]
        args += filter_unique_args(self.config.install_args, args)
        self.runner.run(args)

    def _reads_lockfile_only(self) -> bool:
        # npm 6 can only list an installed node_modules tree
        if self.variant is SchemaVariant.NPM_LEGACY:
            return False
        return self.config.ignore_node_modules or not self.node_modules_exist()

    def collect_records(self, root_id: str) -> Dict[str, DependencyRecord]:
        records: Dict[str, DependencyRecord] = {}
        restriction = self.config.effective_type_restriction()
        for scope in restriction.scopes():
            # These must come last to override the same flags in the user's args
            args = ["ls", *self.config.args, "--json=true", "--all", f"--{scope}"]
            if self._reads_lockfile_only():
                args.append("--package-lock-only")
            # npm ls exits non-zero whenever the tree has problems
            output = self.runner.run(args, tolerate_partial=True)
            parse_npm_ls(output.stdout, root_id, scope, self.variant, records)
        return records

    def cache_root(self) -> Path:
        output = self.runner.run(["config", "get", "cache", *self.config.args, "--json=false"])
        path = Path(output.stdout.strip()) / CACACHE_DIR
        if not path.is_dir():
            raise CacheError(f"failed to locate '{CACACHE_DIR}' folder in {path}")
        return path

    def lookup_integrity(self, record: DependencyRecord) -> str:
        with self._lock:
            if self._lock_integrities is None:
                self._lock_integrities = read_lockfile_integrities(self.lockfile_path)
            integrity = self._lock_integrities.get(record.id)
        if integrity:
            return integrity
        return super().lookup_integrity(record)
