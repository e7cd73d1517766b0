"""Yarn dependency resolution for classic (v1) and berry (v2.4+) releases.

Yarn has no cacache store, so yarn dependencies are listed without
tarball checksums.
"""

import logging
from typing import Dict, List

from packaging.version import Version

from nodedeps.errors import ConfigurationError, ParseError, ToolExecutionError
from nodedeps.parsers.base import DependencyRecord
from nodedeps.parsers.versions import SchemaVariant
from nodedeps.parsers.yarn import (
    LOCKFILE_MISMATCH_MARKER,
    build_yarn_v1_dependency_map,
    build_yarn_v2_dependency_map,
    collect_yarn_records,
)
from nodedeps.resolvers.base import BaseResolver, filter_unique_args

logger = logging.getLogger("nodedeps.resolvers.yarn")

CLASSIC_LIST_ARGS = ["list", "--json", "--flat", "--no-progress"]
BERRY_INFO_ARGS = ["info", "--all", "--recursive", "--json"]
# First berry release supporting `yarn install --mode=update-lockfile`
UPDATE_LOCKFILE_VERSION = Version("3.0.0")


class YarnResolver(BaseResolver):
    """Resolves dependencies with ``yarn list`` (classic) or ``yarn info`` (berry)."""

    TOOL = "yarn"
    LOCKFILE = "yarn.lock"
    USES_CACACHE = False

    @property
    def is_berry(self) -> bool:
        return self.variant is SchemaVariant.YARN_BERRY

    def root_id(self) -> str:
        assert self.package_info is not None
        return f"{self.package_info.full_name()}:{self.package_info.version}"

    def install(self) -> None:
        args: List[str] = ["install"]
        if self.is_berry and self.tool_version is not None and self.tool_version >= UPDATE_LOCKFILE_VERSION:
            args.append("--mode=update-lockfile")
        args += filter_unique_args(self.config.install_args, args)
        self.runner.run(args)

    def _raise_on_lockfile_mismatch(self, output: str, cause: Exception) -> None:
        if LOCKFILE_MISMATCH_MARKER in output:
            assert self.package_info is not None
            raise ConfigurationError(
                f"fetching dependencies failed since '{self.package_info.name}' "
                f"doesn't present in your lockfile\nPlease run 'yarn install' to update lockfile\n{cause}"
            ) from cause

    def collect_records(self, root_id: str) -> Dict[str, DependencyRecord]:
        assert self.package_info is not None
        args = (BERRY_INFO_ARGS if self.is_berry else CLASSIC_LIST_ARGS) + list(self.config.args)
        try:
            output = self.runner.run(args, tolerate_partial=self.config.allow_partial_results)
        except ToolExecutionError as exc:
            self._raise_on_lockfile_mismatch(exc.stdout + exc.stderr, exc)
            raise
        if not output.ok:
            self._raise_on_lockfile_mismatch(
                output.stdout, ToolExecutionError(f"yarn exited with status {output.returncode}")
            )

        stdout = output.stdout.strip()
        if self.is_berry:
            dependency_map, root = build_yarn_v2_dependency_map(self.package_info, stdout)
        else:
            dependency_map, root = build_yarn_v1_dependency_map(
                self.package_info, stdout, self.config.allow_partial_results
            )
        if root is None:
            raise ParseError(
                f"couldn't find the project '{self.package_info.full_name()}' in 'yarn info' output"
            )
        return collect_yarn_records(
            root,
            dependency_map,
            root_id,
            self.package_info,
            self.config.allow_partial_results,
        )
